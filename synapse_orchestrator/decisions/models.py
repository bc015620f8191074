"""
Synapse Prediction Models

The prediction capability used by AI decisions, AI-evaluated conditions
and ai_prediction triggers.
"""

from __future__ import annotations

import asyncio
import random
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

import structlog

from synapse_orchestrator.errors import PredictionUnavailableError

logger = structlog.get_logger(__name__)

Prediction = Tuple[str, float]


class PredictionModel(ABC):
    """
    Something that, given named inputs, returns a label and a confidence.

    ``labels`` lists the answers the caller can act on, when it has such
    a list. Implementations raise ``PredictionUnavailableError`` when they
    cannot decide.
    """

    @abstractmethod
    async def predict(
        self,
        model_id: str,
        inputs: Dict[str, Any],
        labels: Optional[Sequence[str]] = None,
    ) -> Prediction:
        ...


class PredictionModelRegistry(PredictionModel):
    """
    Routes predictions to per-model callables.

    A callable takes ``(inputs, labels)`` and returns ``(label,
    confidence)``, either directly or as an awaitable. Models without a
    registered callable go to ``default`` when one is set.
    """

    def __init__(self, default: Optional[PredictionModel] = None):
        self.default = default
        self._models: Dict[str, Callable] = {}

    def register(self, model_id: str, model: Callable) -> None:
        """Register a model callable."""
        self._models[model_id] = model
        logger.info("prediction_model_registered", model_id=model_id)

    def unregister(self, model_id: str) -> bool:
        return self._models.pop(model_id, None) is not None

    def has_model(self, model_id: str) -> bool:
        return model_id in self._models

    async def predict(
        self,
        model_id: str,
        inputs: Dict[str, Any],
        labels: Optional[Sequence[str]] = None,
    ) -> Prediction:
        model = self._models.get(model_id)
        if model is None:
            if self.default is not None:
                return await self.default.predict(model_id, inputs, labels)
            raise PredictionUnavailableError(
                f"No prediction model registered: {model_id}",
                details={"model_id": model_id},
            )

        try:
            result = model(inputs, labels)
            if asyncio.iscoroutine(result):
                result = await result
        except PredictionUnavailableError:
            raise
        except Exception as e:
            logger.error("prediction_error", model_id=model_id, error=str(e))
            raise PredictionUnavailableError(
                f"Model {model_id} failed: {e}",
                details={"model_id": model_id},
            ) from e

        label, confidence = result
        return str(label), float(confidence)


class SimulatedPredictionModel(PredictionModel):
    """
    Stand-in for a hosted model.

    Picks one of the offered labels at random with a confidence drawn
    from ``confidence_range``. Without labels it answers ``"true"``.
    """

    def __init__(
        self,
        confidence_range: Tuple[float, float] = (0.75, 0.95),
        latency_ms: float = 1500.0,
        seed: Optional[int] = None,
    ):
        self.confidence_range = confidence_range
        self.latency_ms = latency_ms
        self._random = random.Random(seed)

    async def predict(
        self,
        model_id: str,
        inputs: Dict[str, Any],
        labels: Optional[Sequence[str]] = None,
    ) -> Prediction:
        if self.latency_ms > 0:
            await asyncio.sleep(self.latency_ms / 1000)

        low, high = self.confidence_range
        confidence = low + self._random.random() * (high - low)
        label = self._random.choice(list(labels)) if labels else "true"

        logger.debug(
            "simulated_prediction",
            model_id=model_id,
            label=label,
            confidence=round(confidence, 3),
        )
        return label, confidence
