"""Synapse AI decisions: prediction models and the decision maker."""

from synapse_orchestrator.decisions.maker import FALLBACK_LABEL, DecisionMaker
from synapse_orchestrator.decisions.models import (
    PredictionModel,
    PredictionModelRegistry,
    SimulatedPredictionModel,
)

__all__ = [
    "FALLBACK_LABEL",
    "DecisionMaker",
    "PredictionModel",
    "PredictionModelRegistry",
    "SimulatedPredictionModel",
]
