"""
Synapse Expression Parser

Safe expression language for workflow conditions. Expressions are parsed
with ``ast`` and walked node by node; nothing is passed to ``eval``.
"""

from __future__ import annotations

import ast
import operator
import re
from typing import Any, Callable, Dict, Optional

import structlog

from synapse_orchestrator.errors import ConditionEvaluationError

logger = structlog.get_logger(__name__)

# Operators written by workflow authors used to the dashboard's syntax
_ALIASES = [
    (re.compile(r"===|(?<![=!<>])==(?!=)"), "=="),
    (re.compile(r"!=="), "!="),
    (re.compile(r"&&"), " and "),
    (re.compile(r"\|\|"), " or "),
    (re.compile(r"\btrue\b"), "True"),
    (re.compile(r"\bfalse\b"), "False"),
    (re.compile(r"\bnull\b"), "None"),
]

_STRING_LITERAL = re.compile(r"('(?:[^'\\]|\\.)*'|\"(?:[^\"\\]|\\.)*\")")


def normalize(expression: str) -> str:
    """Rewrite dashboard-style operators, leaving string literals alone."""
    parts = _STRING_LITERAL.split(expression)
    for i in range(0, len(parts), 2):
        for pattern, replacement in _ALIASES:
            parts[i] = pattern.sub(replacement, parts[i])
    return "".join(parts).strip()


class ExpressionParser:
    """
    Parser for condition expressions.

    Supports:
    - Variable references: client.tier, invoices[0]
    - Arithmetic and comparisons: amount * 1.2 > budget
    - Boolean logic: a and b, a or b, not a
    - Whitelisted function calls: len(items), max(scores)
    - Ternary: value if condition else default

    Unknown names resolve to ``None``. Ordering comparisons against
    ``None`` are false rather than errors.
    """

    SAFE_FUNCTIONS: Dict[str, Callable] = {
        "len": len,
        "str": str,
        "int": int,
        "float": float,
        "bool": bool,
        "abs": abs,
        "min": min,
        "max": max,
        "sum": sum,
        "round": round,
        "any": any,
        "all": all,
        "lower": lambda s: s.lower() if isinstance(s, str) else s,
        "upper": lambda s: s.upper() if isinstance(s, str) else s,
    }

    BINARY_OPERATORS = {
        ast.Add: operator.add,
        ast.Sub: operator.sub,
        ast.Mult: operator.mul,
        ast.Div: operator.truediv,
        ast.FloorDiv: operator.floordiv,
        ast.Mod: operator.mod,
        ast.Pow: operator.pow,
    }

    UNARY_OPERATORS = {
        ast.USub: operator.neg,
        ast.UAdd: operator.pos,
        ast.Not: operator.not_,
    }

    COMPARISONS = {
        ast.Eq: operator.eq,
        ast.NotEq: operator.ne,
        ast.Lt: operator.lt,
        ast.LtE: operator.le,
        ast.Gt: operator.gt,
        ast.GtE: operator.ge,
        ast.Is: operator.is_,
        ast.IsNot: operator.is_not,
        ast.In: lambda a, b: b is not None and a in b,
        ast.NotIn: lambda a, b: b is None or a not in b,
    }

    ORDERING = (ast.Lt, ast.LtE, ast.Gt, ast.GtE)

    def __init__(self, variables: Optional[Dict[str, Any]] = None):
        self.variables = variables or {}
        self.functions = dict(self.SAFE_FUNCTIONS)

    def register_function(self, name: str, func: Callable) -> None:
        """Register a custom function."""
        self.functions[name] = func

    def parse(self, expression: str) -> Any:
        """
        Evaluate an expression against the parser's variables.

        Raises:
            ConditionEvaluationError: on syntax errors, unsupported
                constructs or runtime failures inside the expression
        """
        if not expression or not expression.strip():
            raise ConditionEvaluationError("Empty expression")

        source = normalize(expression)

        try:
            tree = ast.parse(source, mode="eval")
        except SyntaxError as e:
            logger.warning("expression_syntax_error", expression=expression, error=str(e))
            raise ConditionEvaluationError(
                f"Invalid expression syntax: {expression}",
                details={"expression": expression},
            ) from e

        try:
            return self._eval(tree.body)
        except ConditionEvaluationError:
            raise
        except (TypeError, ValueError, ArithmeticError, AttributeError) as e:
            logger.warning("expression_eval_error", expression=expression, error=str(e))
            raise ConditionEvaluationError(
                f"Expression evaluation error: {expression} - {e}",
                details={"expression": expression},
            ) from e

    def _eval(self, node: ast.AST) -> Any:
        handler = getattr(self, f"_eval_{type(node).__name__}", None)
        if handler is None:
            raise ConditionEvaluationError(f"Unsupported expression element: {type(node).__name__}")
        return handler(node)

    def _eval_Constant(self, node: ast.Constant) -> Any:
        return node.value

    def _eval_Name(self, node: ast.Name) -> Any:
        if node.id in self.variables:
            return self.variables[node.id]
        if node.id in self.functions:
            return self.functions[node.id]
        return None

    def _eval_Attribute(self, node: ast.Attribute) -> Any:
        if node.attr.startswith("_"):
            raise ConditionEvaluationError(f"Access to private attribute: {node.attr}")
        value = self._eval(node.value)
        if value is None:
            return None
        if isinstance(value, dict):
            return value.get(node.attr)
        return getattr(value, node.attr, None)

    def _eval_Subscript(self, node: ast.Subscript) -> Any:
        value = self._eval(node.value)
        if value is None:
            return None
        if isinstance(node.slice, ast.Slice):
            return value[slice(
                self._eval(node.slice.lower) if node.slice.lower else None,
                self._eval(node.slice.upper) if node.slice.upper else None,
                self._eval(node.slice.step) if node.slice.step else None,
            )]
        try:
            return value[self._eval(node.slice)]
        except (KeyError, IndexError, TypeError):
            return None

    def _eval_BinOp(self, node: ast.BinOp) -> Any:
        op = self.BINARY_OPERATORS.get(type(node.op))
        if op is None:
            raise ConditionEvaluationError(f"Unsupported operator: {type(node.op).__name__}")
        return op(self._eval(node.left), self._eval(node.right))

    def _eval_UnaryOp(self, node: ast.UnaryOp) -> Any:
        op = self.UNARY_OPERATORS.get(type(node.op))
        if op is None:
            raise ConditionEvaluationError(f"Unsupported operator: {type(node.op).__name__}")
        return op(self._eval(node.operand))

    def _eval_Compare(self, node: ast.Compare) -> bool:
        left = self._eval(node.left)
        for op, comparator in zip(node.ops, node.comparators):
            right = self._eval(comparator)
            if isinstance(op, self.ORDERING) and (left is None or right is None):
                return False
            if not self.COMPARISONS[type(op)](left, right):
                return False
            left = right
        return True

    def _eval_BoolOp(self, node: ast.BoolOp) -> Any:
        if isinstance(node.op, ast.And):
            result: Any = True
            for value in node.values:
                result = self._eval(value)
                if not result:
                    return result
            return result

        result = False
        for value in node.values:
            result = self._eval(value)
            if result:
                return result
        return result

    def _eval_IfExp(self, node: ast.IfExp) -> Any:
        if self._eval(node.test):
            return self._eval(node.body)
        return self._eval(node.orelse)

    def _eval_Call(self, node: ast.Call) -> Any:
        if not isinstance(node.func, ast.Name) or node.func.id not in self.functions:
            raise ConditionEvaluationError("Only whitelisted functions can be called")
        func = self.functions[node.func.id]
        args = [self._eval(arg) for arg in node.args]
        kwargs = {kw.arg: self._eval(kw.value) for kw in node.keywords}
        return func(*args, **kwargs)

    def _eval_List(self, node: ast.List) -> list:
        return [self._eval(elt) for elt in node.elts]

    def _eval_Tuple(self, node: ast.Tuple) -> tuple:
        return tuple(self._eval(elt) for elt in node.elts)

    def _eval_Set(self, node: ast.Set) -> set:
        return {self._eval(elt) for elt in node.elts}

    def _eval_Dict(self, node: ast.Dict) -> dict:
        return {self._eval(k): self._eval(v) for k, v in zip(node.keys, node.values)}


def evaluate_expression(expression: str, variables: Optional[Dict[str, Any]] = None) -> Any:
    """Evaluate an expression with variables."""
    return ExpressionParser(variables).parse(expression)
