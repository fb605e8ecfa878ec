"""
Expression evaluator for conditional expressions.

Evaluation is pure and synchronous: (expression + data snapshot) -> bool.
Higher-level engines depend on the IExpressionEvaluator abstraction rather
than this implementation.

Empty-value semantics (missing, None, blank text, empty collection):
- equals, contains, in, ordering and matches are False on an empty field
- not_equals and not_in are their negations, hence True on an empty field
- is_empty / is_not_empty test emptiness directly
"""

import logging
import re
from abc import ABC, abstractmethod
from functools import lru_cache
from typing import Any, Mapping

from form_engine.exceptions import ExpressionError, ExpressionErrorCode
from form_engine.schemas.expressions import (
    AndExpression,
    ComparisonExpression,
    ConditionalExpression,
    EmptinessExpression,
    MatchExpression,
    MembershipExpression,
    NotExpression,
    OrExpression,
)
from form_engine.utils.values import compare_order, contains, is_empty, values_equal

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 64


@lru_cache(maxsize=256)
def _compile(pattern: str) -> "re.Pattern[str]":
    try:
        return re.compile(pattern)
    except re.error as e:
        raise ExpressionError(
            ExpressionErrorCode.INVALID_PATTERN, f"Invalid regex pattern '{pattern}': {e}"
        )


class IExpressionEvaluator(ABC):
    """
    Abstract interface for conditional expression evaluation.

    Stateless: accepts (Expression + Data) and returns a boolean.
    """

    @abstractmethod
    def evaluate(self, expression: ConditionalExpression, data: Mapping[str, Any]) -> bool:
        """
        Evaluate an expression against a data snapshot.

        Args:
            expression: Parsed expression tree
            data: Field id -> current value; never mutated

        Returns:
            Truth value of the expression

        Raises:
            ExpressionError: Expression too deep or otherwise not evaluable
        """


class ExpressionEvaluator(IExpressionEvaluator):
    """Tree-walking evaluator with short-circuit combinators and a depth cap."""

    def __init__(self, max_depth: int = DEFAULT_MAX_DEPTH):
        self.max_depth = max_depth

    def evaluate(self, expression: ConditionalExpression, data: Mapping[str, Any]) -> bool:
        return self._evaluate(expression, data, 1)

    def _evaluate(self, node: Any, data: Mapping[str, Any], depth: int) -> bool:
        if depth > self.max_depth:
            raise ExpressionError(
                ExpressionErrorCode.TOO_DEEP,
                f"Expression nesting exceeds maximum depth of {self.max_depth}",
            )

        if isinstance(node, AndExpression):
            for child in node.expressions:
                if not self._evaluate(child, data, depth + 1):
                    return False
            return True

        if isinstance(node, OrExpression):
            for child in node.expressions:
                if self._evaluate(child, data, depth + 1):
                    return True
            return False

        if isinstance(node, NotExpression):
            return not self._evaluate(node.expression, data, depth + 1)

        if isinstance(node, ComparisonExpression):
            return self._compare(node, data)

        if isinstance(node, MembershipExpression):
            found = self._is_member(data.get(node.field), node.values)
            return found if node.op == "in" else not found

        if isinstance(node, EmptinessExpression):
            empty = is_empty(data.get(node.field))
            return empty if node.op == "is_empty" else not empty

        if isinstance(node, MatchExpression):
            value = data.get(node.field)
            if is_empty(value):
                return False
            return _compile(node.pattern).search(str(value)) is not None

        raise ExpressionError(
            ExpressionErrorCode.INVALID_EXPRESSION,
            f"Unsupported expression node: {type(node).__name__}",
        )

    def _compare(self, node: ComparisonExpression, data: Mapping[str, Any]) -> bool:
        left = data.get(node.field)
        right = data.get(node.value_field) if node.value_field else node.value

        if node.op == "not_equals":
            return is_empty(left) or not values_equal(left, right)

        if is_empty(left):
            return False

        if node.op == "equals":
            return values_equal(left, right)

        if node.op == "contains":
            return contains(left, right)

        if is_empty(right):
            return False

        order = compare_order(left, right)
        if order is None:
            logger.debug(
                f"Values for '{node.field}' are not comparable with {node.op}: {left!r} vs {right!r}"
            )
            return False

        if node.op == "greater_than":
            return order > 0
        if node.op == "greater_than_or_equal":
            return order >= 0
        if node.op == "less_than":
            return order < 0
        return order <= 0

    @staticmethod
    def _is_member(value: Any, candidates: list) -> bool:
        # Multi-choice values match when any selected item is a candidate
        if is_empty(value):
            return False
        items = value if isinstance(value, (list, tuple, set, frozenset)) else [value]
        return any(values_equal(item, candidate) for item in items for candidate in candidates)


def evaluate(
    expression: ConditionalExpression,
    data: Mapping[str, Any],
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> bool:
    """Evaluate ``expression`` against ``data`` with a fresh evaluator."""
    return ExpressionEvaluator(max_depth=max_depth).evaluate(expression, data)
