"""
Case condition evaluation.

The condition language is deliberately small: field equality against the
local environment, plus bool/all/any/not combinators. Nothing is executed.
"""

import logging
from typing import assert_never

from .environment import LocalEnvironment
from .exceptions import MalformedConditionError
from .schema import (
    AllCondition,
    AnyCondition,
    BoolCondition,
    CaseBranch,
    Condition,
    DefaultCondition,
    LocaleCondition,
    NotCondition,
    condition_problems,
)

logger = logging.getLogger(__name__)


class ConditionEvaluator:
    """
    Decides whether conditions match a LocalEnvironment.

    Example:
        evaluator = ConditionEvaluator()
        evaluator.matches(LocaleCondition(platform="linux"), env)  # True on Linux
    """

    def matches(
        self, condition: Condition, environment: LocalEnvironment, location: str = ""
    ) -> bool:
        """
        Evaluate a condition against the environment.

        Args:
            condition: Condition to evaluate
            environment: Local environment snapshot
            location: Node location for error messages

        Returns:
            True if the condition holds

        Raises:
            MalformedConditionError: If the condition names unsupported locale
                fields or nests ``default`` inside a combinator
        """
        problems = condition_problems(condition)
        if problems:
            fields = condition.unknown_fields() if isinstance(condition, LocaleCondition) else []
            raise MalformedConditionError("; ".join(problems), fields=fields, location=location)
        return self._evaluate(condition, environment, location)

    def _evaluate(self, condition: Condition, environment: LocalEnvironment, location: str) -> bool:
        match condition:
            case LocaleCondition():
                return all(
                    environment.locale_value(name) == expected
                    for name, expected in condition.specified().items()
                )
            case DefaultCondition():
                return True
            case BoolCondition():
                return condition.value
            case AllCondition():
                return all(self._evaluate(c, environment, location) for c in condition.conditions)
            case AnyCondition():
                return any(self._evaluate(c, environment, location) for c in condition.conditions)
            case NotCondition():
                return not self._evaluate(condition.condition, environment, location)
            case _:
                assert_never(condition)

    def branch_matches(
        self, branch: CaseBranch, environment: LocalEnvironment, location: str = ""
    ) -> bool:
        """A branch matches when its condition evaluates to its ``when`` value."""
        if branch.is_fallback:
            return True
        assert branch.condition is not None
        result = self.matches(branch.condition, environment, location) == branch.when
        logger.debug(f"{location}: condition {branch.condition!r} → {result}")
        return result


__all__ = ["ConditionEvaluator"]
