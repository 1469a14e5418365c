"""Tests for condition normalization and ConditionEvaluator."""

import pytest

from homestead.engine.conditions import ConditionEvaluator
from homestead.engine.environment import LocalEnvironment
from homestead.engine.exceptions import MalformedConditionError
from homestead.engine.schema import (
    AllCondition,
    AnyCondition,
    BoolCondition,
    CaseBranch,
    DefaultCondition,
    LocaleCondition,
    NotCondition,
    normalize_condition,
)


@pytest.fixture
def evaluator() -> ConditionEvaluator:
    return ConditionEvaluator()


# -----------------------------------------------------------------------
# Locale matching
# -----------------------------------------------------------------------


class TestLocaleMatching:
    """Field equality with absent fields as wildcards."""

    def test_matching_platform(
        self, evaluator: ConditionEvaluator, linux_env: LocalEnvironment
    ) -> None:
        assert evaluator.matches(LocaleCondition(platform="linux"), linux_env)

    def test_mismatching_platform(
        self, evaluator: ConditionEvaluator, linux_env: LocalEnvironment
    ) -> None:
        assert not evaluator.matches(LocaleCondition(platform="windows"), linux_env)

    def test_empty_condition_matches_everything(
        self, evaluator: ConditionEvaluator, macos_env: LocalEnvironment
    ) -> None:
        assert evaluator.matches(LocaleCondition(), macos_env)

    def test_every_specified_field_must_match(
        self, evaluator: ConditionEvaluator, linux_env: LocalEnvironment
    ) -> None:
        assert evaluator.matches(LocaleCondition(platform="linux", distro="ubuntu"), linux_env)
        assert not evaluator.matches(LocaleCondition(platform="linux", distro="arch"), linux_env)

    def test_field_absent_from_environment_does_not_match(
        self, evaluator: ConditionEvaluator, macos_env: LocalEnvironment
    ) -> None:
        # macos_env has no distro
        assert not evaluator.matches(LocaleCondition(distro="ubuntu"), macos_env)

    @pytest.mark.parametrize(
        "field,value", [("hostname", "devbox"), ("arch", "x86_64"), ("user", "user")]
    )
    def test_other_locale_fields(
        self, evaluator: ConditionEvaluator, linux_env: LocalEnvironment, field: str, value: str
    ) -> None:
        assert evaluator.matches(LocaleCondition(**{field: value}), linux_env)

    def test_unknown_field_is_malformed(
        self, evaluator: ConditionEvaluator, linux_env: LocalEnvironment
    ) -> None:
        condition = LocaleCondition(platform="linux", color="red")
        with pytest.raises(MalformedConditionError) as exc_info:
            evaluator.matches(condition, linux_env, location="build[0].case[1]")
        assert exc_info.value.fields == ["color"]
        assert exc_info.value.location == "build[0].case[1]"
        assert exc_info.value.field == "condition"


# -----------------------------------------------------------------------
# Combinators
# -----------------------------------------------------------------------


class TestCombinators:
    def test_default_always_matches(
        self, evaluator: ConditionEvaluator, windows_env: LocalEnvironment
    ) -> None:
        assert evaluator.matches(DefaultCondition(), windows_env)

    @pytest.mark.parametrize("value", [True, False])
    def test_bool(
        self, evaluator: ConditionEvaluator, linux_env: LocalEnvironment, value: bool
    ) -> None:
        assert evaluator.matches(BoolCondition(value=value), linux_env) is value

    def test_all(self, evaluator: ConditionEvaluator, linux_env: LocalEnvironment) -> None:
        both = AllCondition(
            conditions=[LocaleCondition(platform="linux"), LocaleCondition(distro="ubuntu")]
        )
        one = AllCondition(
            conditions=[LocaleCondition(platform="linux"), LocaleCondition(distro="fedora")]
        )
        assert evaluator.matches(both, linux_env)
        assert not evaluator.matches(one, linux_env)

    def test_any(self, evaluator: ConditionEvaluator, linux_env: LocalEnvironment) -> None:
        condition = AnyCondition(
            conditions=[LocaleCondition(platform="macos"), LocaleCondition(platform="linux")]
        )
        assert evaluator.matches(condition, linux_env)
        assert not evaluator.matches(AnyCondition(conditions=[]), linux_env)

    def test_not(self, evaluator: ConditionEvaluator, linux_env: LocalEnvironment) -> None:
        assert evaluator.matches(
            NotCondition(condition=LocaleCondition(platform="windows")), linux_env
        )

    def test_nested_default_is_malformed(
        self, evaluator: ConditionEvaluator, linux_env: LocalEnvironment
    ) -> None:
        with pytest.raises(MalformedConditionError):
            evaluator.matches(NotCondition(condition=DefaultCondition()), linux_env)

    def test_nested_unknown_field_is_malformed(
        self, evaluator: ConditionEvaluator, linux_env: LocalEnvironment
    ) -> None:
        condition = AnyCondition(conditions=[LocaleCondition(shell="zsh")])
        with pytest.raises(MalformedConditionError):
            evaluator.matches(condition, linux_env)


# -----------------------------------------------------------------------
# Branches
# -----------------------------------------------------------------------


class TestBranchMatching:
    def test_fallback_branch_matches(
        self, evaluator: ConditionEvaluator, linux_env: LocalEnvironment
    ) -> None:
        assert evaluator.branch_matches(CaseBranch(condition="default"), linux_env)
        assert evaluator.branch_matches(CaseBranch(), linux_env)

    def test_when_false_inverts(
        self, evaluator: ConditionEvaluator, linux_env: LocalEnvironment
    ) -> None:
        branch = CaseBranch(condition={"platform": "windows"}, when=False)
        assert evaluator.branch_matches(branch, linux_env)


# -----------------------------------------------------------------------
# Normalization
# -----------------------------------------------------------------------


class TestNormalizeCondition:
    def test_bare_mapping_is_locale(self) -> None:
        assert normalize_condition({"platform": "linux"}) == {
            "kind": "locale",
            "platform": "linux",
        }

    def test_default_string(self) -> None:
        assert normalize_condition("default") == {"kind": "default"}

    def test_nested_combinators(self) -> None:
        normalized = normalize_condition(
            {"all": [{"platform": "linux"}, {"not": {"bool": False}}]}
        )
        assert normalized == {
            "kind": "all",
            "conditions": [
                {"kind": "locale", "platform": "linux"},
                {"kind": "not", "condition": {"kind": "bool", "value": False}},
            ],
        }

    def test_unknown_string_rejected(self) -> None:
        with pytest.raises(ValueError, match="Unknown condition"):
            normalize_condition("always")
