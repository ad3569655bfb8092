import pytest

from signalgate import evaluate_gate
from signalgate.core.adaptive import (
    DEFAULT_GATE_CACHE,
    coerce_child,
    compile_gate_config,
    derive_priority,
    gate_state,
)
from signalgate.core.models import ChildVerdict

CONFIG = {"relaxable_categories": ["style", "tone"]}


def _child(category: str, score: float, passed: bool = True, weight: float = 1.0, **details):
    return ChildVerdict(
        category=category,
        score=score,
        weight=weight,
        passed=passed,
        details=details or None,
    )


def _children(style_score: float = 60.0) -> list:
    return [
        _child("primary", 80.0),
        _child("anchor", 75.0),
        _child("style", style_score, passed=False),
    ]


def test_compile_gate_config_defaults() -> None:
    cfg = compile_gate_config({})
    assert cfg.priority_category == "primary"
    assert cfg.mandatory_category == "anchor"
    assert cfg.strict_categories is None
    assert cfg.mode_threshold == 0.55
    assert cfg.strict_threshold == 70.0
    assert cfg.relaxable_reduction == 0.35


def test_compile_gate_config_coerces_bad_values() -> None:
    cfg = compile_gate_config(
        {"relaxable_reduction": 4.0, "strict_threshold": "high", "penalty_divisor": 0}
    )
    assert cfg.relaxable_reduction == 1.0
    assert cfg.strict_threshold == 70.0
    assert cfg.penalty_divisor > 0.0


def test_derive_priority_blend() -> None:
    cfg = compile_gate_config({})
    child = _child("primary", 80.0, balance=80, decision=90, confidence=1.0)
    assert derive_priority(child, cfg) == pytest.approx(0.85)

    penalized = _child("primary", 80.0, balance=80, decision=90, confidence=1.0, penalty_total=10)
    assert derive_priority(penalized, cfg) == pytest.approx(0.725)

    default_conf = _child("primary", 80.0, balance=80, decision=90)
    assert derive_priority(default_conf, cfg) == pytest.approx(0.85 * (0.55 + 0.65 * 0.45))

    assert derive_priority(None, cfg) == 0.0
    assert derive_priority(_child("primary", 80.0), cfg) == 0.0


def test_strict_mode_requires_every_child_to_pass() -> None:
    verdict = evaluate_gate(CONFIG, _children(), priority=0.2)
    assert verdict.mode == "strict"
    assert verdict.state.allowed_failures == 0
    assert verdict.state.threshold == 70.0
    assert verdict.strict_passed is False
    assert verdict.passed is False
    assert verdict.failed_categories == ("style",)


def test_strict_categories_limit_the_pass_check() -> None:
    config = {"relaxable_categories": ["style"], "strict_categories": ["primary", "anchor"]}
    verdict = evaluate_gate(config, _children(), priority=0.2)
    expected = (80 * 1.12 + 75 + 60 * 0.93) / (1.12 + 1 + 0.93)
    assert verdict.weighted_score == pytest.approx(expected)
    assert verdict.strict_passed is True
    assert verdict.passed is True


def test_adaptive_mode_tolerates_one_relaxable_failure() -> None:
    verdict = evaluate_gate(CONFIG, _children(), priority=0.7)
    assert verdict.mode == "adaptive"
    assert verdict.state.threshold == pytest.approx(59.5)
    assert verdict.state.allowed_failures == 1
    assert verdict.contributions["primary"]["multiplier"] == pytest.approx(1.42)
    assert verdict.contributions["style"]["multiplier"] == pytest.approx(0.755)
    assert verdict.mandatory_gate is True
    assert verdict.severe_relaxable_failure is False
    assert verdict.passed is True
    assert verdict.strict_passed is False


def test_severe_relaxable_failure_blocks_adaptive_pass() -> None:
    verdict = evaluate_gate(CONFIG, _children(style_score=40.0), priority=0.7)
    assert verdict.severe_relaxable_failure is True
    assert verdict.passed is False


def test_high_priority_allows_two_relaxable_failures() -> None:
    children = [
        _child("primary", 85.0),
        _child("anchor", 70.0),
        _child("style", 55.0, passed=False),
        _child("tone", 50.0, passed=False),
    ]
    high = evaluate_gate(CONFIG, children, priority=0.9)
    assert high.state.allowed_failures == 2
    assert high.state.relaxable_failures == ("style", "tone")
    assert high.passed is True

    medium = evaluate_gate(CONFIG, children, priority=0.7)
    assert medium.state.allowed_failures == 1
    assert medium.passed is False


def test_missing_mandatory_child_fails_the_gate() -> None:
    children = [_child("primary", 90.0), _child("style", 80.0)]
    verdict = evaluate_gate(CONFIG, children, priority=0.9)
    assert verdict.mandatory_gate is False
    assert verdict.passed is False


def test_low_mandatory_score_fails_the_gate() -> None:
    children = [_child("primary", 95.0), _child("anchor", 55.0)]
    verdict = evaluate_gate(CONFIG, children, priority=0.9)
    assert verdict.mandatory_gate is False
    assert verdict.passed is False


def test_priority_is_derived_from_primary_details() -> None:
    children = [
        _child("primary", 80.0, balance=80, decision=90, confidence=1.0),
        _child("anchor", 75.0),
    ]
    verdict = evaluate_gate(CONFIG, children)
    assert verdict.state.priority == pytest.approx(0.85)
    assert verdict.state.allowed_failures == 2
    assert verdict.state.threshold == pytest.approx(70.0 - 15.0 * 0.85)
    assert verdict.passed is True


def test_invalid_children_are_dropped_and_scores_clamped() -> None:
    children = [
        {"category": "primary", "score": 150, "weight": 1, "passed": True},
        {"category": "anchor", "score": 80, "weight": 0, "passed": True},
        {"category": "style", "score": 10, "weight": -2, "passed": False},
        {"category": "tone", "score": 10, "weight": float("nan"), "passed": False},
        "garbage",
    ]
    verdict = evaluate_gate(CONFIG, children, priority=0.0)
    assert set(verdict.contributions) == {"primary"}
    assert verdict.weighted_score == 100.0
    assert coerce_child({"category": "x", "score": 1, "weight": True}) is None


def test_no_children_scores_zero() -> None:
    verdict = evaluate_gate({}, [], priority=0.0)
    assert verdict.weighted_score == 0.0
    assert verdict.passed is False


def test_duplicate_categories_are_reported_separately() -> None:
    children = [_child("style", 60.0), _child("style", 70.0)]
    verdict = evaluate_gate({}, children, priority=0.0)
    assert set(verdict.contributions) == {"style", "style#2"}


def test_priority_never_tightens_the_gate() -> None:
    cfg = compile_gate_config({})
    previous = gate_state(0.0, cfg)
    for step in range(1, 101):
        state = gate_state(step / 100.0, cfg)
        assert state.threshold <= previous.threshold
        assert state.allowed_failures >= previous.allowed_failures
        previous = state


def test_gate_config_is_cached_by_identity() -> None:
    config = {"strict_threshold": 60}
    evaluate_gate(config, [_child("primary", 70.0)])
    assert config in DEFAULT_GATE_CACHE
    assert DEFAULT_GATE_CACHE.peek(config).strict_threshold == 60.0


def test_verdict_as_dict_is_plain() -> None:
    data = evaluate_gate(CONFIG, _children(), priority=0.7).as_dict()
    assert data["mode"] == "adaptive"
    assert data["state"]["relaxable_failures"] == ["style"]
    assert data["contributions"]["anchor"]["effective_weight"] == 1.0
