"""Hierarchical pass/fail gate whose strictness relaxes with a derived priority."""

from typing import Any, Dict, Iterable, List, Mapping, Tuple

from .models import AdaptiveGateConfig, AdaptiveGateState, ChildVerdict, GateVerdict, frozen_map
from .numeric import EPSILON, as_number, clamp, clamp01, finite_or_zero, is_finite_number
from .policy import PolicyCache

DEFAULT_GATE_CONFIG: Dict[str, Any] = {
    "priority_category": "primary",
    "mandatory_category": "anchor",
    "relaxable_categories": [],
    "strict_categories": None,
    "mode_threshold": 0.55,
    "high_priority_threshold": 0.8,
    "strict_threshold": 70.0,
    "threshold_reduction": 15.0,
    "severe_failure_floor": 45.0,
    "mandatory_floor": 60.0,
    "priority_boost": 0.6,
    "relaxable_reduction": 0.35,
    "signal_base": 0.55,
    "signal_confidence": 0.45,
    "default_confidence": 0.65,
    "penalty_divisor": 20.0,
    "penalty_weight": 0.25,
}

SCORE_MAX = 100.0


def _categories(value: Any) -> frozenset | None:
    if not isinstance(value, (list, tuple, set, frozenset)):
        return None
    return frozenset(item for item in value if isinstance(item, str))


def _score(value: Any) -> float:
    return clamp(finite_or_zero(value), 0.0, SCORE_MAX)


def compile_gate_config(raw: Any) -> AdaptiveGateConfig:
    source = raw if isinstance(raw, Mapping) else {}

    def number(key: str) -> float:
        return as_number(source.get(key), DEFAULT_GATE_CONFIG[key])

    def non_negative(key: str) -> float:
        return max(0.0, number(key))

    priority_category = source.get("priority_category")
    if not isinstance(priority_category, str) or not priority_category:
        priority_category = DEFAULT_GATE_CONFIG["priority_category"]
    if "mandatory_category" in source:
        mandatory = source.get("mandatory_category")
        mandatory_category = mandatory if isinstance(mandatory, str) and mandatory else None
    else:
        mandatory_category = DEFAULT_GATE_CONFIG["mandatory_category"]

    return AdaptiveGateConfig(
        priority_category=priority_category,
        mandatory_category=mandatory_category,
        relaxable_categories=_categories(source.get("relaxable_categories")) or frozenset(),
        strict_categories=_categories(source.get("strict_categories")),
        mode_threshold=clamp01(number("mode_threshold")),
        high_priority_threshold=clamp01(number("high_priority_threshold")),
        strict_threshold=clamp(number("strict_threshold"), 0.0, SCORE_MAX),
        threshold_reduction=non_negative("threshold_reduction"),
        severe_failure_floor=clamp(number("severe_failure_floor"), 0.0, SCORE_MAX),
        mandatory_floor=clamp(number("mandatory_floor"), 0.0, SCORE_MAX),
        priority_boost=non_negative("priority_boost"),
        relaxable_reduction=clamp01(number("relaxable_reduction")),
        signal_base=non_negative("signal_base"),
        signal_confidence=non_negative("signal_confidence"),
        default_confidence=clamp01(number("default_confidence")),
        penalty_divisor=max(EPSILON, number("penalty_divisor")),
        penalty_weight=non_negative("penalty_weight"),
    )


DEFAULT_GATE_CACHE: PolicyCache[AdaptiveGateConfig] = PolicyCache(compile_gate_config)


def coerce_child(child: Any) -> ChildVerdict | None:
    """Accept a ``ChildVerdict`` or a plain mapping; drop children without usable weight."""
    if isinstance(child, ChildVerdict):
        category, score, weight = child.category, child.score, child.weight
        passed, details = child.passed, child.details
    elif isinstance(child, Mapping):
        category = child.get("category")
        score, weight = child.get("score"), child.get("weight")
        passed, details = child.get("passed"), child.get("details")
    else:
        return None
    if not isinstance(category, str) or not is_finite_number(weight) or weight <= 0:
        return None
    return ChildVerdict(
        category=category,
        score=_score(score),
        weight=float(weight),
        passed=passed is True,
        details=details if isinstance(details, Mapping) else None,
    )


def _first(children: Iterable[ChildVerdict], category: str | None) -> ChildVerdict | None:
    if category is None:
        return None
    for child in children:
        if child.category == category:
            return child
    return None


def derive_priority(child: ChildVerdict | None, config: AdaptiveGateConfig) -> float:
    if child is None or child.details is None:
        return 0.0
    details = child.details
    balance = _score(details.get("balance"))
    decision = _score(details.get("decision"))
    confidence = clamp01(as_number(details.get("confidence"), config.default_confidence))
    penalty = max(0.0, finite_or_zero(details.get("penalty_total")))
    blend = config.signal_base + confidence * config.signal_confidence
    penalty_term = min(1.0, penalty / config.penalty_divisor) * config.penalty_weight
    return clamp01(((balance + decision) / (2 * SCORE_MAX)) * blend - penalty_term)


def gate_state(
    priority: float,
    config: AdaptiveGateConfig,
    relaxable_failures: Tuple[str, ...] = (),
) -> AdaptiveGateState:
    adaptive_mode = priority >= config.mode_threshold
    if adaptive_mode:
        allowed = 2 if priority >= config.high_priority_threshold else 1
        threshold = config.strict_threshold - config.threshold_reduction * priority
    else:
        allowed = 0
        threshold = config.strict_threshold
    return AdaptiveGateState(
        priority=priority,
        adaptive_mode=adaptive_mode,
        threshold=threshold,
        allowed_failures=allowed,
        relaxable_failures=relaxable_failures,
    )


def weight_multiplier(category: str, priority: float, config: AdaptiveGateConfig) -> float:
    if category == config.priority_category:
        return 1.0 + priority * config.priority_boost
    if category in config.relaxable_categories:
        return 1.0 - priority * config.relaxable_reduction
    return 1.0


def _contribution_key(category: str, taken: Mapping[str, Any]) -> str:
    if category not in taken:
        return category
    suffix = 2
    while f"{category}#{suffix}" in taken:
        suffix += 1
    return f"{category}#{suffix}"


def evaluate_gate(
    config: Any,
    children: Iterable[Any],
    *,
    priority: float | None = None,
    cache: PolicyCache | None = None,
) -> GateVerdict:
    if isinstance(config, AdaptiveGateConfig):
        cfg = config
    else:
        cfg = (cache or DEFAULT_GATE_CACHE).get_or_compile(config)

    verdicts: List[ChildVerdict] = []
    for child in children:
        coerced = coerce_child(child)
        if coerced is not None:
            verdicts.append(coerced)

    priority_child = _first(verdicts, cfg.priority_category)
    if priority is not None:
        level = clamp01(priority)
    else:
        level = derive_priority(priority_child, cfg)

    contributions: Dict[str, Dict[str, Any]] = {}
    total_weight = 0.0
    total_score = 0.0
    failed: List[str] = []
    relaxable_failed: List[ChildVerdict] = []
    for child in verdicts:
        multiplier = weight_multiplier(child.category, level, cfg)
        effective = child.weight * multiplier
        total_weight += effective
        total_score += child.score * effective
        contributions[_contribution_key(child.category, contributions)] = {
            "score": child.score,
            "weight": child.weight,
            "multiplier": multiplier,
            "effective_weight": effective,
            "passed": child.passed,
        }
        if not child.passed:
            failed.append(child.category)
            if child.category in cfg.relaxable_categories:
                relaxable_failed.append(child)

    weighted = total_score / total_weight if total_weight > EPSILON else 0.0
    state = gate_state(level, cfg, tuple(child.category for child in relaxable_failed))

    strict_children = [
        child
        for child in verdicts
        if cfg.strict_categories is None or child.category in cfg.strict_categories
    ]
    strict_passed = all(child.passed for child in strict_children) and (
        weighted >= cfg.strict_threshold
    )

    mandatory_child = _first(verdicts, cfg.mandatory_category)
    mandatory_ok = cfg.mandatory_category is None or (
        mandatory_child is not None and mandatory_child.score >= cfg.mandatory_floor
    )
    mandatory_gate = bool(priority_child is not None and priority_child.passed and mandatory_ok)
    severe = any(child.score < cfg.severe_failure_floor for child in relaxable_failed)
    adaptive_passed = (
        mandatory_gate
        and weighted >= state.threshold
        and not severe
        and len(relaxable_failed) <= state.allowed_failures
    )

    return GateVerdict(
        passed=adaptive_passed if state.adaptive_mode else strict_passed,
        weighted_score=weighted,
        state=state,
        strict_passed=strict_passed,
        adaptive_passed=adaptive_passed,
        mandatory_gate=mandatory_gate,
        severe_relaxable_failure=severe,
        contributions=frozen_map(contributions),
        failed_categories=tuple(failed),
    )
