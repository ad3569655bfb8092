from typing import Any, Dict, Tuple

from .models import (
    GATE_MODE_BOOST_DRAIN,
    DecisionPolicy,
    EffectiveWeights,
    GateSpec,
    SignalSet,
)
from .numeric import EPSILON, clamp01
from .terms import (
    SELECTOR_GATE_ORDER,
    TERM_CLIMATE,
    TERM_CONCENTRATION,
    TERM_TEMPLATE,
    TERM_TRANSFORMATION,
)

LEGACY_DRAIN_EXEMPT = frozenset({TERM_TRANSFORMATION, TERM_CONCENTRATION})


def gate_factor(raw_magnitude: float, threshold: float) -> float:
    """Ramp from 0 at ``threshold`` to 1 at a raw magnitude of 1."""
    raw = clamp01(raw_magnitude)
    if raw <= threshold:
        return 0.0
    return clamp01((raw - threshold) / max(EPSILON, 1.0 - threshold))


def _apply_gate(
    weights: EffectiveWeights,
    gate: GateSpec,
    factor: float,
    exempt: frozenset,
) -> EffectiveWeights:
    if gate.mode == GATE_MODE_BOOST_DRAIN:
        return weights.with_boost_drain(
            gate.term,
            factor,
            max_boost=gate.max_boost or 0.0,
            reduce_others=gate.reduce_others or 0.0,
            exempt=exempt,
        )
    return weights.with_pure_gate(gate.term, factor)


def _gate_report(
    gate: GateSpec,
    raw_magnitude: float,
    factor: float,
    before: float,
    after: float,
) -> Dict[str, Any]:
    return {
        "raw_magnitude": raw_magnitude,
        "threshold": gate.threshold,
        "factor": factor,
        "mode": gate.mode,
        "weight_before": before,
        "weight_after": after,
    }


def apply_urgency(
    weights: EffectiveWeights,
    signals: SignalSet,
    policy: DecisionPolicy,
) -> Tuple[EffectiveWeights, Dict[str, Any] | None]:
    """Legacy single-rule climate boost, used when the method selector is off."""
    urgency = policy.urgency
    if not urgency.enabled or not policy.climate_enabled:
        return weights, None
    raw = signals.raw_magnitude(TERM_CLIMATE)
    factor = gate_factor(raw, urgency.threshold)
    before = weights.get(TERM_CLIMATE)
    adjusted = _apply_gate(weights, urgency, factor, LEGACY_DRAIN_EXEMPT)
    report = _gate_report(urgency, raw, factor, before, adjusted.get(TERM_CLIMATE))
    report["max_boost"] = urgency.max_boost
    report["reduce_others"] = urgency.reduce_others
    return adjusted, report


def _template_enabled(signals: SignalSet) -> bool:
    signal = signals.get(TERM_TEMPLATE)
    return bool(signal is not None and signal.details.get("enabled"))


def apply_method_selector(
    weights: EffectiveWeights,
    signals: SignalSet,
    policy: DecisionPolicy,
) -> Tuple[EffectiveWeights, Dict[str, Dict[str, Any]]]:
    gating = policy.gating
    reports: Dict[str, Dict[str, Any]] = {}
    climate_factor = 0.0

    for term in SELECTOR_GATE_ORDER:
        gate = gating.gate(term)
        if gate is None or not gate.enabled:
            continue
        before = weights.get(term)
        if before == 0.0:
            continue
        if term == TERM_CLIMATE and not policy.climate_enabled:
            continue
        raw = signals.raw_magnitude(term)

        if term == TERM_TEMPLATE:
            if not _template_enabled(signals):
                continue
            factor = 1.0 if gating.template_scale_by == "always" else climate_factor
        else:
            factor = gate_factor(raw, gate.threshold)
        if term == TERM_CLIMATE:
            climate_factor = factor

        weights = _apply_gate(weights, gate, factor, gating.drain_exempt)
        reports[term] = _gate_report(gate, raw, factor, before, weights.get(term))
        if gate.mode == GATE_MODE_BOOST_DRAIN:
            reports[term]["max_boost"] = gate.max_boost
            reports[term]["reduce_others"] = gate.reduce_others
        if term == TERM_TEMPLATE:
            reports[term]["scale_by"] = gating.template_scale_by

    return weights, reports
