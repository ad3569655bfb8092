import math
from typing import Any, Dict, Mapping, Tuple

from .models import DecisionPolicy, Signal, SignalSet, frozen_map
from .numeric import (
    EPSILON,
    clamp01,
    finite_or_zero,
    is_finite_number,
    lerp,
    max_finite,
    safe_div,
    saturate,
)
from .terms import (
    FOLLOW_MODE_NONE,
    FOLLOW_MODE_PRESSURE,
    FOLLOW_MODE_SUPPORT,
    PRESSURE_ROLES,
    ROLE_COMPANION,
    ROLE_COMPONENT_KEYS,
    ROLE_OFFICER,
    ROLE_OUTPUT,
    ROLE_RESOURCE,
    ROLE_WEALTH,
    ROLES,
    SUPPORT_ROLES,
    TERM_BALANCE,
    TERM_BRIDGE,
    TERM_CLIMATE,
    TERM_CONCENTRATION,
    TERM_EXCESS,
    TERM_FOLLOW,
    TERM_ROLE,
    TERM_TEMPLATE,
    TERM_TRANSFORMATION,
)

FOLLOW_SECONDARY_SHARE = 0.5


def _append_missing(missing_inputs: list[str], key: str) -> None:
    if key not in missing_inputs:
        missing_inputs.append(key)


def _finalize_missing_inputs(missing_inputs: list[str]) -> tuple[str, ...]:
    seen: set[str] = set()
    ordered: list[str] = []
    for key in missing_inputs:
        if key in seen:
            continue
        seen.add(key)
        ordered.append(key)
    return tuple(ordered)


def _get_block(
    source: Any,
    key: str,
    *,
    path: str,
    missing_inputs: list[str],
) -> Mapping[str, Any]:
    value = source.get(key) if isinstance(source, Mapping) else None
    if isinstance(value, Mapping):
        return value
    _append_missing(missing_inputs, path)
    return {}


def _get_number(
    source: Mapping[str, Any],
    key: str,
    *,
    path: str,
    missing_inputs: list[str],
    default: float = 0.0,
) -> float:
    value = source.get(key)
    if is_finite_number(value):
        return float(value)
    _append_missing(missing_inputs, path)
    return default


def _number_map(value: Any, candidates: Tuple[str, ...]) -> Dict[str, float]:
    if not isinstance(value, Mapping):
        return {candidate: 0.0 for candidate in candidates}
    return {candidate: finite_or_zero(value.get(candidate)) for candidate in candidates}


def _string_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def resolve_candidates(facts: Any, policy: DecisionPolicy) -> Tuple[str, ...]:
    """Candidates in input order: explicit list, else keys of ``values``, else tie-break order."""
    source = facts if isinstance(facts, Mapping) else {}
    explicit = source.get("candidates")
    if isinstance(explicit, (list, tuple)):
        raw_items = list(explicit)
    elif isinstance(source.get("values"), Mapping):
        raw_items = list(source["values"].keys())
    else:
        raw_items = list(policy.tie_break_order)
    seen: set[str] = set()
    ordered: list[str] = []
    for item in raw_items:
        if isinstance(item, str) and item not in seen:
            seen.add(item)
            ordered.append(item)
    return tuple(ordered)


def resolve_target(
    facts: Any,
    policy: DecisionPolicy,
    candidates: Tuple[str, ...],
) -> Dict[str, float]:
    if not candidates:
        return {}
    uniform = 1.0 / len(candidates)
    override = facts.get("target") if isinstance(facts, Mapping) else None
    source = override if isinstance(override, Mapping) else policy.target
    if source is None:
        return {candidate: uniform for candidate in candidates}
    target: Dict[str, float] = {}
    for candidate in candidates:
        value = source.get(candidate)
        target[candidate] = max(0.0, float(value)) if is_finite_number(value) else uniform
    return target


def deficiency_signal(
    values: Mapping[str, float],
    target: Mapping[str, float],
    candidates: Tuple[str, ...],
) -> Signal:
    deficiency = {
        candidate: saturate(max(0.0, target.get(candidate, 0.0) - values.get(candidate, 0.0)))
        for candidate in candidates
    }
    return Signal(
        term_id=TERM_BALANCE,
        raw_magnitude=clamp01(max_finite(deficiency.values())),
        contributions=frozen_map(deficiency),
        details=frozen_map({"target": dict(target)}),
    )


def role_preference_signal(
    facts: Mapping[str, Any],
    policy: DecisionPolicy,
    candidates: Tuple[str, ...],
    strength_index: float,
    *,
    missing_inputs: list[str],
) -> Signal:
    roles = _get_block(facts, "roles", path="roles", missing_inputs=missing_inputs)
    weak = policy.role_profiles.get("weak", {})
    strong = policy.role_profiles.get("strong", {})
    t = clamp01((strength_index + 1.0) / 2.0)
    preferences: Dict[str, float] = {}
    role_info: Dict[str, Dict[str, Any]] = {}
    for candidate in candidates:
        role = _string_or_none(roles.get(candidate))
        if role is None:
            preferences[candidate] = 0.0
            role_info[candidate] = {"role": None, "preference": 0.0}
            continue
        preference = lerp(weak.get(role, 0.0), strong.get(role, 0.0), t)
        preferences[candidate] = preference
        role_info[candidate] = {"role": role, "preference": preference}
    return Signal(
        term_id=TERM_ROLE,
        raw_magnitude=t,
        contributions=frozen_map(preferences),
        details=frozen_map({"strength_index": strength_index, "blend": t, "roles": role_info}),
    )


def excess_control_signal(
    facts: Mapping[str, Any],
    values: Mapping[str, float],
    target: Mapping[str, float],
    candidates: Tuple[str, ...],
    *,
    missing_inputs: list[str],
) -> Signal:
    relation = _get_block(facts, "counteracts", path="counteracts", missing_inputs=missing_inputs)
    excess = {
        candidate: saturate(max(0.0, values.get(candidate, 0.0) - target.get(candidate, 0.0)))
        for candidate in candidates
    }
    scores: Dict[str, float] = {}
    for candidate in candidates:
        targets = relation.get(candidate)
        if not isinstance(targets, (list, tuple)):
            scores[candidate] = 0.0
            continue
        counteracted = dict.fromkeys(other for other in targets if isinstance(other, str))
        scores[candidate] = saturate(sum(excess.get(other, 0.0) for other in counteracted))
    max_excess = max_finite(excess.values())
    headroom = max((1.0 - value for value in target.values()), default=1.0)
    normalized = clamp01(saturate(safe_div(max_excess, headroom)))
    return Signal(
        term_id=TERM_EXCESS,
        raw_magnitude=normalized,
        contributions=frozen_map(scores),
        details=frozen_map(
            {"excess": excess, "max_excess": max_excess, "max_excess_normalized": normalized}
        ),
    )


def climate_signal(
    facts: Mapping[str, Any],
    policy: DecisionPolicy,
    candidates: Tuple[str, ...],
    *,
    missing_inputs: list[str],
) -> Signal:
    if not policy.climate_enabled:
        return Signal(
            term_id=TERM_CLIMATE,
            raw_magnitude=0.0,
            contributions=frozen_map(),
            details=frozen_map({"enabled": False}),
        )
    climate = _get_block(facts, "climate", path="climate", missing_inputs=missing_inputs)
    need = _get_block(climate, "need", path="climate.need", missing_inputs=missing_inputs)
    temp = finite_or_zero(need.get("temp"))
    moist = finite_or_zero(need.get("moist"))
    magnitude = saturate(math.hypot(temp, moist))
    scores = climate.get("scores")
    if not isinstance(scores, Mapping):
        _append_missing(missing_inputs, "climate.scores")
    return Signal(
        term_id=TERM_CLIMATE,
        raw_magnitude=clamp01(magnitude),
        contributions=frozen_map(_number_map(scores, candidates)),
        details=frozen_map(
            {"enabled": True, "need": {"temp": temp, "moist": moist}, "magnitude": magnitude}
        ),
    )


def template_signal(facts: Mapping[str, Any], candidates: Tuple[str, ...]) -> Signal:
    climate = facts.get("climate") if isinstance(facts.get("climate"), Mapping) else {}
    template = climate.get("template") if isinstance(climate.get("template"), Mapping) else {}
    enabled = template.get("enabled") is True
    bonus = _number_map(template.get("bonus"), candidates) if enabled else {}
    reasons = template.get("reasons")
    return Signal(
        term_id=TERM_TEMPLATE,
        raw_magnitude=1.0 if enabled else 0.0,
        contributions=frozen_map(bonus),
        details=frozen_map(
            {
                "enabled": enabled,
                "primary": _string_or_none(template.get("primary")),
                "secondary": _string_or_none(template.get("secondary")),
                "reasons": [item for item in reasons if isinstance(item, str)]
                if isinstance(reasons, list)
                else [],
            }
        ),
    )


def bridge_signal(
    facts: Mapping[str, Any],
    candidates: Tuple[str, ...],
    *,
    missing_inputs: list[str],
) -> Signal:
    bridge = _get_block(facts, "bridge", path="bridge", missing_inputs=missing_inputs)
    intensities = _number_map(bridge.get("intensities"), candidates)
    raw_max = bridge.get("max_intensity")
    max_intensity = float(raw_max) if is_finite_number(raw_max) else max_finite(intensities.values())
    raw_effective = bridge.get("effective_max_intensity")
    effective = float(raw_effective) if is_finite_number(raw_effective) else max_intensity
    details: Dict[str, Any] = {
        "max_intensity": max_intensity,
        "effective_max_intensity": effective,
    }
    for key in ("sum_intensity", "dominance", "dispersion"):
        if is_finite_number(bridge.get(key)):
            details[key] = float(bridge[key])
    return Signal(
        term_id=TERM_BRIDGE,
        raw_magnitude=clamp01(effective),
        contributions=frozen_map(intensities),
        details=frozen_map(details),
    )


def follow_potential(
    *,
    strength_index: float,
    support: float,
    pressure: float,
    weak_threshold: float,
    strong_threshold: float,
    min_dominance_ratio: float,
) -> Dict[str, Any]:
    """Larger of the weak-side and strong-side dominance ramps."""
    min_dom = max(EPSILON, min_dominance_ratio)

    weak_span = max(EPSILON, weak_threshold + 1.0)
    weak_factor = (
        clamp01((weak_threshold - strength_index) / weak_span)
        if strength_index < weak_threshold
        else 0.0
    )
    weak_ratio = saturate(safe_div(pressure, support))
    weak_potential = clamp01(
        weak_factor * clamp01(saturate((weak_ratio - min_dominance_ratio) / min_dom))
    )

    strong_span = max(EPSILON, 1.0 - strong_threshold)
    strong_factor = (
        clamp01((strength_index - strong_threshold) / strong_span)
        if strength_index > strong_threshold
        else 0.0
    )
    strong_ratio = saturate(safe_div(support, pressure))
    strong_potential = clamp01(
        strong_factor * clamp01(saturate((strong_ratio - min_dominance_ratio) / min_dom))
    )

    if strong_potential > weak_potential:
        return {
            "potential": strong_potential,
            "dominance_ratio": strong_ratio,
            "mode": FOLLOW_MODE_SUPPORT if strong_potential > 0 else FOLLOW_MODE_NONE,
            "weak_potential": weak_potential,
            "strong_potential": strong_potential,
        }
    return {
        "potential": weak_potential,
        "dominance_ratio": weak_ratio,
        "mode": FOLLOW_MODE_PRESSURE if weak_potential > 0 else FOLLOW_MODE_NONE,
        "weak_potential": weak_potential,
        "strong_potential": strong_potential,
    }


def dominant_support_role(components: Mapping[str, Any]) -> str:
    companions = finite_or_zero(components.get(ROLE_COMPONENT_KEYS[ROLE_COMPANION]))
    resources = finite_or_zero(components.get(ROLE_COMPONENT_KEYS[ROLE_RESOURCE]))
    return ROLE_COMPANION if companions >= resources else ROLE_RESOURCE


def dominant_pressure_role(components: Mapping[str, Any]) -> str:
    outputs = finite_or_zero(components.get(ROLE_COMPONENT_KEYS[ROLE_OUTPUT]))
    wealth = finite_or_zero(components.get(ROLE_COMPONENT_KEYS[ROLE_WEALTH]))
    officers = finite_or_zero(components.get(ROLE_COMPONENT_KEYS[ROLE_OFFICER]))
    if outputs >= wealth and outputs >= officers:
        return ROLE_OUTPUT
    if wealth >= outputs and wealth >= officers:
        return ROLE_WEALTH
    return ROLE_OFFICER


def _concentration_factors(facts: Mapping[str, Any]) -> Tuple[float, float]:
    block = facts.get("concentration")
    if not isinstance(block, Mapping):
        return 0.0, 0.0
    return finite_or_zero(block.get("factor")), finite_or_zero(block.get("secondary_factor"))


def follow_signal(
    facts: Mapping[str, Any],
    policy: DecisionPolicy,
    values: Mapping[str, float],
    candidates: Tuple[str, ...],
    strength: Mapping[str, Any],
    *,
    missing_inputs: list[str],
) -> Signal:
    follow_cfg = policy.gating.follow
    components = strength.get("components")
    components = components if isinstance(components, Mapping) else {}
    precomputed = facts.get("follow")
    use_precomputed = isinstance(precomputed, Mapping) and precomputed.get("enabled") is True

    if use_precomputed:
        mode = precomputed.get("mode")
        mode = mode if mode in (FOLLOW_MODE_SUPPORT, FOLLOW_MODE_PRESSURE) else FOLLOW_MODE_NONE
        potential_raw = clamp01(precomputed.get("potential_raw"))
        potential_boosted = clamp01(precomputed.get("potential"))
        dominance_ratio = finite_or_zero(precomputed.get("dominance_ratio"))
        concentration_factor = finite_or_zero(precomputed.get("concentration_factor"))
        concentration_boost = finite_or_zero(precomputed.get("concentration_boost"))
        condition = precomputed.get("condition_factor")
        condition_factor = float(condition) if is_finite_number(condition) else None
        potential = clamp01(condition_factor) if condition_factor is not None else potential_boosted
        declared_role = precomputed.get("dominant_role")
    else:
        info = follow_potential(
            strength_index=finite_or_zero(strength.get("index")),
            support=max(0.0, finite_or_zero(strength.get("support"))),
            pressure=max(0.0, finite_or_zero(strength.get("pressure"))),
            weak_threshold=follow_cfg.weak_threshold,
            strong_threshold=follow_cfg.strong_threshold,
            min_dominance_ratio=follow_cfg.min_dominance_ratio,
        )
        mode = info["mode"]
        potential_raw = info["potential"]
        dominance_ratio = info["dominance_ratio"]
        raw_factor, secondary = _concentration_factors(facts)
        concentration_factor = secondary if secondary > 0 else raw_factor
        concentration_boost = follow_cfg.concentration_boost
        potential_boosted = clamp01(
            saturate(potential_raw * (1.0 + concentration_factor * concentration_boost))
        )
        condition_factor = None
        potential = potential_boosted
        declared_role = None

    if isinstance(declared_role, str) and declared_role in ROLES:
        dominant_role = declared_role
    elif mode == FOLLOW_MODE_SUPPORT:
        dominant_role = dominant_support_role(components)
    elif mode == FOLLOW_MODE_PRESSURE:
        dominant_role = dominant_pressure_role(components)
    else:
        dominant_role = ROLE_COMPANION

    roles = facts.get("roles") if isinstance(facts.get("roles"), Mapping) else {}
    scores: Dict[str, float] = {}
    for candidate in candidates:
        role = roles.get(candidate)
        value = values.get(candidate, 0.0)
        if mode == FOLLOW_MODE_SUPPORT:
            if role == dominant_role:
                scores[candidate] = value
            elif role in SUPPORT_ROLES:
                scores[candidate] = FOLLOW_SECONDARY_SHARE * value
            else:
                scores[candidate] = 0.0
        elif mode == FOLLOW_MODE_PRESSURE and dominant_role in PRESSURE_ROLES:
            scores[candidate] = value if role == dominant_role else 0.0
        else:
            scores[candidate] = 0.0

    details: Dict[str, Any] = {
        "mode": mode,
        "potential": potential,
        "potential_raw": potential_raw,
        "potential_boosted": potential_boosted,
        "dominance_ratio": dominance_ratio,
        "dominant_role": dominant_role,
        "concentration_factor": concentration_factor,
        "concentration_boost": concentration_boost,
        "precomputed": use_precomputed,
    }
    if condition_factor is not None:
        details["condition_factor"] = condition_factor
    return Signal(
        term_id=TERM_FOLLOW,
        raw_magnitude=clamp01(potential),
        contributions=frozen_map(scores),
        details=frozen_map(details),
    )


def transformation_signal(
    facts: Mapping[str, Any],
    candidates: Tuple[str, ...],
    *,
    missing_inputs: list[str],
) -> Signal:
    block = _get_block(facts, "transformation", path="transformation", missing_inputs=missing_inputs)
    if is_finite_number(block.get("effective_factor")):
        factor = float(block["effective_factor"])
    else:
        factor = finite_or_zero(block.get("factor"))
    candidate = _string_or_none(block.get("candidate"))
    scores = {item: 0.0 for item in candidates}
    if candidate in scores:
        scores[candidate] = factor
    return Signal(
        term_id=TERM_TRANSFORMATION,
        raw_magnitude=clamp01(factor),
        contributions=frozen_map(scores),
        details=frozen_map(
            {"factor": factor, "candidate": candidate, "pair": _string_or_none(block.get("pair"))}
        ),
    )


def concentration_signal(
    facts: Mapping[str, Any],
    policy: DecisionPolicy,
    candidates: Tuple[str, ...],
    *,
    missing_inputs: list[str],
) -> Signal:
    block = _get_block(facts, "concentration", path="concentration", missing_inputs=missing_inputs)
    raw_factor = finite_or_zero(block.get("factor"))
    secondary = finite_or_zero(block.get("secondary_factor"))
    if policy.gating.concentration_factor == "raw" or secondary <= 0:
        strength = raw_factor
    else:
        strength = secondary
    signal = clamp01(strength)
    candidate = _string_or_none(block.get("candidate"))
    scores = {item: 0.0 for item in candidates}
    if candidate in scores:
        scores[candidate] = signal
    return Signal(
        term_id=TERM_CONCENTRATION,
        raw_magnitude=signal,
        contributions=frozen_map(scores),
        details=frozen_map(
            {
                "candidate": candidate,
                "factor": raw_factor,
                "secondary_factor": secondary,
                "source": policy.gating.concentration_factor,
            }
        ),
    )


def compute_signals(facts: Any, policy: DecisionPolicy) -> SignalSet:
    """Run every term of the library against ``facts``; absent blocks become zero signals."""
    source = facts if isinstance(facts, Mapping) else {}
    missing_inputs: list[str] = []
    candidates = resolve_candidates(source, policy)

    values_raw = source.get("values")
    if not isinstance(values_raw, Mapping):
        _append_missing(missing_inputs, "values")
    values = _number_map(values_raw, candidates)
    target = resolve_target(source, policy, candidates)

    strength = _get_block(source, "strength", path="strength", missing_inputs=missing_inputs)
    strength_index = _get_number(
        strength, "index", path="strength.index", missing_inputs=missing_inputs
    )
    strength_index = max(-1.0, min(1.0, strength_index))

    signals = (
        deficiency_signal(values, target, candidates),
        role_preference_signal(
            source, policy, candidates, strength_index, missing_inputs=missing_inputs
        ),
        climate_signal(source, policy, candidates, missing_inputs=missing_inputs),
        excess_control_signal(source, values, target, candidates, missing_inputs=missing_inputs),
        bridge_signal(source, candidates, missing_inputs=missing_inputs),
        follow_signal(
            source, policy, values, candidates, strength, missing_inputs=missing_inputs
        ),
        template_signal(source, candidates),
        transformation_signal(source, candidates, missing_inputs=missing_inputs),
        concentration_signal(source, policy, candidates, missing_inputs=missing_inputs),
    )
    return SignalSet(
        candidates=candidates,
        signals=frozen_map({signal.term_id: signal for signal in signals}),
        missing_inputs=_finalize_missing_inputs(missing_inputs),
    )
