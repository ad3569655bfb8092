from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from typing import Any, Callable, Dict, Generic, Mapping, Tuple, TypeVar

from .models import (
    CompetitionConfig,
    DecisionPolicy,
    FollowConfig,
    GateSpec,
    GatingConfig,
    frozen_map,
)
from .numeric import EPSILON, as_number, clamp, is_finite_number
from .terms import (
    KNOWN_TERMS,
    ROLE_COMPANION,
    ROLE_OFFICER,
    ROLE_OUTPUT,
    ROLE_RESOURCE,
    ROLE_WEALTH,
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

logger = logging.getLogger(__name__)

POLICY_SCHEMA_VERSION = "DP-1.0.0"

DEFAULT_TERM_WEIGHTS: Dict[str, float] = {term: 0.0 for term in KNOWN_TERMS}
DEFAULT_TERM_WEIGHTS.update({TERM_BALANCE: 1.0, TERM_ROLE: 1.0})

DEFAULT_URGENCY: Dict[str, Any] = {
    "enabled": False,
    "threshold": 0.6,
    "max_boost": 1.0,
    "reduce_others": 0.25,
}

# max_boost/reduce_others of None mark a pure gate.
DEFAULT_SELECTOR_GATES: Dict[str, Dict[str, Any]] = {
    TERM_CLIMATE: {"enabled": True, "threshold": 0.6, "max_boost": 1.0, "reduce_others": 0.25},
    TERM_EXCESS: {"enabled": True, "threshold": 0.18, "max_boost": 0.9, "reduce_others": 0.15},
    TERM_BRIDGE: {"enabled": True, "threshold": 0.25, "max_boost": None, "reduce_others": None},
    TERM_FOLLOW: {"enabled": True, "threshold": 0.55, "max_boost": None, "reduce_others": None},
    TERM_TEMPLATE: {"enabled": True, "threshold": 0.0, "max_boost": None, "reduce_others": None},
    TERM_TRANSFORMATION: {
        "enabled": True,
        "threshold": 0.55,
        "max_boost": None,
        "reduce_others": None,
    },
    TERM_CONCENTRATION: {
        "enabled": True,
        "threshold": 0.62,
        "max_boost": None,
        "reduce_others": None,
    },
}

DEFAULT_FOLLOW: Dict[str, float] = {
    "weak_threshold": -0.78,
    "min_dominance_ratio": 2.2,
    "concentration_boost": 0.35,
}

DEFAULT_COMPETITION: Dict[str, Any] = {
    "enabled": False,
    "methods": (TERM_FOLLOW, TERM_TRANSFORMATION, TERM_CONCENTRATION),
    "power": 2.0,
    "min_keep": 0.2,
    "renormalize": False,
}

DEFAULT_DRAIN_EXEMPT: Tuple[str, ...] = (TERM_TRANSFORMATION, TERM_CONCENTRATION)

DEFAULT_ROLE_PROFILES: Dict[str, Dict[str, float]] = {
    "weak": {
        ROLE_RESOURCE: 1.0,
        ROLE_COMPANION: 0.6,
        ROLE_OUTPUT: -0.2,
        ROLE_WEALTH: -0.4,
        ROLE_OFFICER: -0.4,
    },
    "strong": {
        ROLE_RESOURCE: -0.2,
        ROLE_COMPANION: -0.1,
        ROLE_OUTPUT: 0.8,
        ROLE_WEALTH: 0.6,
        ROLE_OFFICER: 0.6,
    },
}

MAX_THRESHOLD = 1.0 - EPSILON


def _section(raw: Any, key: str) -> Mapping[str, Any]:
    if not isinstance(raw, Mapping):
        return {}
    value = raw.get(key)
    return value if isinstance(value, Mapping) else {}


def _flag(value: Any, default: bool) -> bool:
    return value if isinstance(value, bool) else default


def _threshold(value: Any, fallback: float) -> float:
    return clamp(as_number(value, fallback), 0.0, MAX_THRESHOLD)


def _non_negative(value: Any, fallback: float) -> float:
    return max(0.0, as_number(value, fallback))


def _unit(value: Any, fallback: float) -> float:
    return clamp(as_number(value, fallback))


def _optional_non_negative(value: Any, fallback: float | None) -> float | None:
    if is_finite_number(value):
        return max(0.0, float(value))
    return fallback


def _optional_unit(value: Any, fallback: float | None) -> float | None:
    if is_finite_number(value):
        return clamp(float(value))
    return fallback


def _string_tuple(value: Any, fallback: Tuple[str, ...]) -> Tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return fallback
    seen: set[str] = set()
    ordered: list[str] = []
    for item in value:
        if not isinstance(item, str) or item in seen:
            continue
        seen.add(item)
        ordered.append(item)
    return tuple(ordered)


def compile_term_weights(raw: Any) -> Mapping[str, float]:
    weights_raw = _section(raw, "weights")
    weights = dict(DEFAULT_TERM_WEIGHTS)
    for key, value in weights_raw.items():
        if not isinstance(key, str):
            continue
        weights[key] = as_number(value, weights.get(key, 0.0))
    return frozen_map(weights)


def compile_tie_break_order(raw: Any) -> Tuple[str, ...]:
    value = raw.get("tie_break_order") if isinstance(raw, Mapping) else None
    return _string_tuple(value, ())


def compile_target(raw: Any) -> Mapping[str, float] | None:
    value = raw.get("target") if isinstance(raw, Mapping) else None
    if not isinstance(value, Mapping):
        return None
    target = {
        key: max(0.0, float(item))
        for key, item in value.items()
        if isinstance(key, str) and is_finite_number(item)
    }
    return frozen_map(target) if target else None


def compile_role_profiles(raw: Any) -> Mapping[str, Mapping[str, float]]:
    profiles_raw = _section(raw, "role_profiles")
    profiles: Dict[str, Mapping[str, float]] = {}
    for name, defaults in DEFAULT_ROLE_PROFILES.items():
        profile_raw = profiles_raw.get(name)
        profile = dict(defaults)
        if isinstance(profile_raw, Mapping):
            for role, value in profile_raw.items():
                if isinstance(role, str):
                    profile[role] = as_number(value, profile.get(role, 0.0))
        profiles[name] = frozen_map(profile)
    return frozen_map(profiles)


def compile_urgency(raw: Any) -> GateSpec:
    urgency_raw = _section(raw, "urgency")
    return GateSpec(
        term=TERM_CLIMATE,
        enabled=_flag(urgency_raw.get("enabled"), DEFAULT_URGENCY["enabled"]),
        threshold=_threshold(urgency_raw.get("threshold"), DEFAULT_URGENCY["threshold"]),
        max_boost=_non_negative(urgency_raw.get("max_boost"), DEFAULT_URGENCY["max_boost"]),
        reduce_others=_unit(urgency_raw.get("reduce_others"), DEFAULT_URGENCY["reduce_others"]),
    )


def _compile_gate(
    term: str,
    gate_raw: Mapping[str, Any],
    defaults: Mapping[str, Any],
) -> GateSpec:
    return GateSpec(
        term=term,
        enabled=_flag(gate_raw.get("enabled"), defaults["enabled"]),
        threshold=_threshold(gate_raw.get("threshold"), defaults["threshold"]),
        max_boost=_optional_non_negative(gate_raw.get("max_boost"), defaults["max_boost"]),
        reduce_others=_optional_unit(gate_raw.get("reduce_others"), defaults["reduce_others"]),
    )


def compile_follow(selector_raw: Mapping[str, Any]) -> FollowConfig:
    follow_raw = selector_raw.get(TERM_FOLLOW)
    follow_raw = follow_raw if isinstance(follow_raw, Mapping) else {}
    weak_threshold = clamp(
        as_number(follow_raw.get("weak_threshold"), DEFAULT_FOLLOW["weak_threshold"]),
        -1.0,
        1.0,
    )
    strong_threshold = clamp(
        as_number(follow_raw.get("strong_threshold"), abs(weak_threshold)),
        -1.0,
        1.0,
    )
    return FollowConfig(
        weak_threshold=weak_threshold,
        strong_threshold=strong_threshold,
        min_dominance_ratio=_non_negative(
            follow_raw.get("min_dominance_ratio"), DEFAULT_FOLLOW["min_dominance_ratio"]
        ),
        concentration_boost=_non_negative(
            follow_raw.get("concentration_boost"), DEFAULT_FOLLOW["concentration_boost"]
        ),
    )


def compile_competition(selector_raw: Mapping[str, Any]) -> CompetitionConfig:
    comp_raw = selector_raw.get("competition")
    comp_raw = comp_raw if isinstance(comp_raw, Mapping) else {}
    return CompetitionConfig(
        enabled=comp_raw.get("enabled") is True,
        methods=_string_tuple(comp_raw.get("methods"), DEFAULT_COMPETITION["methods"]),
        power=_non_negative(comp_raw.get("power"), DEFAULT_COMPETITION["power"]),
        min_keep=_unit(comp_raw.get("min_keep"), DEFAULT_COMPETITION["min_keep"]),
        renormalize=comp_raw.get("renormalize") is True,
    )


def compile_gating(raw: Any, urgency: GateSpec) -> GatingConfig:
    selector_raw = _section(raw, "method_selector")
    gates: Dict[str, GateSpec] = {}
    for term, defaults in DEFAULT_SELECTOR_GATES.items():
        gate_raw = selector_raw.get(term)
        gate_raw = gate_raw if isinstance(gate_raw, Mapping) else {}
        if term == TERM_CLIMATE:
            # Selector climate settings fall back to the legacy urgency rule.
            defaults = dict(defaults)
            defaults["threshold"] = urgency.threshold
            defaults["max_boost"] = urgency.max_boost
            defaults["reduce_others"] = urgency.reduce_others
        gates[term] = _compile_gate(term, gate_raw, defaults)

    template_raw = selector_raw.get(TERM_TEMPLATE)
    template_raw = template_raw if isinstance(template_raw, Mapping) else {}
    concentration_raw = selector_raw.get(TERM_CONCENTRATION)
    concentration_raw = concentration_raw if isinstance(concentration_raw, Mapping) else {}

    return GatingConfig(
        enabled=selector_raw.get("enabled") is True,
        gates=frozen_map(gates),
        drain_exempt=frozenset(
            _string_tuple(selector_raw.get("drain_exempt"), DEFAULT_DRAIN_EXEMPT)
        ),
        template_scale_by="always" if template_raw.get("scale_by") == "always" else "climate",
        concentration_factor="raw" if concentration_raw.get("factor") == "raw" else "secondary",
        follow=compile_follow(selector_raw),
        competition=compile_competition(selector_raw),
    )


def compile_policy(raw: Any) -> DecisionPolicy:
    """Compile a loosely typed decision config into an immutable policy; never raises."""
    climate_raw = _section(raw, "climate")
    urgency = compile_urgency(raw)
    return DecisionPolicy(
        term_weights=compile_term_weights(raw),
        tie_break_order=compile_tie_break_order(raw),
        gating=compile_gating(raw, urgency),
        urgency=urgency,
        target=compile_target(raw),
        role_profiles=compile_role_profiles(raw),
        climate_enabled=_flag(climate_raw.get("enabled"), False),
        rule_set=raw.get("rules") if isinstance(raw, Mapping) else None,
    )


T = TypeVar("T")


class PolicyCache(Generic[T]):
    """Compiled-config cache keyed by the identity of the raw config object.

    Entries pin the raw object so its id cannot be recycled while cached.
    Two equal but distinct config objects are compiled and cached separately.
    Compilation runs outside the lock; the first insert for a key wins.
    Hits refresh recency, so eviction drops the least recently used entry.
    """

    def __init__(self, compiler: Callable[[Any], T], max_entries: int = 256) -> None:
        self._compiler = compiler
        self._max_entries = max(1, int(max_entries))
        self._entries: "OrderedDict[int, Tuple[Any, T]]" = OrderedDict()
        self._lock = threading.Lock()

    def _lookup(self, raw: Any) -> T | None:
        entry = self._entries.get(id(raw))
        if entry is not None and entry[0] is raw:
            return entry[1]
        return None

    def get_or_compile(self, raw: Any) -> T:
        with self._lock:
            hit = self._lookup(raw)
            if hit is not None:
                self._entries.move_to_end(id(raw))
        if hit is not None:
            return hit
        compiled = self._compiler(raw)
        with self._lock:
            hit = self._lookup(raw)
            if hit is not None:
                return hit
            self._entries[id(raw)] = (raw, compiled)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)
        logger.debug("compiled config id=%s entries=%d", id(raw), len(self._entries))
        return compiled

    def peek(self, raw: Any) -> T | None:
        with self._lock:
            return self._lookup(raw)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, raw: Any) -> bool:
        return self.peek(raw) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


DEFAULT_POLICY_CACHE: PolicyCache[DecisionPolicy] = PolicyCache(compile_policy)


def get_or_compile(raw: Any) -> DecisionPolicy:
    return DEFAULT_POLICY_CACHE.get_or_compile(raw)
