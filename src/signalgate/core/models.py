from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Tuple

GATE_MODE_BOOST_DRAIN = "boost_drain"
GATE_MODE_PURE = "pure_gate"


def frozen_map(values: Mapping[str, Any] | None = None) -> Mapping[str, Any]:
    return MappingProxyType(dict(values or {}))


def _plain(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return sorted(_plain(item) for item in value)
    if hasattr(value, "as_dict"):
        return value.as_dict()
    return value


@dataclass(frozen=True)
class GateSpec:
    term: str
    enabled: bool
    threshold: float
    max_boost: float | None = None
    reduce_others: float | None = None

    @property
    def mode(self) -> str:
        if self.max_boost is None and self.reduce_others is None:
            return GATE_MODE_PURE
        return GATE_MODE_BOOST_DRAIN

    def as_dict(self) -> Dict[str, Any]:
        return {
            "term": self.term,
            "enabled": self.enabled,
            "threshold": self.threshold,
            "max_boost": self.max_boost,
            "reduce_others": self.reduce_others,
            "mode": self.mode,
        }


@dataclass(frozen=True)
class CompetitionConfig:
    enabled: bool
    methods: Tuple[str, ...]
    power: float
    min_keep: float
    renormalize: bool

    def as_dict(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "methods": list(self.methods),
            "power": self.power,
            "min_keep": self.min_keep,
            "renormalize": self.renormalize,
        }


@dataclass(frozen=True)
class FollowConfig:
    weak_threshold: float
    strong_threshold: float
    min_dominance_ratio: float
    concentration_boost: float

    def as_dict(self) -> Dict[str, Any]:
        return {
            "weak_threshold": self.weak_threshold,
            "strong_threshold": self.strong_threshold,
            "min_dominance_ratio": self.min_dominance_ratio,
            "concentration_boost": self.concentration_boost,
        }


@dataclass(frozen=True)
class GatingConfig:
    enabled: bool
    gates: Mapping[str, GateSpec]
    drain_exempt: frozenset
    template_scale_by: str
    concentration_factor: str
    follow: FollowConfig
    competition: CompetitionConfig

    def gate(self, term: str) -> GateSpec | None:
        return self.gates.get(term)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "gates": {term: spec.as_dict() for term, spec in self.gates.items()},
            "drain_exempt": sorted(self.drain_exempt),
            "template_scale_by": self.template_scale_by,
            "concentration_factor": self.concentration_factor,
            "follow": self.follow.as_dict(),
            "competition": self.competition.as_dict(),
        }


@dataclass(frozen=True)
class DecisionPolicy:
    term_weights: Mapping[str, float]
    tie_break_order: Tuple[str, ...]
    gating: GatingConfig
    urgency: GateSpec
    target: Mapping[str, float] | None
    role_profiles: Mapping[str, Mapping[str, float]]
    climate_enabled: bool
    rule_set: Any = None

    def weight(self, term: str) -> float:
        return self.term_weights.get(term, 0.0)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "term_weights": dict(self.term_weights),
            "tie_break_order": list(self.tie_break_order),
            "gating": self.gating.as_dict(),
            "urgency": self.urgency.as_dict(),
            "target": dict(self.target) if self.target is not None else None,
            "role_profiles": _plain(self.role_profiles),
            "climate_enabled": self.climate_enabled,
        }


@dataclass(frozen=True)
class Signal:
    term_id: str
    raw_magnitude: float
    contributions: Mapping[str, float]
    details: Mapping[str, Any] = field(default_factory=frozen_map)

    def contribution(self, candidate: str) -> float:
        return self.contributions.get(candidate, 0.0)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "term_id": self.term_id,
            "raw_magnitude": self.raw_magnitude,
            "contributions": dict(self.contributions),
            "details": _plain(self.details),
        }


@dataclass(frozen=True)
class SignalSet:
    candidates: Tuple[str, ...]
    signals: Mapping[str, Signal]
    missing_inputs: Tuple[str, ...]

    def get(self, term: str) -> Signal | None:
        return self.signals.get(term)

    def raw_magnitude(self, term: str) -> float:
        signal = self.signals.get(term)
        return signal.raw_magnitude if signal is not None else 0.0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "candidates": list(self.candidates),
            "signals": {term: signal.as_dict() for term, signal in self.signals.items()},
            "missing_inputs": list(self.missing_inputs),
        }


@dataclass(frozen=True)
class EffectiveWeights:
    """Per-evaluation weights; every adjustment returns a new instance."""

    values: Mapping[str, float]

    @classmethod
    def from_policy(cls, policy: DecisionPolicy) -> "EffectiveWeights":
        return cls(frozen_map(policy.term_weights))

    def get(self, term: str) -> float:
        return self.values.get(term, 0.0)

    def terms(self) -> Tuple[str, ...]:
        return tuple(self.values.keys())

    def with_values(self, updates: Mapping[str, float]) -> "EffectiveWeights":
        merged = dict(self.values)
        merged.update(updates)
        return EffectiveWeights(frozen_map(merged))

    def with_pure_gate(self, term: str, factor: float) -> "EffectiveWeights":
        return self.with_values({term: self.get(term) * factor})

    def with_boost_drain(
        self,
        term: str,
        factor: float,
        max_boost: float,
        reduce_others: float,
        exempt: Iterable[str] = (),
    ) -> "EffectiveWeights":
        if factor <= 0.0:
            return self
        skip = set(exempt)
        keep = 1.0 - reduce_others * factor
        updated: Dict[str, float] = {}
        for other, weight in self.values.items():
            if other == term:
                updated[other] = weight * (1.0 + max_boost * factor)
            elif other in skip:
                updated[other] = weight
            else:
                updated[other] = weight * keep
        return EffectiveWeights(frozen_map(updated))

    def total(self, terms: Iterable[str]) -> float:
        return sum(abs(self.get(term)) for term in terms)

    def as_dict(self) -> Dict[str, float]:
        return dict(self.values)


@dataclass(frozen=True)
class CandidateScore:
    candidate_id: str
    score: float

    def as_dict(self) -> Dict[str, Any]:
        return {"candidate_id": self.candidate_id, "score": self.score}


@dataclass(frozen=True)
class Decision:
    best: str | None
    ranking: Tuple[CandidateScore, ...]
    scores: Mapping[str, float]
    diagnostics: Mapping[str, Any]

    def as_dict(self) -> Dict[str, Any]:
        return {
            "best": self.best,
            "ranking": [item.as_dict() for item in self.ranking],
            "scores": dict(self.scores),
            "diagnostics": _plain(self.diagnostics),
        }


@dataclass(frozen=True)
class ChildVerdict:
    category: str
    score: float
    weight: float
    passed: bool
    details: Mapping[str, Any] | None = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "score": self.score,
            "weight": self.weight,
            "passed": self.passed,
            "details": _plain(self.details) if self.details is not None else None,
        }


@dataclass(frozen=True)
class AdaptiveGateConfig:
    priority_category: str
    mandatory_category: str | None
    relaxable_categories: frozenset
    strict_categories: frozenset | None
    mode_threshold: float
    high_priority_threshold: float
    strict_threshold: float
    threshold_reduction: float
    severe_failure_floor: float
    mandatory_floor: float
    priority_boost: float
    relaxable_reduction: float
    signal_base: float
    signal_confidence: float
    default_confidence: float
    penalty_divisor: float
    penalty_weight: float

    def as_dict(self) -> Dict[str, Any]:
        return {
            "priority_category": self.priority_category,
            "mandatory_category": self.mandatory_category,
            "relaxable_categories": sorted(self.relaxable_categories),
            "strict_categories": (
                sorted(self.strict_categories) if self.strict_categories is not None else None
            ),
            "mode_threshold": self.mode_threshold,
            "high_priority_threshold": self.high_priority_threshold,
            "strict_threshold": self.strict_threshold,
            "threshold_reduction": self.threshold_reduction,
            "severe_failure_floor": self.severe_failure_floor,
            "mandatory_floor": self.mandatory_floor,
            "priority_boost": self.priority_boost,
            "relaxable_reduction": self.relaxable_reduction,
            "signal_base": self.signal_base,
            "signal_confidence": self.signal_confidence,
            "default_confidence": self.default_confidence,
            "penalty_divisor": self.penalty_divisor,
            "penalty_weight": self.penalty_weight,
        }


@dataclass(frozen=True)
class AdaptiveGateState:
    priority: float
    adaptive_mode: bool
    threshold: float
    allowed_failures: int
    relaxable_failures: Tuple[str, ...]

    @property
    def mode(self) -> str:
        return "adaptive" if self.adaptive_mode else "strict"

    def as_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "priority": self.priority,
            "threshold": self.threshold,
            "allowed_failures": self.allowed_failures,
            "relaxable_failures": list(self.relaxable_failures),
        }


@dataclass(frozen=True)
class GateVerdict:
    passed: bool
    weighted_score: float
    state: AdaptiveGateState
    strict_passed: bool
    adaptive_passed: bool
    mandatory_gate: bool
    severe_relaxable_failure: bool
    contributions: Mapping[str, Mapping[str, Any]]
    failed_categories: Tuple[str, ...]

    @property
    def mode(self) -> str:
        return self.state.mode

    def as_dict(self) -> Dict[str, Any]:
        return {
            "passed": self.passed,
            "mode": self.mode,
            "weighted_score": self.weighted_score,
            "state": self.state.as_dict(),
            "strict_passed": self.strict_passed,
            "adaptive_passed": self.adaptive_passed,
            "mandatory_gate": self.mandatory_gate,
            "severe_relaxable_failure": self.severe_relaxable_failure,
            "contributions": _plain(self.contributions),
            "failed_categories": list(self.failed_categories),
        }
