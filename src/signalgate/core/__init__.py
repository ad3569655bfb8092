"""Decision engine: policy compilation, signals, weight gating and adaptive gates."""

from .adaptive import DEFAULT_GATE_CACHE, compile_gate_config, derive_priority, evaluate_gate
from .aggregate import evaluate, rank_candidates
from .competition import compete, renormalize_scale, resolve_competition
from .models import (
    AdaptiveGateConfig,
    CandidateScore,
    ChildVerdict,
    Decision,
    DecisionPolicy,
    EffectiveWeights,
    GateVerdict,
    Signal,
    SignalSet,
)
from .numeric import EPSILON, clamp01
from .policy import (
    DEFAULT_POLICY_CACHE,
    POLICY_SCHEMA_VERSION,
    PolicyCache,
    compile_policy,
    get_or_compile,
)
from .rules import RuleEvaluator, normalize_rule_outcome, passthrough_rules
from .signals import compute_signals
from .weights import apply_method_selector, apply_urgency, gate_factor

__all__ = [
    "AdaptiveGateConfig",
    "CandidateScore",
    "ChildVerdict",
    "DEFAULT_GATE_CACHE",
    "DEFAULT_POLICY_CACHE",
    "Decision",
    "DecisionPolicy",
    "EPSILON",
    "EffectiveWeights",
    "GateVerdict",
    "POLICY_SCHEMA_VERSION",
    "PolicyCache",
    "RuleEvaluator",
    "Signal",
    "SignalSet",
    "apply_method_selector",
    "apply_urgency",
    "clamp01",
    "compete",
    "compile_gate_config",
    "compile_policy",
    "compute_signals",
    "derive_priority",
    "evaluate",
    "evaluate_gate",
    "gate_factor",
    "get_or_compile",
    "normalize_rule_outcome",
    "passthrough_rules",
    "rank_candidates",
    "renormalize_scale",
    "resolve_competition",
]
