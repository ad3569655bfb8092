"""SignalGate: deterministic candidate scoring with gated signal weights."""

from .core import (
    Decision,
    GateVerdict,
    compile_policy,
    evaluate,
    evaluate_gate,
    get_or_compile,
)
from .logger import DecisionTraceLogger

__all__ = [
    "Decision",
    "DecisionTraceLogger",
    "GateVerdict",
    "compile_policy",
    "evaluate",
    "evaluate_gate",
    "get_or_compile",
]
