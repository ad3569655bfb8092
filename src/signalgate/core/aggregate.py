import logging
from typing import Any, Dict, Mapping, Tuple

from .competition import resolve_competition
from .models import (
    CandidateScore,
    Decision,
    DecisionPolicy,
    EffectiveWeights,
    SignalSet,
    frozen_map,
)
from .numeric import is_finite_number, saturate
from .policy import DEFAULT_POLICY_CACHE, PolicyCache
from .rules import RuleEvaluator, normalize_rule_outcome, passthrough_rules
from .signals import compute_signals
from .weights import apply_method_selector, apply_urgency

logger = logging.getLogger(__name__)


def base_scores(
    signals: SignalSet,
    weights: EffectiveWeights,
) -> Dict[str, float]:
    scores = {candidate: 0.0 for candidate in signals.candidates}
    for term, signal in signals.signals.items():
        weight = weights.get(term)
        if weight == 0.0:
            continue
        for candidate in signals.candidates:
            scores[candidate] = saturate(
                scores[candidate] + saturate(weight * signal.contribution(candidate))
            )
    return scores


def rank_candidates(
    scores: Mapping[str, float],
    candidates: Tuple[str, ...],
    tie_break_order: Tuple[str, ...],
) -> Tuple[CandidateScore, ...]:
    """Score descending, then tie-break position, then input order."""
    tie_index = {candidate: index for index, candidate in enumerate(tie_break_order)}
    fallback = len(tie_break_order)
    ordered = sorted(
        enumerate(candidates),
        key=lambda item: (
            -scores.get(item[1], 0.0),
            tie_index.get(item[1], fallback),
            item[0],
        ),
    )
    return tuple(
        CandidateScore(candidate_id=candidate, score=scores.get(candidate, 0.0))
        for _, candidate in ordered
    )


def adjust_weights(
    signals: SignalSet,
    policy: DecisionPolicy,
) -> Tuple[EffectiveWeights, Dict[str, Any] | None, Dict[str, Any]]:
    """Urgency, then selector gates, then competition; returns weights and diagnostics."""
    weights = EffectiveWeights.from_policy(policy)
    urgency_report = None
    gate_reports: Dict[str, Any] = {}
    competition_report = None
    if policy.gating.enabled:
        weights, gate_reports = apply_method_selector(weights, signals, policy)
        weights, competition_report = resolve_competition(
            weights, signals, policy.gating.competition
        )
    else:
        weights, urgency_report = apply_urgency(weights, signals, policy)
    selector = {
        "enabled": policy.gating.enabled,
        "gates": gate_reports,
        "competition": competition_report,
    }
    return weights, urgency_report, selector


def _resolve_policy(config: Any, cache: PolicyCache | None) -> DecisionPolicy:
    if isinstance(config, DecisionPolicy):
        return config
    return (cache or DEFAULT_POLICY_CACHE).get_or_compile(config)


def evaluate(
    config: Any,
    facts: Any,
    *,
    rules: RuleEvaluator | None = None,
    cache: PolicyCache | None = None,
) -> Decision:
    policy = _resolve_policy(config, cache)
    facts_map = facts if isinstance(facts, Mapping) else {}
    signals = compute_signals(facts_map, policy)
    weights, urgency, selector = adjust_weights(signals, policy)
    base = base_scores(signals, weights)

    evaluator = rules or passthrough_rules
    outcome = normalize_rule_outcome(evaluator(policy.rule_set, facts_map, dict(base)))
    scores = dict(base)
    for candidate, value in outcome["scores"].items():
        if candidate in scores and is_finite_number(value):
            scores[candidate] = float(value)
    if outcome["assertions_failed"]:
        logger.debug("rule assertions failed: %s", outcome["assertions_failed"])

    ranking = rank_candidates(scores, signals.candidates, policy.tie_break_order)
    if ranking:
        best = ranking[0].candidate_id
    else:
        best = policy.tie_break_order[0] if policy.tie_break_order else None

    diagnostics = {
        "signals": {
            term: {"raw_magnitude": signal.raw_magnitude, "details": signal.details}
            for term, signal in signals.signals.items()
        },
        "effective_weights": weights.as_dict(),
        "urgency": urgency,
        "method_selector": selector,
        "base_scores": base,
        "rules": {
            "matches": outcome["matches"],
            "assertions_failed": outcome["assertions_failed"],
        },
        "missing_inputs": list(signals.missing_inputs),
    }
    return Decision(
        best=best,
        ranking=ranking,
        scores=frozen_map(scores),
        diagnostics=frozen_map(diagnostics),
    )
