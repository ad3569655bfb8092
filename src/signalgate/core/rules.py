from typing import Any, Dict, List, Mapping, Protocol

from .numeric import is_finite_number


class RuleEvaluator(Protocol):
    def __call__(
        self,
        rule_set: Any,
        facts: Mapping[str, Any],
        init_scores: Mapping[str, float],
    ) -> Mapping[str, Any]: ...


def passthrough_rules(
    rule_set: Any,
    facts: Mapping[str, Any],
    init_scores: Mapping[str, float],
) -> Dict[str, Any]:
    """Default rule stage: keeps every base score and reports no matches."""
    return {"scores": dict(init_scores), "matches": [], "assertions_failed": []}


def _failure_entry(item: Any) -> Dict[str, Any] | None:
    if isinstance(item, str):
        return {"rule_id": item}
    if not isinstance(item, Mapping):
        return None
    rule_id = item.get("rule_id", item.get("ruleId"))
    if not isinstance(rule_id, str):
        return None
    entry: Dict[str, Any] = {"rule_id": rule_id}
    explain = item.get("explain")
    if isinstance(explain, str):
        entry["explain"] = explain
    return entry


def normalize_rule_outcome(outcome: Any) -> Dict[str, Any]:
    """Coerce a rule evaluator result into ``{scores, matches, assertions_failed}``."""
    source = outcome if isinstance(outcome, Mapping) else {}

    scores_raw = source.get("scores")
    scores: Dict[str, float] = {}
    if isinstance(scores_raw, Mapping):
        for key, value in scores_raw.items():
            if isinstance(key, str) and is_finite_number(value):
                scores[key] = float(value)

    matches_raw = source.get("matches")
    matches: List[Any] = list(matches_raw) if isinstance(matches_raw, (list, tuple)) else []

    failed_raw = source.get("assertions_failed", source.get("assertionsFailed"))
    failed: List[Dict[str, Any]] = []
    if isinstance(failed_raw, (list, tuple)):
        for item in failed_raw:
            entry = _failure_entry(item)
            if entry is not None:
                failed.append(entry)

    return {"scores": scores, "matches": matches, "assertions_failed": failed}
