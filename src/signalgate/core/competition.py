"""Power-law share allocation between simultaneously active methods."""

from typing import Any, Dict, Mapping, Sequence, Tuple

from .models import CompetitionConfig, EffectiveWeights, SignalSet
from .numeric import EPSILON, clamp01


def compete(
    names: Sequence[str],
    signals: Sequence[float],
    power: float,
    min_keep: float,
) -> Tuple[Dict[str, float], Dict[str, float]]:
    """Return ``(shares, multipliers)`` keyed by method name.

    Shares are ``s_i ** power`` normalized to sum to one; a degenerate sum
    gives equal shares. Multipliers scale each share against the largest one
    and never fall below ``min_keep``.
    """
    if not names:
        return {}, {}
    strengths = [clamp01(value) ** power for value in signals]
    total = sum(strengths)
    if total <= EPSILON:
        shares = {name: 1.0 / len(names) for name in names}
    else:
        shares = {name: strength / total for name, strength in zip(names, strengths)}
    top = max(shares.values())
    multipliers = {
        name: max(min_keep, share / max(EPSILON, top)) for name, share in shares.items()
    }
    return shares, multipliers


def renormalize_scale(before: float, after: float) -> float:
    if after <= EPSILON:
        return 1.0
    return before / after


def _pick_winner(
    names: Sequence[str],
    shares: Mapping[str, float],
    signals: Mapping[str, float],
    multipliers: Mapping[str, float],
) -> Dict[str, Any]:
    winner = names[0]
    for name in names[1:]:
        if shares[name] > shares[winner]:
            winner = name
    return {
        "method": winner,
        "share": shares[winner],
        "signal": signals[winner],
        "multiplier": multipliers[winner],
    }


def resolve_competition(
    weights: EffectiveWeights,
    signals: SignalSet,
    config: CompetitionConfig,
) -> Tuple[EffectiveWeights, Dict[str, Any] | None]:
    if not config.enabled:
        return weights, None
    competitors = [name for name in config.methods if weights.get(name) != 0.0]
    if len(competitors) < 2:
        return weights, None

    signal_map = {name: signals.raw_magnitude(name) for name in competitors}
    shares, multipliers = compete(
        competitors,
        [signal_map[name] for name in competitors],
        config.power,
        config.min_keep,
    )

    total_before = weights.total(competitors)
    scaled = {name: weights.get(name) * multipliers[name] for name in competitors}
    total_after = sum(abs(value) for value in scaled.values())
    scale = 1.0
    if config.renormalize:
        scale = renormalize_scale(total_before, total_after)
        scaled = {name: value * scale for name, value in scaled.items()}
        total_after = sum(abs(value) for value in scaled.values())

    resolved = weights.with_values(scaled)
    report = {
        "methods": list(competitors),
        "power": config.power,
        "min_keep": config.min_keep,
        "renormalize": config.renormalize,
        "scale": scale,
        "signals": signal_map,
        "shares": shares,
        "multipliers": multipliers,
        "winner": _pick_winner(competitors, shares, signal_map, multipliers),
        "total_before": total_before,
        "total_after": total_after,
        "method_totals": {name: abs(resolved.get(name)) for name in competitors},
    }
    return resolved, report
