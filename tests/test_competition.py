import pytest

from signalgate.core.competition import compete, renormalize_scale, resolve_competition
from signalgate.core.models import (
    CompetitionConfig,
    EffectiveWeights,
    Signal,
    SignalSet,
    frozen_map,
)


def _signals(**magnitudes: float) -> SignalSet:
    return SignalSet(
        candidates=(),
        signals=frozen_map(
            {name: Signal(term_id=name, raw_magnitude=value, contributions=frozen_map())
             for name, value in magnitudes.items()}
        ),
        missing_inputs=(),
    )


def _config(**overrides) -> CompetitionConfig:
    values = {
        "enabled": True,
        "methods": ("follow", "transformation", "concentration"),
        "power": 2.0,
        "min_keep": 0.2,
        "renormalize": False,
    }
    values.update(overrides)
    return CompetitionConfig(**values)


def test_compete_two_terms_scenario() -> None:
    shares, multipliers = compete(["follow", "transformation"], [1.0, 0.5], 2.0, 0.2)
    assert shares["follow"] == pytest.approx(0.8)
    assert shares["transformation"] == pytest.approx(0.2)
    assert multipliers["follow"] == pytest.approx(1.0)
    assert multipliers["transformation"] == pytest.approx(0.25)


def test_compete_floors_multipliers_at_min_keep() -> None:
    shares, multipliers = compete(["a", "b"], [1.0, 0.1], 2.0, 0.2)
    assert sum(shares.values()) == pytest.approx(1.0)
    assert multipliers["b"] == 0.2
    assert all(value >= 0.2 for value in multipliers.values())


def test_compete_zero_signals_gives_equal_shares() -> None:
    shares, multipliers = compete(["a", "b", "c"], [0.0, 0.0, 0.0], 2.0, 0.2)
    assert shares == {"a": pytest.approx(1 / 3), "b": pytest.approx(1 / 3), "c": pytest.approx(1 / 3)}
    assert multipliers == {"a": pytest.approx(1.0), "b": pytest.approx(1.0), "c": pytest.approx(1.0)}


def test_renormalize_scale_guards_zero() -> None:
    assert renormalize_scale(2.0, 1.0) == 2.0
    assert renormalize_scale(2.0, 0.0) == 1.0


def test_resolve_competition_renormalizes_total_weight() -> None:
    weights = EffectiveWeights(frozen_map({"follow": 1.0, "transformation": 1.0, "balance": 1.0}))
    resolved, report = resolve_competition(
        weights, _signals(follow=1.0, transformation=0.5), _config(renormalize=True)
    )
    assert report["methods"] == ["follow", "transformation"]
    assert report["scale"] == pytest.approx(1.6)
    assert resolved.get("follow") == pytest.approx(1.6)
    assert resolved.get("transformation") == pytest.approx(0.4)
    assert resolved.get("balance") == 1.0
    assert report["total_before"] == pytest.approx(2.0)
    assert report["total_after"] == pytest.approx(2.0)
    assert report["winner"]["method"] == "follow"
    assert report["winner"]["share"] == pytest.approx(0.8)


def test_resolve_competition_without_renormalize_reduces_mass() -> None:
    weights = EffectiveWeights(frozen_map({"follow": 1.0, "transformation": 1.0}))
    resolved, report = resolve_competition(
        weights, _signals(follow=1.0, transformation=0.5), _config()
    )
    assert resolved.get("transformation") == pytest.approx(0.25)
    assert report["total_after"] == pytest.approx(1.25)
    assert report["method_totals"]["transformation"] == pytest.approx(0.25)


def test_resolve_competition_needs_two_competitors() -> None:
    weights = EffectiveWeights(frozen_map({"follow": 1.0, "transformation": 0.0}))
    resolved, report = resolve_competition(
        weights, _signals(follow=1.0, transformation=0.9), _config()
    )
    assert resolved is weights
    assert report is None


def test_resolve_competition_disabled() -> None:
    weights = EffectiveWeights(frozen_map({"follow": 1.0, "transformation": 1.0}))
    resolved, report = resolve_competition(
        weights, _signals(follow=1.0, transformation=0.9), _config(enabled=False)
    )
    assert resolved is weights
    assert report is None


def test_winner_ties_go_to_first_configured_method() -> None:
    weights = EffectiveWeights(frozen_map({"follow": 1.0, "transformation": 1.0}))
    _, report = resolve_competition(
        weights, _signals(follow=0.6, transformation=0.6), _config(methods=("transformation", "follow"))
    )
    assert report["winner"]["method"] == "transformation"
