import math

from signalgate.core.models import GATE_MODE_BOOST_DRAIN, GATE_MODE_PURE
from signalgate.core.policy import MAX_THRESHOLD, compile_policy


def test_empty_config_uses_documented_defaults() -> None:
    policy = compile_policy({})
    assert policy.weight("balance") == 1.0
    assert policy.weight("role") == 1.0
    assert policy.weight("follow") == 0.0
    assert policy.tie_break_order == ()
    assert policy.target is None
    assert policy.climate_enabled is False
    assert policy.gating.enabled is False
    assert policy.urgency.enabled is False
    assert policy.gating.gate("climate").mode == GATE_MODE_BOOST_DRAIN
    assert policy.gating.gate("bridge").mode == GATE_MODE_PURE
    assert policy.gating.drain_exempt == frozenset({"transformation", "concentration"})


def test_non_mapping_config_never_raises() -> None:
    for raw in (None, 42, "config", ["weights"]):
        policy = compile_policy(raw)
        assert policy.weight("balance") == 1.0
        assert policy.rule_set is None


def test_malformed_fields_fall_back_to_defaults() -> None:
    policy = compile_policy(
        {
            "weights": {"balance": "heavy", "excess": float("nan"), "bridge": True},
            "tie_break_order": "ABC",
            "urgency": {"threshold": 5, "max_boost": -3, "reduce_others": 7},
            "climate": {"enabled": "yes"},
        }
    )
    assert policy.weight("balance") == 1.0
    assert policy.weight("excess") == 0.0
    assert policy.weight("bridge") == 0.0
    assert policy.tie_break_order == ()
    assert policy.urgency.threshold == MAX_THRESHOLD
    assert policy.urgency.max_boost == 0.0
    assert policy.urgency.reduce_others == 1.0
    assert policy.climate_enabled is False


def test_tie_break_order_is_deduplicated_and_strings_only() -> None:
    policy = compile_policy({"tie_break_order": ["B", "A", "B", 3, None, "C"]})
    assert policy.tie_break_order == ("B", "A", "C")


def test_selector_climate_gate_falls_back_to_urgency_values() -> None:
    policy = compile_policy(
        {
            "urgency": {"threshold": 0.3, "max_boost": 2.0, "reduce_others": 0.5},
            "method_selector": {"enabled": True},
        }
    )
    climate = policy.gating.gate("climate")
    assert policy.gating.enabled is True
    assert climate.threshold == 0.3
    assert climate.max_boost == 2.0
    assert climate.reduce_others == 0.5


def test_selector_gate_overrides_and_modes() -> None:
    policy = compile_policy(
        {
            "method_selector": {
                "enabled": True,
                "bridge": {"threshold": 0.4, "enabled": False},
                "template": {"scale_by": "always"},
                "concentration": {"factor": "raw"},
                "drain_exempt": ["template"],
            }
        }
    )
    bridge = policy.gating.gate("bridge")
    assert bridge.threshold == 0.4
    assert bridge.enabled is False
    assert policy.gating.template_scale_by == "always"
    assert policy.gating.concentration_factor == "raw"
    assert policy.gating.drain_exempt == frozenset({"template"})


def test_follow_strong_threshold_mirrors_weak_threshold() -> None:
    policy = compile_policy({"method_selector": {"follow": {"weak_threshold": -0.6}}})
    follow = policy.gating.follow
    assert follow.weak_threshold == -0.6
    assert follow.strong_threshold == 0.6
    assert follow.min_dominance_ratio == 2.2


def test_competition_defaults_and_overrides() -> None:
    default = compile_policy({}).gating.competition
    assert default.enabled is False
    assert default.methods == ("follow", "transformation", "concentration")

    custom = compile_policy(
        {
            "method_selector": {
                "competition": {
                    "enabled": True,
                    "methods": ["follow", "bridge"],
                    "power": 3,
                    "min_keep": 1.5,
                    "renormalize": True,
                }
            }
        }
    ).gating.competition
    assert custom.enabled is True
    assert custom.methods == ("follow", "bridge")
    assert custom.power == 3.0
    assert custom.min_keep == 1.0
    assert custom.renormalize is True


def test_target_and_role_profiles_are_coerced() -> None:
    policy = compile_policy(
        {
            "target": {"A": 0.4, "B": -1, "C": "x", "D": math.inf},
            "role_profiles": {"weak": {"RESOURCE": 2.0, "OUTPUT": "bad"}},
        }
    )
    assert dict(policy.target) == {"A": 0.4, "B": 0.0}
    assert policy.role_profiles["weak"]["RESOURCE"] == 2.0
    assert policy.role_profiles["weak"]["OUTPUT"] == -0.2
    assert policy.role_profiles["strong"]["OUTPUT"] == 0.8


def test_rule_set_is_carried_through() -> None:
    rules = [{"id": "r1"}]
    policy = compile_policy({"rules": rules})
    assert policy.rule_set is rules


def test_policy_as_dict_is_plain() -> None:
    data = compile_policy({"tie_break_order": ["A"]}).as_dict()
    assert data["tie_break_order"] == ["A"]
    assert isinstance(data["gating"]["gates"]["climate"], dict)
    assert data["gating"]["drain_exempt"] == ["concentration", "transformation"]
