"""Term and role vocabulary shared by the compiler, signal library and adjusters."""

from typing import Dict, Tuple

TERM_BALANCE = "balance"
TERM_ROLE = "role"
TERM_CLIMATE = "climate"
TERM_EXCESS = "excess"
TERM_BRIDGE = "bridge"
TERM_FOLLOW = "follow"
TERM_TEMPLATE = "template"
TERM_TRANSFORMATION = "transformation"
TERM_CONCENTRATION = "concentration"

KNOWN_TERMS: Tuple[str, ...] = (
    TERM_BALANCE,
    TERM_ROLE,
    TERM_CLIMATE,
    TERM_EXCESS,
    TERM_BRIDGE,
    TERM_FOLLOW,
    TERM_TEMPLATE,
    TERM_TRANSFORMATION,
    TERM_CONCENTRATION,
)

# Evaluation order of the method-selector gates.
SELECTOR_GATE_ORDER: Tuple[str, ...] = (
    TERM_CLIMATE,
    TERM_EXCESS,
    TERM_BRIDGE,
    TERM_FOLLOW,
    TERM_TEMPLATE,
    TERM_TRANSFORMATION,
    TERM_CONCENTRATION,
)

ROLE_COMPANION = "COMPANION"
ROLE_RESOURCE = "RESOURCE"
ROLE_OUTPUT = "OUTPUT"
ROLE_WEALTH = "WEALTH"
ROLE_OFFICER = "OFFICER"

ROLES: Tuple[str, ...] = (ROLE_COMPANION, ROLE_RESOURCE, ROLE_OUTPUT, ROLE_WEALTH, ROLE_OFFICER)
SUPPORT_ROLES: Tuple[str, ...] = (ROLE_COMPANION, ROLE_RESOURCE)
PRESSURE_ROLES: Tuple[str, ...] = (ROLE_OUTPUT, ROLE_WEALTH, ROLE_OFFICER)

# Strength component keys, one per role.
ROLE_COMPONENT_KEYS: Dict[str, str] = {
    ROLE_COMPANION: "companions",
    ROLE_RESOURCE: "resources",
    ROLE_OUTPUT: "outputs",
    ROLE_WEALTH: "wealth",
    ROLE_OFFICER: "officers",
}

FOLLOW_MODE_SUPPORT = "SUPPORT"
FOLLOW_MODE_PRESSURE = "PRESSURE"
FOLLOW_MODE_NONE = "NONE"
