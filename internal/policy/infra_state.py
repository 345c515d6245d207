"""Infra-state resolver: one operational mode -> per-service activation matrix.

Each state maps to exactly one row of ACTIVATION_TABLE. There is no default
row: a state missing from the table is an error at import time, and a raw
string that is not a known state is rejected by parse_infra_state before
planning starts.

  state        maintenance  database  cache/search  core   migration  auxiliary
  stopped      on           off       off           off    off        off
  db-only      on           on        on            off    on         on
  restricted   on           on        on            on     off        on
  running      off          on        on            on     off        on
"""

from internal.models.errors import InvalidInfraState, InvariantViolation
from internal.models.types import ActivationClass, InfraState, ServiceActivation


ACCEPTED_STATES = tuple(s.value for s in InfraState)

# ── Activation Table ─────────────────────────────────────────────────────────

ACTIVATION_TABLE: dict = {
    InfraState.STOPPED: ServiceActivation(
        maintenance_active=True,
        database_active=False,
        cache_and_search_active=False,
        core_services_active=False,
        migration_active=False,
        auxiliary_services_active=False,
    ),
    InfraState.DB_ONLY: ServiceActivation(
        maintenance_active=True,
        database_active=True,
        cache_and_search_active=True,
        core_services_active=False,
        migration_active=True,
        auxiliary_services_active=True,
    ),
    InfraState.RESTRICTED: ServiceActivation(
        maintenance_active=True,
        database_active=True,
        cache_and_search_active=True,
        core_services_active=True,
        migration_active=False,
        auxiliary_services_active=True,
    ),
    InfraState.RUNNING: ServiceActivation(
        maintenance_active=False,
        database_active=True,
        cache_and_search_active=True,
        core_services_active=True,
        migration_active=False,
        auxiliary_services_active=True,
    ),
}

# Migrations only run while the database is reachable and application traffic is not.
_MIGRATION_STATES = {InfraState.DB_ONLY}


def check_activation(state: InfraState, activation: ServiceActivation) -> ServiceActivation:
    """Assert the activation invariants for one row. Returns the row unchanged."""
    flags = activation.service_flags()
    if not activation.database_active:
        running = sorted(c.value for c, on in flags.items() if on and c != ActivationClass.DATABASE)
        if running:
            raise InvariantViolation(
                f"State '{state.value}' runs {running} without an active database"
            )
    if activation.maintenance_active != (state != InfraState.RUNNING):
        raise InvariantViolation(
            f"State '{state.value}' must {'not ' if state == InfraState.RUNNING else ''}"
            "be in maintenance"
        )
    if activation.migration_active != (state in _MIGRATION_STATES):
        raise InvariantViolation(f"Migration flag is wrong for state '{state.value}'")
    return activation


def _check_table() -> None:
    missing = [s.value for s in InfraState if s not in ACTIVATION_TABLE]
    if missing:
        raise InvariantViolation(f"Activation table has no row for states: {missing}")
    for state, row in ACTIVATION_TABLE.items():
        check_activation(state, row)


_check_table()


def parse_infra_state(raw) -> InfraState:
    """Validate an operator-supplied state string.

    Accepts exactly 'running', 'restricted', 'db-only' or 'stopped'.

    Raises:
        InvalidInfraState: for anything else, including None and other casings.
    """
    if not isinstance(raw, str):
        raise InvalidInfraState(raw, ACCEPTED_STATES)
    try:
        return InfraState(raw)
    except ValueError:
        raise InvalidInfraState(raw, ACCEPTED_STATES) from None


def resolve(state: InfraState) -> ServiceActivation:
    """Return the activation matrix for a validated infra state."""
    if not isinstance(state, InfraState):
        raise InvalidInfraState(state, ACCEPTED_STATES)
    return check_activation(state, ACTIVATION_TABLE[state])


def activation_table() -> list:
    """The whole table, highest state first, as JSON-ready rows."""
    ordered = sorted(ACTIVATION_TABLE, reverse=True)
    return [{"infraState": s.value, **ACTIVATION_TABLE[s].to_dict()} for s in ordered]
