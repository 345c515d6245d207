"""Error taxonomy for the topology planner.

Every failure raised by the planning engine is fatal for the planning pass:
the engine performs no I/O against the cloud, so there is nothing to retry.
Entry points (CLI, HTTP API) catch PlanningError and report it.
"""


class PlanningError(Exception):
    pass


class InvalidInfraState(PlanningError):
    """The operator-supplied infra state is not one of the known values."""

    def __init__(self, value, accepted=()):
        self.value = value
        self.accepted = tuple(accepted)
        msg = f"Invalid infra state: {value!r}"
        if self.accepted:
            msg += f" (expected one of: {', '.join(self.accepted)})"
        super().__init__(msg)


class MissingSecretError(PlanningError):
    """Maintenance is active but the bypass header is not fully configured."""

    def __init__(self, missing):
        self.missing = tuple(missing)
        super().__init__(
            "Maintenance bypass header is required but not configured: "
            f"missing {', '.join(self.missing)}"
        )


class DependencyOrderViolation(PlanningError):
    """A security group references a caller that has not been built yet."""

    def __init__(self, service: str, caller: str, reason: str = "not defined earlier"):
        self.service = service
        self.caller = caller
        super().__init__(
            f"Security group '{service}' cannot allow caller '{caller}': {reason}"
        )


class InvariantViolation(PlanningError):
    pass


class ConfigError(PlanningError):
    """Static configuration is malformed. Carries every problem found."""

    def __init__(self, message: str, errors=None):
        self.errors = list(errors or [])
        if self.errors:
            message = f"{message}: " + "; ".join(self.errors)
        super().__init__(message)
