"""Error taxonomy for care task operations."""


class CareTaskError(Exception):
    """Base class for all care task errors."""


class NotFoundError(CareTaskError):
    """Resident, task key or slot does not exist."""


class InvalidArgumentError(CareTaskError):
    """Malformed input: bad slot index, unsupported task type, invalid fields."""


class DomainRuleViolation(CareTaskError):
    """A business rule rejected the action, e.g. resolving too early."""


class ConcurrencyConflict(CareTaskError):
    """The resident document changed underneath a write."""


class InfrastructureError(CareTaskError):
    """Storage read/write failure unrelated to business rules."""
