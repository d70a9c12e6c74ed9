class DomainError(Exception):
    """Base class for business-rule failures raised by the use cases."""


class NotFoundError(DomainError):
    pass


class InvalidInputError(DomainError):
    pass


class ConflictError(DomainError):
    pass


class SlotUnavailableError(ConflictError):
    pass


class AlreadyProcessedError(ConflictError):
    """A compare-and-swap on status matched no row: another request got there first."""


class HoldExpiredError(ConflictError):
    pass


class InvalidTransitionError(ConflictError):
    pass
