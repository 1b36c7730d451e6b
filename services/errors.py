class LifecycleError(Exception):
    """Base class for lease/offer lifecycle failures."""

class NotFound(LifecycleError):
    pass

class ValidationError(LifecycleError):
    pass

class InvariantViolation(LifecycleError):
    """A precondition of a cascade does not hold. Raised before any write."""

class InvalidTransition(InvariantViolation):
    def __init__(self, entity, current, target):
        self.entity = entity
        self.current = current
        self.target = target
        super().__init__(f"{entity} cannot move from {current.value} to {target.value}")

class TransactionFailure(LifecycleError):
    """A write inside an atomic cascade failed and everything was rolled back."""

    def __init__(self, message, lease_id=None, offer_id=None):
        super().__init__(message)
        self.lease_id = lease_id
        self.offer_id = offer_id

class GatewayError(LifecycleError):
    """Refund call to a payment provider failed. Contained to one payment."""

    def __init__(self, provider, message):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
