"""Domain-specific exceptions"""

from typing import Optional


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ValidationError(DomainException):
    """Request input has the wrong shape or values"""

    pass


class AuthorizationError(DomainException):
    """Requester's role or ownership does not permit the operation"""

    pass


class NotFoundError(DomainException):
    """Referenced entity does not exist (or is not visible to the requester)"""

    pass


class InvalidStateError(DomainException):
    """Operation is illegal for the entity's current state"""

    pass


class GatewayError(DomainException):
    """Payment processor or e-signature service failed or rejected the call"""

    pass


class InsufficientPointsError(ValidationError):
    """Points balance does not cover the redemption"""

    pass


class ReconciliationAnomaly(DomainException):
    """
    Webhook arrived for an entity in an unexpected state.

    Never surfaced to a user-facing caller: the webhook path queues it for
    operators and still acknowledges the event.
    """

    def __init__(
        self,
        kind: str,
        detail: str,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        intent_id: Optional[str] = None,
    ):
        super().__init__(detail)
        self.kind = kind
        self.detail = detail
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.intent_id = intent_id
