"""
Domain failures raised by the services.

Routers translate these into HTTP responses; nothing here knows about HTTP.
"""


class DomainError(Exception):
    pass


class ValidationError(DomainError):
    """Caller input rejected before any state change."""


class CodeRequiredError(ValidationError):
    """Approval attempted without a confirmation code on file or supplied."""

    sub_state = "awaiting_code"

    def __init__(self, payment_id: str):
        super().__init__(f"Payment {payment_id} needs a confirmation code before approval")
        self.payment_id = payment_id


class NotFoundError(DomainError):
    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class ConflictError(DomainError):
    """A conditional transition matched no row in a transitionable state."""

    def __init__(self, payment_id: str, current_status: str):
        super().__init__(f"Payment {payment_id} is {current_status}, not pending")
        self.payment_id = payment_id
        self.current_status = current_status


class DownstreamError(DomainError):
    """A webhook delivery failed. Only ever recorded, never surfaced."""


class LinkageError(DomainError):
    """An order cannot be tied to its payment without guessing."""

    def __init__(self, order_id: str, reason: str):
        super().__init__(f"Order {order_id}: {reason}")
        self.order_id = order_id
        self.reason = reason
