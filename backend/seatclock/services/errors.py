"""
Billing engine error taxonomy.

Two tiers:
- Revenue-critical errors abort the operation with no partial writes.
- Best-effort errors (POS sync, archival, order closure) are recorded as
  warnings on the checkout result and never surface as failures.

http_status is what the API layer answers with.
"""


class BillingError(Exception):
    """Base class for errors raised by the billing engine."""
    http_status = 400


class ValidationError(BillingError):
    """400-level input problem."""
    http_status = 400


class NotFoundError(BillingError):
    http_status = 404


class SessionNotFound(NotFoundError):
    def __init__(self, session_id):
        super().__init__(f"Session {session_id} not found")
        self.session_id = session_id


class TableNotFound(NotFoundError):
    def __init__(self, table_id):
        super().__init__(f"Table {table_id} not found")
        self.table_id = table_id


class CastNotFound(NotFoundError):
    def __init__(self, cast_id):
        super().__init__(f"Cast {cast_id} not found")
        self.cast_id = cast_id


class OrderNotFound(NotFoundError):
    def __init__(self, order_id):
        super().__init__(f"Order {order_id} not found")
        self.order_id = order_id


class ConflictError(BillingError):
    """409-level business rule conflict."""
    http_status = 409


class TableOccupiedError(ConflictError):
    def __init__(self, table_id):
        super().__init__(f"Table {table_id} already has an open session")
        self.table_id = table_id


class ClockStateError(ConflictError):
    """The billing clock is not in a state that allows the transition."""


class TableChargeComputationError(BillingError):
    """The seat charge could not be computed; checkout must abort."""
    http_status = 500


class CheckoutPersistenceError(BillingError):
    """The checkout record could not be written; checkout must abort."""
    http_status = 500


# Best-effort failures. Raised inside their step, captured as warnings.

class PosSyncError(Exception):
    """POS provider registration failed."""


class ArchivalError(Exception):
    """Checkout facts could not be copied into reporting storage."""


class OrderStatusUpdateError(Exception):
    """Billed orders could not be moved to closed."""
