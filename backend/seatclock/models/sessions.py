from __future__ import annotations

from ..extensions import db
from seatclock.time_utils import to_utc_z

CLOCK_NOT_STARTED = "NOT_STARTED"
CLOCK_RUNNING = "RUNNING"
CLOCK_PAUSED = "PAUSED"

class TableSession(db.Model):
    """
    One party's occupancy of a table, from seating to checkout.

    BILLING CLOCK (derived from columns):
    - NOT_STARTED: charge_started_at is NULL
    - RUNNING: charge_started_at set, charge_paused_at NULL
    - PAUSED: charge_paused_at set

    charge_started_at is the display clock and is reset on a table move;
    the seat charge ledger keeps the true billing history.

    charge_paused_ms accumulates completed pauses inside the current
    open ledger interval and is subtracted from its elapsed time.

    LIFECYCLE: deleted (with its ledger, nominations and live orders) only
    after a successful checkout. version_id doubles as the row lease for
    pause/resume/move/checkout.
    """
    __tablename__ = "sessions"
    __table_args__ = (
        # Every row is an open session: one per table
        db.UniqueConstraint("table_id", name="uq_sessions_table"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    table_id = db.Column(db.Integer, db.ForeignKey("tables.id"), nullable=False, index=True)

    start_at = db.Column(db.DateTime(timezone=True), nullable=False)
    charge_started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    charge_paused_at = db.Column(db.DateTime(timezone=True), nullable=True)
    charge_paused_ms = db.Column(db.BigInteger, nullable=False, default=0)

    # Legacy single-nomination field, consulted only when no Nomination rows exist
    selected_cast_id = db.Column(db.Integer, db.ForeignKey("casts.id"), nullable=True)

    guest_count = db.Column(db.Integer, nullable=False, default=1)
    is_new_customer = db.Column(db.Boolean, nullable=False, default=False)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    store = db.relationship("Store")
    table = db.relationship("Table")
    selected_cast = db.relationship("Cast")
    seat_events = db.relationship(
        "SeatChargeEvent",
        backref="session",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="SeatChargeEvent.changed_at",
    )
    nominations = db.relationship(
        "Nomination",
        backref="session",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="Nomination.created_at",
    )
    orders = db.relationship(
        "Order",
        backref="session",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="Order.created_at",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def clock_state(self) -> str:
        if self.charge_started_at is None:
            return CLOCK_NOT_STARTED
        if self.charge_paused_at is not None:
            return CLOCK_PAUSED
        return CLOCK_RUNNING

    def __repr__(self) -> str:
        return f"<TableSession id={self.id} table_id={self.table_id} state={self.clock_state}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "table_id": self.table_id,
            "start_at": to_utc_z(self.start_at),
            "charge_started_at": to_utc_z(self.charge_started_at),
            "charge_paused_at": to_utc_z(self.charge_paused_at),
            "charge_paused_ms": self.charge_paused_ms,
            "clock_state": self.clock_state,
            "selected_cast_id": self.selected_cast_id,
            "guest_count": self.guest_count,
            "is_new_customer": self.is_new_customer,
            "version_id": self.version_id,
        }

class SeatChargeEvent(db.Model):
    """
    Append-only seat charge ledger.

    - is_table_move_charge = False: start of an accruing interval, priced
      per unit at price_snapshot
    - is_table_move_charge = True: closed interval from a completed table
      move; price_snapshot is the already-computed amount owed

    IMMUTABLE: Records are never updated. They disappear only with the
    session they belong to.
    """
    __tablename__ = "seat_charge_events"
    __table_args__ = (
        db.Index("ix_seat_charge_events_session_changed", "session_id", "changed_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    seat_type_id = db.Column(db.Integer, db.ForeignKey("seat_types.id"), nullable=False)

    price_snapshot = db.Column(db.Integer, nullable=False)
    changed_at = db.Column(db.DateTime(timezone=True), nullable=False)
    is_table_move_charge = db.Column(db.Boolean, nullable=False, default=False)

    seat_type = db.relationship("SeatType")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "seat_type_id": self.seat_type_id,
            "price_snapshot": self.price_snapshot,
            "changed_at": to_utc_z(self.changed_at),
            "is_table_move_charge": self.is_table_move_charge,
        }

class Nomination(db.Model):
    """Paid request for a cast member; the fee is snapshotted at nomination time."""
    __tablename__ = "nominations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    cast_id = db.Column(db.Integer, db.ForeignKey("casts.id"), nullable=False, index=True)
    nomination_fee = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    cast = db.relationship("Cast")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "cast_id": self.cast_id,
            "nomination_fee": self.nomination_fee,
            "created_at": to_utc_z(self.created_at),
        }
