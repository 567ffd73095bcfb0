from __future__ import annotations

from ..extensions import db
from seatclock.time_utils import to_utc_z

class Store(db.Model):
    """
    A pay-by-time venue.

    Store-level configuration read by the billing engine:
    - tax_rate_bps: inclusive tax rate in basis points (1000 = 10.00%);
      NULL means "use the configured default"
    - pos_enabled: whether checkouts are pushed to the POS provider
    - timezone: local zone used for POS timestamps
    """
    __tablename__ = "stores"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_stores_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(32), nullable=True, index=True)

    timezone = db.Column(db.String(64), nullable=False, default="UTC")
    tax_rate_bps = db.Column(db.Integer, nullable=True)
    pos_enabled = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Store id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "timezone": self.timezone,
            "tax_rate_bps": self.tax_rate_bps,
            "pos_enabled": self.pos_enabled,
            "created_at": to_utc_z(self.created_at),
        }

class SeatType(db.Model):
    """
    Billing rate for a class of seats.

    Reference data: the engine copies price_per_unit into the ledger at the
    moment of each event and never mutates this row.
    """
    __tablename__ = "seat_types"
    __table_args__ = (
        db.CheckConstraint("time_unit_minutes > 0", name="ck_seat_types_time_unit_positive"),
        db.CheckConstraint("price_per_unit >= 0", name="ck_seat_types_price_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    display_name = db.Column(db.String(120), nullable=False)

    # Minor currency units per time unit
    price_per_unit = db.Column(db.Integer, nullable=False)
    time_unit_minutes = db.Column(db.Integer, nullable=False, default=30)

    store = db.relationship("Store", backref=db.backref("seat_types", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "display_name": self.display_name,
            "price_per_unit": self.price_per_unit,
            "time_unit_minutes": self.time_unit_minutes,
        }

class Table(db.Model):
    """Physical table; its seat type decides the rate while a party sits here."""
    __tablename__ = "tables"
    __table_args__ = (
        db.UniqueConstraint("store_id", "name", name="uq_tables_store_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    name = db.Column(db.String(64), nullable=False)
    seat_type_id = db.Column(db.Integer, db.ForeignKey("seat_types.id"), nullable=False, index=True)

    store = db.relationship("Store", backref=db.backref("tables", lazy=True))
    seat_type = db.relationship("SeatType")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "name": self.name,
            "seat_type_id": self.seat_type_id,
        }

class Cast(db.Model):
    """
    Staff member guests can nominate or treat.

    nomination_fee is the store-level fee table: nominations snapshot it at
    nomination time, and the legacy single-cast checkout path reads it live.
    """
    __tablename__ = "casts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    display_name = db.Column(db.String(120), nullable=False)
    nomination_fee = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    store = db.relationship("Store", backref=db.backref("casts", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "display_name": self.display_name,
            "nomination_fee": self.nomination_fee,
            "is_active": self.is_active,
        }

class PosIntegration(db.Model):
    """
    Per-store POS provider credentials.

    AUTH MODES:
    - oauth: access_token is maintained by the OAuth flow (outside the engine)
    - static: client_id/client_secret exchanged for a token per sync
    """
    __tablename__ = "pos_integrations"
    __table_args__ = (
        db.UniqueConstraint("store_id", name="uq_pos_integrations_store"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False)

    auth_mode = db.Column(db.String(16), nullable=False, default="oauth")
    contract_id = db.Column(db.String(64), nullable=False)
    client_id = db.Column(db.String(128), nullable=True)
    client_secret = db.Column(db.String(255), nullable=True)
    access_token = db.Column(db.Text, nullable=True)

    # Provider-side identifiers for the store and register terminal
    provider_store_id = db.Column(db.String(32), nullable=False, default="1")
    terminal_id = db.Column(db.String(32), nullable=False, default="1")

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    store = db.relationship("Store", backref=db.backref("pos_integration", uselist=False, lazy=True))

    def to_dict(self) -> dict:
        # Secrets are never serialized
        return {
            "id": self.id,
            "store_id": self.store_id,
            "auth_mode": self.auth_mode,
            "contract_id": self.contract_id,
            "provider_store_id": self.provider_store_id,
            "terminal_id": self.terminal_id,
            "has_access_token": bool(self.access_token),
            "updated_at": to_utc_z(self.updated_at),
        }
