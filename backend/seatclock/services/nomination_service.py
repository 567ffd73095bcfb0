# Overview: Cast nominations and the nomination fees a checkout bills.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from ..models import Cast, Nomination, TableSession
from seatclock.time_utils import utcnow, to_utc_z
from .errors import CastNotFound, SessionNotFound, ValidationError


@dataclass(frozen=True)
class NominationFee:
    """
    A fee line billed at checkout.

    legacy=True marks the synthetic line produced from the session's
    selected_cast_id when no nomination rows exist.
    """
    cast_id: int
    fee: int
    nominated_at: datetime | None
    nomination_id: int | None = None
    legacy: bool = False

    def to_dict(self) -> dict:
        return {
            "nomination_id": self.nomination_id,
            "cast_id": self.cast_id,
            "fee": self.fee,
            "nominated_at": to_utc_z(self.nominated_at),
            "legacy": self.legacy,
        }


class NominationService:
    def __init__(self, session, *, clock=utcnow):
        self._session = session
        self._clock = clock

    def add(self, session_id: int, cast_id: int, nomination_fee: int | None = None) -> Nomination:
        """
        Nominate a cast member for a session.

        The fee is snapshotted now: from the request when given, otherwise
        from the cast's current fee.
        """
        table_session = self._session.get(TableSession, session_id)
        if table_session is None:
            raise SessionNotFound(session_id)

        cast = self._session.get(Cast, cast_id)
        if cast is None or cast.store_id != table_session.store_id or not cast.is_active:
            raise CastNotFound(cast_id)

        fee = cast.nomination_fee if nomination_fee is None else nomination_fee
        if fee < 0:
            raise ValidationError("nomination_fee cannot be negative")

        nomination = Nomination(
            session_id=session_id,
            cast_id=cast_id,
            nomination_fee=fee,
            created_at=self._clock(),
        )
        self._session.add(nomination)
        self._session.commit()
        return nomination

    def list_for_session(self, session_id: int) -> list[dict]:
        """Nominations, newest first, with the cast's current display name."""
        if self._session.get(TableSession, session_id) is None:
            raise SessionNotFound(session_id)

        nominations = (
            self._session.query(Nomination)
            .filter_by(session_id=session_id)
            .order_by(Nomination.created_at.desc(), Nomination.id.desc())
            .all()
        )
        result = []
        for nomination in nominations:
            data = nomination.to_dict()
            data["display_name"] = nomination.cast.display_name if nomination.cast else None
            result.append(data)
        return result

    def billable_fees(self, table_session: TableSession) -> list[NominationFee]:
        """
        Nomination fees owed by a session.

        Falls back to the legacy selected_cast_id (fee read from the cast
        record) only when the session has no nomination rows; that path
        yields at most one line.
        """
        nominations = (
            self._session.query(Nomination)
            .filter_by(session_id=table_session.id)
            .order_by(Nomination.created_at, Nomination.id)
            .all()
        )
        if nominations:
            return [
                NominationFee(
                    cast_id=n.cast_id,
                    fee=n.nomination_fee,
                    nominated_at=n.created_at,
                    nomination_id=n.id,
                )
                for n in nominations
            ]

        if table_session.selected_cast_id is None:
            return []

        cast = (
            self._session.query(Cast)
            .filter_by(id=table_session.selected_cast_id, store_id=table_session.store_id)
            .first()
        )
        if cast is None:
            return []
        return [
            NominationFee(
                cast_id=cast.id,
                fee=cast.nomination_fee or 0,
                nominated_at=table_session.start_at,
                legacy=True,
            )
        ]
