# Overview: Turns a computed checkout into a POS transaction and registers it.

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from seatclock.time_utils import to_local_iso
from ..services.errors import PosSyncError
from .auth import AuthMode, resolve_auth_mode
from .client import PosClient, PosTransaction, PosTransactionLine
from .ids import cast_product_id, provider_product_id, table_product_id, terminal_tran_id


@dataclass(frozen=True)
class PendingRegistration:
    auth: AuthMode
    transaction: PosTransaction


class PosSyncService:
    """
    Best-effort POS registration in two phases.

    prepare() reads the datastore and builds the payload; send() performs
    the provider call and returns the receipt id. Both raise PosSyncError.
    Callers decide what a failure means; this class never commits.
    """

    def __init__(self, client: PosClient, *, id_factory=terminal_tran_id):
        self._client = client
        self._id_factory = id_factory

    def build_transaction(self, integration, facts) -> PosTransaction:
        """
        One detail line per order item, one for the seat charge when it is
        positive, and one per positive nomination fee.
        """
        lines = [
            PosTransactionLine(
                product_id=provider_product_id(item.product_id),
                product_name=item.product_name,
                price=item.price,
                quantity=item.quantity,
            )
            for item in facts.order_items
        ]
        if facts.charge_amount > 0:
            lines.append(PosTransactionLine(
                product_id=table_product_id(facts.table_id),
                product_name=f"Seat charge {facts.table_name or ''}".strip(),
                price=facts.charge_amount,
            ))
        for nomination in facts.nominations:
            if nomination.fee > 0:
                name = facts.cast_names.get(nomination.cast_id) or f"#{nomination.cast_id}"
                lines.append(PosTransactionLine(
                    product_id=cast_product_id(nomination.cast_id),
                    product_name=f"Nomination {name}",
                    price=nomination.fee,
                ))

        return PosTransaction(
            provider_store_id=integration.provider_store_id,
            terminal_id=integration.terminal_id,
            terminal_tran_id=self._id_factory(),
            terminal_tran_datetime=to_local_iso(facts.checkout_at, facts.store_timezone),
            subtotal=facts.total_amount,
            tax_include=facts.tax.tax,
            total=facts.total_amount,
            lines=lines,
        )

    def prepare(self, store, facts) -> PendingRegistration:
        """
        Resolve auth and build the transaction. Reads the store's integration
        row, so call it while the datastore session is still usable.
        """
        integration = store.pos_integration
        auth = resolve_auth_mode(integration)
        transaction = self.build_transaction(integration, facts)
        if not transaction.lines:
            raise PosSyncError("Nothing to register: checkout has no billable lines")
        return PendingRegistration(auth=auth, transaction=transaction)

    def send(self, pending: PendingRegistration, facts) -> str:
        """Network only; touches no datastore state."""
        receipt_id = self._client.register_transaction(pending.auth, pending.transaction)
        current_app.logger.info(
            "POS transaction registered: session_id=%s terminal_tran_id=%s receipt_id=%s",
            facts.session_id,
            pending.transaction.terminal_tran_id,
            receipt_id,
        )
        return receipt_id
