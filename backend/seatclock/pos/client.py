# Overview: httpx client for the POS provider's transaction API.

from __future__ import annotations

from dataclasses import dataclass, field

import httpx

from ..services.errors import PosSyncError
from .auth import AuthMode, OAuth, StaticCredentials

SANDBOX_ID_BASE = "https://id.smaregi.dev"
PRODUCTION_ID_BASE = "https://id.smaregi.jp"
SANDBOX_API_BASE = "https://api.smaregi.dev"
PRODUCTION_API_BASE = "https://api.smaregi.jp"

TOKEN_SCOPE = "pos.transactions:create"

TRANSACTION_HEAD_DIVISION_SALE = "1"
CANCEL_DIVISION_NONE = "0"
DETAIL_DIVISION_PRODUCT = "1"
TAX_DIVISION_INCLUSIVE = "0"


@dataclass(frozen=True)
class PosTransactionLine:
    product_id: str
    product_name: str
    price: int
    quantity: int = 1


@dataclass(frozen=True)
class PosTransaction:
    provider_store_id: str
    terminal_id: str
    terminal_tran_id: str
    terminal_tran_datetime: str
    subtotal: int
    tax_include: int
    total: int
    lines: list[PosTransactionLine] = field(default_factory=list)

    def to_payload(self) -> dict:
        details = []
        for index, line in enumerate(self.lines, start=1):
            details.append({
                "transactionDetailId": str(index),
                "transactionDetailDivision": DETAIL_DIVISION_PRODUCT,
                "productId": line.product_id,
                "productName": line.product_name,
                "salesPrice": str(line.price),
                "quantity": str(line.quantity),
                "taxDivision": TAX_DIVISION_INCLUSIVE,
            })
        return {
            "transactionHeadDivision": TRANSACTION_HEAD_DIVISION_SALE,
            "cancelDivision": CANCEL_DIVISION_NONE,
            "subtotal": str(self.subtotal),
            "taxInclude": str(self.tax_include),
            "total": str(self.total),
            "storeId": self.provider_store_id,
            "terminalId": self.terminal_id,
            "terminalTranId": self.terminal_tran_id,
            "terminalTranDateTime": self.terminal_tran_datetime,
            "details": details,
        }


class PosClient:
    """
    Registers sales transactions with the POS provider.

    The http client is injectable so tests can pass one built on
    httpx.MockTransport. Transport, URL and response-decoding failures
    are raised as PosSyncError.
    """

    def __init__(self, *, sandbox: bool = True, timeout: float = 10.0, http: httpx.Client | None = None):
        self.id_base = SANDBOX_ID_BASE if sandbox else PRODUCTION_ID_BASE
        self.api_base = SANDBOX_API_BASE if sandbox else PRODUCTION_API_BASE
        self._http = http or httpx.Client(timeout=timeout)
        self._owns_http = http is None

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def access_token(self, auth: AuthMode) -> str:
        if isinstance(auth, OAuth):
            return auth.access_token
        if isinstance(auth, StaticCredentials):
            return self._client_credentials_token(auth)
        raise PosSyncError(f"Unsupported auth mode: {type(auth).__name__}")

    def register_transaction(self, auth: AuthMode, transaction: PosTransaction) -> str:
        """POST the transaction and return the provider's transactionHeadId."""
        token = self.access_token(auth)
        url = f"{self.api_base}/{auth.contract_id}/pos/transactions"
        try:
            response = self._http.post(
                url,
                json=transaction.to_payload(),
                headers={"Authorization": f"Bearer {token}"},
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise PosSyncError(
                f"POS transaction rejected: HTTP {e.response.status_code} {e.response.text[:200]}"
            ) from e
        except (httpx.HTTPError, httpx.InvalidURL, httpx.CookieConflict, ValueError) as e:
            raise PosSyncError(f"POS transaction failed: {e}") from e

        receipt_id = data.get("transactionHeadId") if isinstance(data, dict) else None
        if not receipt_id:
            raise PosSyncError("POS response did not include transactionHeadId")
        return str(receipt_id)

    def _client_credentials_token(self, auth: StaticCredentials) -> str:
        url = f"{self.id_base}/app/{auth.contract_id}/token"
        try:
            response = self._http.post(
                url,
                data={"grant_type": "client_credentials", "scope": TOKEN_SCOPE},
                auth=(auth.client_id, auth.client_secret),
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise PosSyncError(f"POS token request rejected: HTTP {e.response.status_code}") from e
        except (httpx.HTTPError, httpx.InvalidURL, httpx.CookieConflict, ValueError) as e:
            raise PosSyncError(f"POS token request failed: {e}") from e

        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            raise PosSyncError("POS token response did not include access_token")
        return token
