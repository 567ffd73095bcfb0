# Overview: POS provider authentication strategies.

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from ..services.errors import PosSyncError


@dataclass(frozen=True)
class OAuth:
    """Use the access token stored for the store by the OAuth flow."""
    store_id: int
    contract_id: str
    access_token: str


@dataclass(frozen=True)
class StaticCredentials:
    """Exchange app credentials for a token with a client-credentials grant."""
    client_id: str
    client_secret: str
    contract_id: str


AuthMode = Union[OAuth, StaticCredentials]


def resolve_auth_mode(integration) -> AuthMode:
    """
    Pick the auth strategy for a store's PosIntegration row.

    Raises PosSyncError when the row lacks what its mode needs.
    """
    if integration is None:
        raise PosSyncError("Store has no POS integration configured")
    if not integration.contract_id:
        raise PosSyncError("POS integration has no contract id")

    if integration.auth_mode == "oauth":
        if not integration.access_token:
            raise PosSyncError(f"Store {integration.store_id} has no POS access token")
        return OAuth(
            store_id=integration.store_id,
            contract_id=integration.contract_id,
            access_token=integration.access_token,
        )

    if integration.auth_mode == "static":
        if not integration.client_id or not integration.client_secret:
            raise PosSyncError("Static POS credentials are incomplete")
        return StaticCredentials(
            client_id=integration.client_id,
            client_secret=integration.client_secret,
            contract_id=integration.contract_id,
        )

    raise PosSyncError(f"Unknown POS auth mode: {integration.auth_mode}")
