"""Thin client for the Tink open-banking API.

Implements :class:`~finance_sync.provider.BankProvider` with plain
``urllib.request`` calls:

- ``POST /api/v1/oauth/token`` (authorization-code grant)
- ``GET /data/v2/accounts`` (follows ``nextPageToken`` when present)
- ``GET /data/v2/transactions?accountIdIn=..&pageSize=100[&pageToken=..]``

Every request carries its own ``timeout``; there is no overall sync deadline
here. Retries, quotas and rate limiting are left to the caller.
"""

from __future__ import annotations

import json
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Mapping, Sequence
from typing import Any

from .errors import AuthExchangeError, ProviderFetchError
from .logging_setup import get_logger
from .provider import TransactionPage

DEFAULT_BASE_URL = "https://api.tink.com"
_PAGE_SIZE = 100

_logger = get_logger("finance_sync.tink_client")


class TinkClient:
    """Tink API adapter.

    Parameters
    ----------
    client_id, client_secret:
        OAuth client credentials.
    redirect_uri:
        Redirect URI registered with Tink; must match the one used to obtain
        the authorization code.
    base_url:
        API origin, overridable for sandboxes/tests.
    timeout:
        Per-request timeout in seconds.
    """

    def __init__(
        self,
        *,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
    ) -> None:
        if not client_id or not client_secret:
            raise RuntimeError("Tink client credentials are required (TINK_CLIENT_ID/SECRET)")
        self._client_id = client_id
        self._client_secret = client_secret
        self._redirect_uri = redirect_uri
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    # ---- BankProvider ----------------------------------------------------

    def exchange_token(self, code: str) -> str:
        body = urllib.parse.urlencode(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self._redirect_uri,
                "client_id": self._client_id,
                "client_secret": self._client_secret,
            }
        ).encode("utf-8")
        req = urllib.request.Request(
            f"{self._base_url}/api/v1/oauth/token", data=body, method="POST"
        )
        req.add_header("Content-Type", "application/x-www-form-urlencoded")

        try:
            payload = self._send(req)
        except urllib.error.HTTPError as e:
            detail = _error_detail(e)
            raise AuthExchangeError(f"Token exchange rejected: {e.code} {detail}") from e
        except (urllib.error.URLError, TimeoutError, ValueError) as e:
            raise AuthExchangeError(f"Token exchange failed: {e}") from e

        token = payload.get("access_token")
        if not isinstance(token, str) or not token:
            raise AuthExchangeError("Token response did not include an access_token")
        return token

    def list_accounts(self, access_token: str) -> Sequence[Mapping[str, Any]]:
        accounts: list[Mapping[str, Any]] = []
        page_token: str | None = None
        while True:
            params = {"pageToken": page_token} if page_token else {}
            payload = self._get("/data/v2/accounts", access_token, params)
            accounts.extend(_as_list(payload.get("accounts")))
            page_token = payload.get("nextPageToken") or None
            if not page_token:
                return accounts

    def list_transactions(
        self,
        access_token: str,
        account_id: str,
        page_token: str | None = None,
    ) -> TransactionPage:
        params: dict[str, str] = {"accountIdIn": account_id, "pageSize": str(_PAGE_SIZE)}
        if page_token:
            params["pageToken"] = page_token
        payload = self._get("/data/v2/transactions", access_token, params)
        return TransactionPage(
            items=_as_list(payload.get("transactions")),
            next_page_token=payload.get("nextPageToken") or None,
        )

    # ---- transport -------------------------------------------------------

    def _get(self, path: str, access_token: str, params: Mapping[str, str]) -> dict[str, Any]:
        url = f"{self._base_url}{path}"
        if params:
            url = f"{url}?{urllib.parse.urlencode(params)}"
        req = urllib.request.Request(url, method="GET")
        req.add_header("Authorization", f"Bearer {access_token}")
        try:
            return self._send(req)
        except urllib.error.HTTPError as e:
            detail = _error_detail(e)
            raise ProviderFetchError(
                f"GET {path} failed: {e.code} {e.reason}: {detail}", status_code=e.code
            ) from e
        except (urllib.error.URLError, TimeoutError) as e:
            raise ProviderFetchError(f"GET {path} failed: {e}") from e
        except ValueError as e:
            raise ProviderFetchError(f"GET {path} returned an unreadable body: {e}") from e

    def _send(self, req: urllib.request.Request) -> dict[str, Any]:
        _logger.debug("%s %s", req.get_method(), req.full_url.split("?", 1)[0])
        with urllib.request.urlopen(req, timeout=self._timeout) as resp:
            body = resp.read()
        decoded = json.loads(body.decode("utf-8"))
        if not isinstance(decoded, dict):
            raise ValueError("expected a JSON object")
        return decoded


def _as_list(value: Any) -> list[Mapping[str, Any]]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, Mapping)]


def _error_detail(e: urllib.error.HTTPError) -> str:
    try:
        raw = e.read().decode("utf-8", errors="replace")
    except OSError:
        return ""
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        return raw
    if isinstance(data, dict):
        return str(data.get("error_description") or data.get("errorMessage") or raw)
    return raw


__all__ = ["DEFAULT_BASE_URL", "TinkClient"]
