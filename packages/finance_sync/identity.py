"""Relink-stable identity for accounts and dedup keys for transactions.

Providers issue a fresh account id every time a user disconnects and
reconnects a bank. The account's stable id is therefore built from what the
bank itself assigns (institution, sort code, account number), and every
stored transaction points at that stable id rather than the provider id.
"""

from __future__ import annotations

import hashlib
import json
import re
from collections.abc import Mapping
from typing import Any

_UNIQUE_ID_PREFIX = "accountUId"
_STRIP_RE = re.compile(r"[\s\-]+")


def _norm_part(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def compute_account_unique_id(
    institution_id: Any, sort_code: Any, account_number: Any
) -> str:
    """Return the stable account id ``accountUId-<inst>-<sort>-<number>``.

    Plain, order-sensitive concatenation (no hashing) so two ids can be
    compared by eye. Sort code and account number lose spaces and hyphens
    (``"12-34-56"`` and ``"123456"`` name the same account). Missing parts
    become empty strings.
    """

    inst = _norm_part(institution_id)
    sort = _STRIP_RE.sub("", _norm_part(sort_code))
    number = _STRIP_RE.sub("", _norm_part(account_number))
    return f"{_UNIQUE_ID_PREFIX}-{inst}-{sort}-{number}"


def account_unique_id_from_payload(payload: Mapping[str, Any]) -> str:
    """Compute the stable id from a raw provider account payload.

    Reads ``financialInstitutionId`` and ``identifiers.sortCode.{code,
    accountNumber}``; absent pieces are treated as empty.
    """

    identifiers = payload.get("identifiers")
    sort_block: Any = None
    if isinstance(identifiers, Mapping):
        sort_block = identifiers.get("sortCode")
    if not isinstance(sort_block, Mapping):
        sort_block = {}
    return compute_account_unique_id(
        payload.get("financialInstitutionId"),
        sort_block.get("code"),
        sort_block.get("accountNumber"),
    )


def compute_transaction_dedup_key(provider_id: Any, account_unique_id: Any) -> str:
    """Return the SHA-256 upsert key for one provider transaction on one account.

    The payload is serialized deterministically (sorted keys, compact
    separators) so repeated or concurrent syncs produce the same key.
    """

    payload = {
        "account": _norm_part(account_unique_id),
        "id": _norm_part(provider_id),
    }
    data = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


__all__ = [
    "account_unique_id_from_payload",
    "compute_account_unique_id",
    "compute_transaction_dedup_key",
]
