from __future__ import annotations

from typing import Literal


NormalizedAccountStatus = Literal["active", "pending_verification", "suspended"]


def normalize_account_status(value: str | None) -> NormalizedAccountStatus:
    if value is None:
        return "active"
    key = str(value).strip().lower().replace("-", "_").replace(" ", "_")
    if not key:
        return "active"
    mapping: dict[str, NormalizedAccountStatus] = {
        "active": "active",
        "verified": "active",
        "approved": "active",
        "pending_verification": "pending_verification",
        "pendingverification": "pending_verification",
        "pending": "pending_verification",
        "unverified": "pending_verification",
        "awaiting_verification": "pending_verification",
        "suspended": "suspended",
        "inactive": "suspended",
        "disabled": "suspended",
        "blocked": "suspended",
    }
    if key not in mapping:
        raise ValueError(f"Unsupported account status: {value}")
    return mapping[key]
