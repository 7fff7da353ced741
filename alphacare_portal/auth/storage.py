from __future__ import annotations

import json
import logging
import os
import re
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final, Protocol

from pydantic import ValidationError

from alphacare_portal.auth.context import Session
from alphacare_portal.auth.errors import SessionCorrupt
from alphacare_portal.domain.principals import normalize_principal
from alphacare_portal.domain.roles import normalize_namespace, role_matches_namespace
from alphacare_portal.models.principal import Principal
from alphacare_portal.observability import incr_metric, log_event


class KeyValueStorage(Protocol):
    """String key/value storage shared by every portal in one browser."""

    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class MemoryStorage:
    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._items: dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def as_dict(self) -> dict[str, str]:
        return dict(self._items)


class FileStorage:
    """JSON-file backed storage that survives process restarts."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._items: dict[str, str] = self._read()

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            log_event("storage_file_unreadable", level=logging.WARNING, path=str(self.path), error=str(exc))
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _write(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(self._items, sort_keys=True), encoding="utf-8")
        os.replace(tmp_path, self.path)

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value
        self._write()

    def remove_item(self, key: str) -> None:
        if key in self._items:
            del self._items[key]
            self._write()


@dataclass(frozen=True)
class StorageKeys:
    token_key: str
    principal_key: str
    refresh_token_key: str | None = None

    def all_keys(self) -> tuple[str, ...]:
        keys = (self.token_key, self.principal_key)
        if self.refresh_token_key:
            keys += (self.refresh_token_key,)
        return keys


NAMESPACE_STORAGE_KEYS: Final[dict[str, StorageKeys]] = {
    "doctor": StorageKeys(token_key="accessToken", principal_key="user"),
    "patient": StorageKeys(token_key="patientAccessToken", principal_key="patientUser"),
    "coordinator": StorageKeys(
        token_key="coordinatorAccessToken",
        principal_key="coordinatorData",
        refresh_token_key="coordinatorRefreshToken",
    ),
    "admin": StorageKeys(token_key="adminAccessToken", principal_key="admin"),
}


def storage_keys_for(namespace: str) -> StorageKeys:
    return NAMESPACE_STORAGE_KEYS[normalize_namespace(namespace)]


class SessionStore:
    """Per-role session persistence over a shared ``KeyValueStorage``.

    Each namespace reads and writes only its own key pair. ``load`` treats a
    half-written pair, an unreadable principal, or a principal of another role
    as absent and clears the namespace.
    """

    def __init__(self, storage: KeyValueStorage) -> None:
        self.storage = storage

    def save(self, role: str, session: Session) -> None:
        namespace = normalize_namespace(role)
        if session.role != namespace:
            raise ValueError(f"Session for namespace {session.role} cannot be stored under {namespace}")
        keys = NAMESPACE_STORAGE_KEYS[namespace]
        self.storage.set_item(keys.token_key, session.access_token)
        self.storage.set_item(keys.principal_key, _dump_principal(session.principal))
        if keys.refresh_token_key:
            if session.refresh_token:
                self.storage.set_item(keys.refresh_token_key, session.refresh_token)
            else:
                self.storage.remove_item(keys.refresh_token_key)

    def load(self, role: str) -> Session | None:
        namespace = normalize_namespace(role)
        try:
            return self._read(namespace)
        except SessionCorrupt as exc:
            self._self_heal(namespace, exc.reason)
            return None

    def _read(self, namespace: str) -> Session | None:
        keys = NAMESPACE_STORAGE_KEYS[namespace]
        token = self.storage.get_item(keys.token_key)
        raw_principal = self.storage.get_item(keys.principal_key)
        if token is None and raw_principal is None:
            return None
        if not token or not raw_principal:
            raise SessionCorrupt(reason="incomplete_session")

        try:
            principal = _restore_principal(json.loads(raw_principal), namespace)
        except (ValueError, ValidationError) as exc:
            raise SessionCorrupt(reason="unreadable_principal") from exc

        if not role_matches_namespace(principal.role, namespace):
            raise SessionCorrupt(reason="role_mismatch")

        refresh_token = self.storage.get_item(keys.refresh_token_key) if keys.refresh_token_key else None
        return Session(access_token=token, principal=principal, role=namespace, refresh_token=refresh_token)

    def clear(self, role: str) -> None:
        for key in storage_keys_for(role).all_keys():
            self.storage.remove_item(key)

    def load_token(self, role: str) -> str | None:
        return self.storage.get_item(storage_keys_for(role).token_key)

    def save_token(self, role: str, token: str, refresh_token: str | None = None) -> None:
        keys = storage_keys_for(role)
        self.storage.set_item(keys.token_key, token)
        if refresh_token and keys.refresh_token_key:
            self.storage.set_item(keys.refresh_token_key, refresh_token)

    def remove_token(self, role: str) -> None:
        self.storage.remove_item(storage_keys_for(role).token_key)

    def save_principal(self, role: str, principal: Principal) -> None:
        namespace = normalize_namespace(role)
        if not role_matches_namespace(principal.role, namespace):
            raise ValueError(f"Principal role {principal.role} does not belong to namespace {namespace}")
        self.storage.set_item(NAMESPACE_STORAGE_KEYS[namespace].principal_key, _dump_principal(principal))

    def _self_heal(self, namespace: str, reason: str) -> None:
        self.clear(namespace)
        incr_metric("auth.session_corrupt", namespace=namespace, reason=reason)
        log_event(
            "session_corrupt_cleared",
            level=logging.WARNING,
            namespace=namespace,
            reason=reason,
        )


def _dump_principal(principal: Principal) -> str:
    return json.dumps(principal.model_dump(mode="json"), sort_keys=True)


def _restore_principal(payload: Any, namespace: str) -> Principal:
    """Read a stored principal, either our own dump or a raw backend record left by older portal builds."""
    try:
        return Principal.model_validate(payload)
    except ValidationError:
        return normalize_principal(payload, default_role=namespace)


_BROWSER_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{8,64}$")


class _UnclaimedStorage:
    """Storage for a browser id the registry has not kept yet. Registered on the first write."""

    def __init__(self, registry: "BrowserStorageRegistry", browser_id: str, storage: KeyValueStorage) -> None:
        self._registry = registry
        self._browser_id = browser_id
        self._storage = storage

    def get_item(self, key: str) -> str | None:
        return self._storage.get_item(key)

    def set_item(self, key: str, value: str) -> None:
        self._storage = self._registry._claim(self._browser_id, self._storage)
        self._storage.set_item(key, value)

    def remove_item(self, key: str) -> None:
        self._storage.remove_item(key)


class BrowserStorageRegistry:
    """One ``KeyValueStorage`` per browser, selected by the portal's browser-id cookie.

    Only browsers that have written something are kept, at most
    ``max_browsers`` of them; the least recently used one is dropped first.
    """

    def __init__(
        self,
        backend: str = "memory",
        directory: str | Path | None = None,
        max_browsers: int = 10_000,
    ) -> None:
        if backend not in {"memory", "file"}:
            raise ValueError(f"Unsupported storage backend: {backend}")
        if max_browsers < 1:
            raise ValueError("max_browsers must be positive")
        self.backend = backend
        self.directory = Path(directory or ".portal_storage")
        self.max_browsers = max_browsers
        self._storages: OrderedDict[str, KeyValueStorage] = OrderedDict()

    def __len__(self) -> int:
        return len(self._storages)

    @staticmethod
    def is_valid_browser_id(browser_id: str | None) -> bool:
        return bool(browser_id) and bool(_BROWSER_ID_PATTERN.match(browser_id or ""))

    def get(self, browser_id: str) -> KeyValueStorage:
        if not self.is_valid_browser_id(browser_id):
            raise ValueError("Invalid browser id")
        storage = self._storages.get(browser_id)
        if storage is not None:
            self._storages.move_to_end(browser_id)
            return storage
        if self.backend == "file":
            storage = FileStorage(self.directory / f"{browser_id}.json")
        else:
            storage = MemoryStorage()
        return _UnclaimedStorage(self, browser_id, storage)

    def _claim(self, browser_id: str, storage: KeyValueStorage) -> KeyValueStorage:
        kept = self._storages.setdefault(browser_id, storage)
        self._storages.move_to_end(browser_id)
        while len(self._storages) > self.max_browsers:
            self._storages.popitem(last=False)
            incr_metric("storage.browser_evicted", backend=self.backend)
            log_event("browser_storage_evicted", level=logging.INFO, backend=self.backend)
        return kept
