import json
import os
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol


DEFAULT_TOKEN_CACHE_PATH = os.path.join("data", "spotify_tokens.json")
DEFAULT_EXPIRES_IN = 3600

# Durable keys (survive restarts, removed on logout).
ACCESS_TOKEN_KEY = "access_token"
REFRESH_TOKEN_KEY = "refresh_token"
TOKEN_EXPIRY_KEY = "token_expiry"

# Session keys (one in-flight authorization only).
PKCE_VERIFIER_KEY = "pkce_verifier"
OAUTH_STATE_KEY = "oauth_state"


def now_ms() -> int:
    return int(time.time() * 1000)


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStore:
    """Process-local store. Used for the session scope and in tests."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = str(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self):
        return list(self._data.keys())


class JsonFileStore:
    """Key/value store persisted as a flat JSON object on disk.

    Every write rewrites the whole file; the data set is a handful of keys.
    """

    def __init__(self, path: str = DEFAULT_TOKEN_CACHE_PATH):
        self.path = path

    def _read(self) -> Dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError):
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items() if v is not None}

    def _write(self, data: Dict[str, str]) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)

    def get(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = str(value)
        self._write(data)

    def delete(self, key: str) -> None:
        data = self._read()
        if key not in data:
            return
        del data[key]
        if data:
            self._write(data)
        elif os.path.exists(self.path):
            os.remove(self.path)


@dataclass(frozen=True)
class Credential:
    """Canonical token payload stored by CredentialStore."""

    access_token: str
    expires_at_ms: int
    refresh_token: Optional[str] = None

    @staticmethod
    def from_token_response(
        payload: Dict[str, Any],
        *,
        issued_at_ms: Optional[int] = None,
        fallback_refresh_token: Optional[str] = None,
    ) -> "Credential":
        """Convert a token endpoint response into a Credential.

        Spotify returns:
        - access_token
        - token_type
        - expires_in (seconds, 3600 assumed when absent)
        - refresh_token (optional, often omitted on refresh)
        - scope (space-delimited string)
        """

        issued = now_ms() if issued_at_ms is None else int(issued_at_ms)
        try:
            expires_in = int(payload.get("expires_in") or DEFAULT_EXPIRES_IN)
        except (TypeError, ValueError, OverflowError):
            expires_in = DEFAULT_EXPIRES_IN

        return Credential(
            access_token=str(payload.get("access_token") or ""),
            expires_at_ms=issued + expires_in * 1000,
            refresh_token=payload.get("refresh_token") or fallback_refresh_token,
        )

    def is_expired(self, at_ms: Optional[int] = None) -> bool:
        at = now_ms() if at_ms is None else int(at_ms)
        return at >= self.expires_at_ms


class CredentialStore:
    """Reads and writes the Credential under the durable key layout."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def load(self) -> Optional[Credential]:
        access_token = self.store.get(ACCESS_TOKEN_KEY)
        if not access_token:
            return None

        try:
            expires_at_ms = int(self.store.get(TOKEN_EXPIRY_KEY) or 0)
        except ValueError:
            # Unreadable expiry is treated as already expired.
            expires_at_ms = 0

        return Credential(
            access_token=access_token,
            expires_at_ms=expires_at_ms,
            refresh_token=self.store.get(REFRESH_TOKEN_KEY) or None,
        )

    def save(self, credential: Credential) -> None:
        self.store.set(ACCESS_TOKEN_KEY, credential.access_token)
        if credential.refresh_token:
            self.store.set(REFRESH_TOKEN_KEY, credential.refresh_token)
        else:
            self.store.delete(REFRESH_TOKEN_KEY)
        self.store.set(TOKEN_EXPIRY_KEY, str(int(credential.expires_at_ms)))

    def clear(self) -> None:
        for key in (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, TOKEN_EXPIRY_KEY):
            self.store.delete(key)


@dataclass(frozen=True)
class PendingAuthorization:
    code_verifier: str
    state: str


class PendingAuthorizationStore:
    """Holds the PKCE verifier and state nonce for one in-flight login."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def save(self, pending: PendingAuthorization) -> None:
        self.store.set(PKCE_VERIFIER_KEY, pending.code_verifier)
        self.store.set(OAUTH_STATE_KEY, pending.state)

    def stored_state(self) -> Optional[str]:
        return self.store.get(OAUTH_STATE_KEY) or None

    def stored_verifier(self) -> Optional[str]:
        return self.store.get(PKCE_VERIFIER_KEY) or None

    def clear(self) -> None:
        self.store.delete(PKCE_VERIFIER_KEY)
        self.store.delete(OAUTH_STATE_KEY)
