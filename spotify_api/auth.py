import asyncio
import base64
import hashlib
import logging
import secrets
import string
import urllib.parse
import webbrowser
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional, Protocol, Tuple

import httpx

from .errors import ExchangeFailed, MissingVerifier, NetworkError, StateMismatch
from .token_manager import (
    Credential,
    CredentialStore,
    KeyValueStore,
    MemoryStore,
    PendingAuthorization,
    PendingAuthorizationStore,
    now_ms,
)

logger = logging.getLogger(__name__)

SPOTIFY_ACCOUNTS_BASE_URL = "https://accounts.spotify.com"
SPOTIFY_TOKEN_URL = f"{SPOTIFY_ACCOUNTS_BASE_URL}/api/token"

DEFAULT_SCOPES = (
    "playlist-read-private",
    "playlist-read-collaborative",
    "user-read-private",
    "user-read-email",
)

# RFC 7636 allows ALPHA / DIGIT / "-" / "." / "_" / "~"; alphanumerics are enough.
_VERIFIER_ALPHABET = string.ascii_letters + string.digits
VERIFIER_LENGTH = 64
STATE_LENGTH = 16

TOKEN_REQUEST_TIMEOUT = 15.0


def _base64url_no_pad(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("utf-8").rstrip("=")


def code_challenge_from_verifier(verifier: str) -> str:
    """Compute PKCE S256 code_challenge from code_verifier."""

    digest = hashlib.sha256((verifier or "").encode("utf-8")).digest()
    return _base64url_no_pad(digest)


def generate_random_string(length: int) -> str:
    return "".join(secrets.choice(_VERIFIER_ALPHABET) for _ in range(int(length)))


def check_spotify_credentials(config: Dict[str, Any]) -> Dict[str, Any]:
    """Validate Spotify OAuth config fields and return a structured status dict."""

    config = config or {}
    client_id = str(config.get("spotify_client_id", "")).strip()
    redirect_uri = str(config.get("spotify_redirect_uri", "")).strip()
    relay_url = str(config.get("spotify_token_relay_url", "")).strip()
    scopes = list(config.get("spotify_scopes", []) or [])

    status = {
        "ok": True,
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "relay_url": relay_url,
        "scopes": scopes,
        "message": "Spotify credentials look OK.",
    }

    if not client_id:
        status["ok"] = False
        status["message"] = (
            "Missing spotify_client_id in config.json.\n"
            "Create an app at https://developer.spotify.com/dashboard and copy its Client ID."
        )
    elif not redirect_uri:
        status["ok"] = False
        status["message"] = (
            "Missing spotify_redirect_uri in config.json.\n"
            "Recommended default: http://127.0.0.1:8888/callback"
        )

    return status


def spotify_app_setup_instructions(*, redirect_uri: str = "http://127.0.0.1:8888/callback") -> str:
    """Return user-facing setup instructions for creating a Spotify Developer app."""

    redirect_uri = str(redirect_uri or "").strip() or "http://127.0.0.1:8888/callback"
    return (
        "Spotify app setup:\n"
        "1) Go to https://developer.spotify.com/dashboard\n"
        "2) Create an app (or select an existing app)\n"
        f"3) Add this Redirect URI in the app settings: {redirect_uri}\n"
        "4) Copy the Client ID into config.json as spotify_client_id\n"
        "5) Optionally set spotify_token_relay_url to a backend that performs the code exchange\n\n"
        "Notes:\n"
        "- Authorization Code + PKCE is used; no client secret is stored locally.\n"
        "- Redirect URI must match *exactly* what you configure in the Spotify dashboard.\n"
    )


def extract_code_from_redirect_url(redirect_url: str) -> Dict[str, str]:
    """Parse a redirect URL and return {"code", "state", "error"} (missing keys omitted)."""

    parsed = urllib.parse.urlparse(str(redirect_url or "").strip())
    qs = urllib.parse.parse_qs(parsed.query)
    out: Dict[str, str] = {}
    if qs.get("code"):
        out["code"] = str(qs["code"][0])
    if qs.get("state"):
        out["state"] = str(qs["state"][0])
    if qs.get("error"):
        out["error"] = str(qs["error"][0])
    return out


def _describe_token_error(payload: Dict[str, Any]) -> str:
    return str(payload.get("error_description") or payload.get("error") or "unknown error")


# -----------------
# Token endpoints
# -----------------


class TokenEndpoint(Protocol):
    async def post_form(self, form: Dict[str, str]) -> Tuple[int, Dict[str, Any]]: ...


def _parse_token_response(resp: httpx.Response) -> Dict[str, Any]:
    try:
        payload = resp.json()
    except ValueError:
        # JSONDecodeError and UnicodeDecodeError both land here.
        return {"error": f"non-JSON response (HTTP {resp.status_code})"}
    if not isinstance(payload, dict):
        return {"error": "token response was not an object"}
    return payload


class AccountsTokenEndpoint:
    """POSTs form-encoded token requests straight to accounts.spotify.com."""

    def __init__(
        self,
        *,
        url: str = SPOTIFY_TOKEN_URL,
        timeout: float = TOKEN_REQUEST_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.timeout = timeout
        self.transport = transport

    async def post_form(self, form: Dict[str, str]) -> Tuple[int, Dict[str, Any]]:
        data = {k: str(v) for k, v in (form or {}).items() if v is not None}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.post(
                    self.url,
                    data=data,
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
        except httpx.HTTPError as e:
            raise NetworkError(details={"original_error": str(e)}) from e

        return resp.status_code, _parse_token_response(resp)


class RelayTokenEndpoint:
    """Forwards the code exchange to a backend relay that talks to Spotify.

    The relay accepts ``{clientId, code, redirectUri, codeVerifier}`` as JSON
    and answers with the accounts service's JSON (or ``{error}`` and a
    non-2xx status).
    """

    def __init__(
        self,
        relay_url: str,
        *,
        timeout: float = TOKEN_REQUEST_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.relay_url = relay_url
        self.timeout = timeout
        self.transport = transport

    async def post_form(self, form: Dict[str, str]) -> Tuple[int, Dict[str, Any]]:
        body = {
            "clientId": form.get("client_id"),
            "code": form.get("code"),
            "redirectUri": form.get("redirect_uri"),
            "codeVerifier": form.get("code_verifier"),
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.post(self.relay_url, json=body)
        except httpx.HTTPError as e:
            raise NetworkError(details={"original_error": str(e)}) from e

        return resp.status_code, _parse_token_response(resp)


@dataclass(frozen=True)
class PKCEPair:
    code_verifier: str
    code_challenge: str


class SpotifyPKCEAuth:
    """Spotify OAuth (Authorization Code + PKCE) token lifecycle.

    Owns the only write access to the credential store. Everyone else asks
    ``get_valid_token()`` for a token right before they need it.
    """

    def __init__(
        self,
        config: Dict[str, Any],
        *,
        credential_store: Optional[KeyValueStore] = None,
        session_store: Optional[KeyValueStore] = None,
        token_endpoint: Optional[TokenEndpoint] = None,
        refresh_endpoint: Optional[TokenEndpoint] = None,
        navigator: Optional[Callable[[str], Any]] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.config = config or {}
        self.credentials = CredentialStore(credential_store if credential_store is not None else MemoryStore())
        self.pending = PendingAuthorizationStore(session_store if session_store is not None else MemoryStore())

        timeout = float(self.config.get("spotify_request_timeout", TOKEN_REQUEST_TIMEOUT))
        relay_url = str(self.config.get("spotify_token_relay_url", "") or "").strip()
        accounts = AccountsTokenEndpoint(timeout=timeout)

        if token_endpoint is not None:
            self.token_endpoint = token_endpoint
        elif relay_url:
            self.token_endpoint = RelayTokenEndpoint(relay_url, timeout=timeout)
        else:
            self.token_endpoint = accounts
        # Refresh never goes through the relay.
        self.refresh_endpoint = refresh_endpoint if refresh_endpoint is not None else (token_endpoint or accounts)

        self.navigator = navigator if navigator is not None else webbrowser.open
        self.clock = clock
        self._refresh_lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def client_id(self) -> str:
        return str(self.config.get("spotify_client_id", "")).strip()

    @property
    def redirect_uri(self) -> str:
        return str(self.config.get("spotify_redirect_uri", "")).strip()

    # -----------------
    # Authorization
    # -----------------

    @staticmethod
    def generate_pkce_pair() -> PKCEPair:
        """Generate a PKCE verifier + challenge."""

        verifier = generate_random_string(VERIFIER_LENGTH)
        return PKCEPair(code_verifier=verifier, code_challenge=code_challenge_from_verifier(verifier))

    def get_authorize_url(
        self,
        *,
        code_challenge: str,
        state: str,
        scopes: Optional[Iterable[str]] = None,
        show_dialog: bool = False,
    ) -> str:
        if not self.redirect_uri:
            raise ValueError("Missing config.spotify_redirect_uri")

        scope_list = list(scopes if scopes is not None else (self.config.get("spotify_scopes") or DEFAULT_SCOPES))
        scope_str = " ".join([str(s).strip() for s in scope_list if str(s).strip()])

        params: Dict[str, str] = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "code_challenge_method": "S256",
            "code_challenge": str(code_challenge),
            "state": str(state),
        }
        if scope_str:
            params["scope"] = scope_str
        if show_dialog:
            params["show_dialog"] = "true"

        return f"{SPOTIFY_ACCOUNTS_BASE_URL}/authorize?{urllib.parse.urlencode(params)}"

    def start_authorization(self, *, show_dialog: bool = False) -> str:
        """Begin a login: store a fresh PKCE pair + state, then navigate to Spotify.

        Any earlier in-flight authorization is replaced. Returns the
        authorize URL that was handed to the navigator.
        """

        pkce = self.generate_pkce_pair()
        state = generate_random_string(STATE_LENGTH)
        url = self.get_authorize_url(code_challenge=pkce.code_challenge, state=state, show_dialog=show_dialog)

        self.pending.save(PendingAuthorization(code_verifier=pkce.code_verifier, state=state))
        logger.info("Starting Spotify authorization")
        self.navigator(url)
        return url

    def build_exchange_form(self, *, code: str, code_verifier: str) -> Dict[str, str]:
        return {
            "client_id": self.client_id,
            "grant_type": "authorization_code",
            "code": str(code),
            "redirect_uri": self.redirect_uri,
            "code_verifier": code_verifier,
        }

    async def complete_authorization(self, code: str, returned_state: Optional[str]) -> str:
        """Handle the OAuth callback and persist the resulting credential.

        The pending authorization is consumed whatever the outcome: a code can
        only be exchanged once, so a failed attempt has to restart the flow.
        """

        stored_state = self.pending.stored_state()
        verifier = self.pending.stored_verifier()

        if stored_state is None and verifier is None:
            raise MissingVerifier()

        if stored_state is None or returned_state != stored_state:
            self.pending.clear()
            logger.warning("OAuth state mismatch; discarding pending authorization")
            raise StateMismatch()

        if not verifier:
            self.pending.clear()
            raise MissingVerifier()

        self.pending.clear()

        form = self.build_exchange_form(code=code, code_verifier=verifier)
        try:
            status, payload = await self.token_endpoint.post_form(form)
        except NetworkError as e:
            raise ExchangeFailed(f"Token exchange failed: {e.message}", details=e.details) from e

        issued_at = self.clock()
        if not 200 <= status < 300 or not payload.get("access_token"):
            raise ExchangeFailed(
                f"Token exchange failed: {_describe_token_error(payload)}",
                details={"status": status},
            )

        credential = Credential.from_token_response(payload, issued_at_ms=issued_at)
        self.credentials.save(credential)
        logger.info("Spotify authorization completed")
        return credential.access_token

    # -----------------
    # Token access
    # -----------------

    async def get_valid_token(self) -> Optional[str]:
        """Return a usable access token, refreshing once if expired.

        Returns None (never raises) when there is no credential or the
        refresh fails; the stored credential is dropped in the latter case.
        """

        credential = self.credentials.load()
        if credential is None:
            return None
        if not credential.is_expired(self.clock()):
            return credential.access_token
        return await self._refresh(force=False)

    async def force_refresh(self) -> Optional[str]:
        """Refresh regardless of the stored expiry (after the API rejected the token)."""
        if self.credentials.load() is None:
            return None
        return await self._refresh(force=True)

    async def is_authenticated(self) -> bool:
        return (await self.get_valid_token()) is not None

    def _get_refresh_lock(self) -> asyncio.Lock:
        # The CLI drives each action with its own asyncio.run(); a lock is
        # only valid inside the loop that first waited on it.
        loop = asyncio.get_running_loop()
        if self._refresh_lock is None or self._lock_loop is not loop:
            self._refresh_lock = asyncio.Lock()
            self._lock_loop = loop
        return self._refresh_lock

    async def _refresh(self, *, force: bool) -> Optional[str]:
        async with self._get_refresh_lock():
            credential = self.credentials.load()
            if credential is None:
                return None
            # Another coroutine may have refreshed while this one waited.
            if not force and not credential.is_expired(self.clock()):
                return credential.access_token

            if not credential.refresh_token:
                logger.warning("Spotify token expired and no refresh_token is available")
                self.credentials.clear()
                return None

            form = {
                "client_id": self.client_id,
                "grant_type": "refresh_token",
                "refresh_token": credential.refresh_token,
            }
            try:
                status, payload = await self.refresh_endpoint.post_form(form)
            except NetworkError as e:
                logger.warning(f"Spotify token refresh failed: {e.message}")
                self.credentials.clear()
                return None

            issued_at = self.clock()
            if not 200 <= status < 300 or not payload.get("access_token"):
                logger.warning(f"Spotify token refresh failed (HTTP {status}): {_describe_token_error(payload)}")
                self.credentials.clear()
                return None

            # Spotify may omit refresh_token on refresh; keep the existing one.
            refreshed = Credential.from_token_response(
                payload,
                issued_at_ms=issued_at,
                fallback_refresh_token=credential.refresh_token,
            )
            self.credentials.save(refreshed)
            logger.info("Spotify access token refreshed")
            return refreshed.access_token

    def logout(self) -> None:
        self.credentials.clear()
        self.pending.clear()
