import asyncio
import time
import webbrowser

import questionary

from analysis.pipeline import create_analyzer
from spotify_api.auth import check_spotify_credentials, extract_code_from_redirect_url, spotify_app_setup_instructions
from spotify_api.errors import ExchangeFailed, SpotifyAPIError
from spotify_api.token_manager import CredentialStore, JsonFileStore, KeyValueStore, now_ms
from utils.logger import log_error, log_info, log_success, log_warning


def spotify_setup_help(config: dict) -> None:
    creds = check_spotify_credentials(config)
    log_info("\n" + "=" * 72)
    log_info("SPOTIFY WEB API SETUP")
    log_info("=" * 72)
    log_info(spotify_app_setup_instructions(redirect_uri=creds.get("redirect_uri") or "http://127.0.0.1:8888/callback"))
    log_info(f"- spotify_client_id: {'SET' if creds.get('client_id') else 'NOT SET'}")
    log_info(f"- spotify_redirect_uri: {creds.get('redirect_uri') or ''}")
    log_info(f"- spotify_token_relay_url: {creds.get('relay_url') or '(direct exchange)'}")
    log_info(f"- spotify_scopes: {', '.join(creds.get('scopes') or [])}")
    if not creds.get("ok"):
        log_warning(creds.get("message") or "Spotify credentials are incomplete.")
    log_info("=" * 72 + "\n")


def spotify_token_status(config: dict) -> str:
    store = CredentialStore(JsonFileStore(config["spotify_token_cache_path"]))
    credential = store.load()
    if credential is None:
        return "Not logged in."
    expired = credential.is_expired(now_ms())
    exp_str = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(credential.expires_at_ms / 1000))
    refresh = "YES" if credential.refresh_token else "NO"
    return f"Logged in | Expired: {'YES' if expired else 'NO'} | Expires at: {exp_str} | Refresh token: {refresh}"


def _open_in_browser(url: str) -> None:
    log_info(f"Authorize URL:\n{url}")
    if questionary.confirm("Open the authorize URL in your default browser?", default=True).ask():
        if not webbrowser.open(url):
            log_warning("Could not open a browser; copy the URL above instead.")


def spotify_authenticate(config: dict, session_store: KeyValueStore) -> bool:
    """Run the PKCE flow; the user pastes the redirect URL back into the CLI."""

    creds = check_spotify_credentials(config)
    if not creds.get("ok"):
        log_warning(creds.get("message") or "Spotify credentials are incomplete.")
        spotify_setup_help(config)
        return False

    analyzer = create_analyzer(config, session_store=session_store, navigator=_open_in_browser)

    log_info("\n" + "=" * 72)
    log_info("SPOTIFY AUTHENTICATION")
    log_info("=" * 72)
    log_info("1) Approve access in the browser.")
    log_info("2) Spotify redirects to your redirect_uri.")
    log_info("3) Copy the FULL redirect URL from the browser and paste it back here.")
    analyzer.auth.start_authorization(show_dialog=True)

    pasted = (questionary.text("Paste the full redirect URL:").ask() or "").strip()
    if not pasted:
        log_warning("No redirect URL provided. Cancelling auth.")
        analyzer.auth.pending.clear()
        return False

    parsed = extract_code_from_redirect_url(pasted)

    async def complete():
        if parsed.get("error"):
            analyzer.auth.pending.clear()
            raise ExchangeFailed(f"Authentication failed: {parsed['error']}")
        if not parsed.get("code"):
            analyzer.auth.pending.clear()
            raise ExchangeFailed("No authorization code received.")
        await analyzer.auth.complete_authorization(parsed["code"], parsed.get("state"))

    try:
        asyncio.run(complete())
    except SpotifyAPIError as e:
        log_error(f"Spotify authentication failed: {e.message}")
        return False

    log_success("Spotify authentication successful.")
    log_info(spotify_token_status(config))
    return True


def spotify_logout(config: dict, session_store: KeyValueStore) -> None:
    create_analyzer(config, session_store=session_store).auth.logout()
    log_success("Logged out. Stored Spotify credentials were removed.")
