import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from spotify_api.auth import SpotifyPKCEAuth
from spotify_api.client import SpotifyClient
from spotify_api.data_loader import BatchProgress, SpotifyDataLoader
from spotify_api.errors import AuthExpired, InsufficientData, InvalidInput, SpotifyAPIError, is_auth_error
from spotify_api.models import FeatureRecord, PlaylistSummary, TrackItem, UserProfile
from spotify_api.token_manager import DEFAULT_TOKEN_CACHE_PATH, JsonFileStore, KeyValueStore

from .engine import AnalysisResult, analyze

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_AUTH_LOGOUT_DELAY = 1.5


class CancellationToken:
    """Set by a consumer that no longer wants the result of an in-flight run."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class AnalysisState:
    """What a playlist view renders.

    ``update`` is the only way to write; it is a no-op once the token is
    cancelled, so responses arriving after the view was abandoned change
    nothing.
    """

    def __init__(self, cancel: Optional[CancellationToken] = None) -> None:
        self.cancel = cancel or CancellationToken()
        self.loading = False
        self.error: Optional[SpotifyAPIError] = None
        self.tracks: List[TrackItem] = []
        self.features: List[FeatureRecord] = []
        self.result: Optional[AnalysisResult] = None

    def update(self, **changes: Any) -> bool:
        if self.cancel.cancelled:
            return False
        for key, value in changes.items():
            if not hasattr(self, key) or key == "cancel":
                raise AttributeError(f"Unknown analysis state field: {key}")
            setattr(self, key, value)
        return True


@dataclass
class Dashboard:
    profile: UserProfile
    playlists: List[PlaylistSummary] = field(default_factory=list)


def validate_playlist(playlist: Any) -> str:
    """Return the playlist id, or raise InvalidInput for a malformed reference."""

    if playlist is None:
        raise InvalidInput("Playlist data is missing.")
    if isinstance(playlist, dict):
        pid, name = playlist.get("id"), playlist.get("name")
    else:
        pid, name = getattr(playlist, "id", None), getattr(playlist, "name", None)
    if not pid or not isinstance(pid, str):
        raise InvalidInput("Playlist ID is missing.")
    if not name:
        raise InvalidInput("Playlist name is missing.")
    return pid


async def gather_or_cancel(*aws: Awaitable[Any]) -> List[Any]:
    """Like ``asyncio.gather``, but the first failure cancels the siblings."""

    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    except asyncio.CancelledError:
        for task in tasks:
            task.cancel()
        raise

    if pending:
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    errors = [t.exception() for t in tasks if not t.cancelled()]
    for error in errors:
        if error is not None:
            raise error
    return [task.result() for task in tasks]


class PlaylistAnalyzer:
    """Runs token -> fetch -> analyze for the CLI (or any other front end)."""

    def __init__(
        self,
        auth: SpotifyPKCEAuth,
        loader: SpotifyDataLoader,
        *,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        auth_logout_delay: float = DEFAULT_AUTH_LOGOUT_DELAY,
    ):
        self.auth = auth
        self.loader = loader
        self.sleep = sleep if sleep is not None else asyncio.sleep
        self.auth_logout_delay = auth_logout_delay

    async def call_authenticated(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation``; on AuthExpired force one refresh and try once more.

        If the refresh fails or the retry is rejected too, the user is logged
        out and the AuthExpired propagates.
        """

        try:
            return await operation()
        except AuthExpired:
            logger.info("Spotify rejected the access token; forcing a refresh")
            if not await self.auth.force_refresh():
                self.auth.logout()
                raise

        try:
            return await operation()
        except AuthExpired:
            self.auth.logout()
            raise

    async def load_dashboard(self, *, cancel: Optional[CancellationToken] = None) -> Optional[Dashboard]:
        """Profile and playlists, fetched concurrently. None if cancelled meanwhile."""

        profile, playlists = await self.call_authenticated(
            lambda: gather_or_cancel(self.loader.get_profile(), self.loader.list_playlists())
        )
        if cancel is not None and cancel.cancelled:
            return None
        return Dashboard(profile=profile, playlists=playlists)

    async def analyze_playlist(
        self,
        playlist: Any,
        *,
        state: Optional[AnalysisState] = None,
        on_batch: Optional[BatchProgress] = None,
    ) -> Optional[AnalysisResult]:
        """Fetch a playlist's tracks and audio features and analyze them.

        Progress and the outcome are written to ``state``. Returns None when
        the run was cancelled; errors are recorded on ``state`` and re-raised.
        """

        state = state or AnalysisState()
        cancel = state.cancel
        state.update(loading=True, error=None, result=None)

        try:
            playlist_id = validate_playlist(playlist)

            tracks = await self.call_authenticated(lambda: self.loader.load_playlist_tracks(playlist_id))
            if cancel.cancelled:
                return None
            if not tracks:
                raise InsufficientData("This playlist appears to be empty or contains no valid tracks.")
            state.update(tracks=tracks)

            fetched = await self.call_authenticated(
                lambda: self.loader.fetch_features([t.id for t in tracks], on_batch=on_batch)
            )
            if cancel.cancelled:
                return None
            features = fetched["items"]
            state.update(features=features)

            result = analyze(tracks, features)
            state.update(result=result)
            return result
        except SpotifyAPIError as e:
            state.update(error=e)
            raise
        finally:
            state.update(loading=False)

    async def handle_failure(self, exc: SpotifyAPIError) -> str:
        """Message to show for a surfaced error; auth errors also log out after a pause."""

        if is_auth_error(exc):
            await self.sleep(self.auth_logout_delay)
            self.auth.logout()
        return exc.message


def create_analyzer(
    config: Dict[str, Any],
    *,
    session_store: KeyValueStore,
    navigator: Optional[Callable[[str], Any]] = None,
) -> PlaylistAnalyzer:
    """Wire auth, client and loader from config.

    Credentials persist in the JSON token cache; the pending authorization
    lives in ``session_store`` and dies with the process.
    """

    config = config or {}
    auth = SpotifyPKCEAuth(
        config,
        credential_store=JsonFileStore(str(config.get("spotify_token_cache_path") or DEFAULT_TOKEN_CACHE_PATH)),
        session_store=session_store,
        navigator=navigator,
    )
    client = SpotifyClient(config, auth.get_valid_token)
    loader = SpotifyDataLoader(client, config)
    return PlaylistAnalyzer(
        auth,
        loader,
        auth_logout_delay=float(config.get("spotify_auth_logout_delay", DEFAULT_AUTH_LOGOUT_DELAY)),
    )
