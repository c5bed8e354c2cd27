import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

import questionary
from tqdm import tqdm

from analysis.engine import AnalysisResult
from analysis.pipeline import AnalysisState, PlaylistAnalyzer, create_analyzer
from spotify_api.errors import SpotifyAPIError, is_auth_error
from spotify_api.models import PlaylistSummary, TrackItem, format_duration
from spotify_api.token_manager import KeyValueStore
from utils.logger import log_error, log_info, log_warning

T = TypeVar("T")

TRACK_LIST_LIMIT = 50


def _run_with_retry(analyzer: PlaylistAnalyzer, label: str, make_call: Callable[[], Awaitable[T]]) -> Optional[T]:
    """Run an async pipeline call; on failure show the message and offer a retry."""

    while True:
        try:
            return asyncio.run(make_call())
        except SpotifyAPIError as e:
            message = asyncio.run(analyzer.handle_failure(e))
            log_error(f"{label}: {message}")
            if is_auth_error(e):
                log_info("You have been logged out. Run 'Log in with Spotify' again.")
                return None
            if not questionary.confirm("Try again?", default=True).ask():
                return None


def _playlist_title(p: PlaylistSummary) -> str:
    total = str(p.tracks_total) if p.tracks_total is not None else "?"
    title = f"{p.name or '(unnamed)'} ({total} tracks)"
    if p.owner:
        title += f" - {p.owner}"
    return title


def print_analysis(playlist: PlaylistSummary, result: AnalysisResult, tracks: list) -> None:
    print("\n" + "=" * 60)
    print(f"🎵 {playlist.name}")
    print("=" * 60)
    print(f"  Total tracks:  {result.total_tracks}")
    print(f"  Duration:      {result.total_duration_minutes}m")
    print(f"  Average BPM:   {result.avg_tempo_bpm}")
    print(f"  Overall mood:  {result.mood.value}")
    print("\nAudio characteristics:")
    print(f"  Energy:        {result.avg_energy_pct}%")
    print(f"  Positivity:    {result.avg_valence_pct}%")
    print(f"  Danceability:  {result.avg_danceability_pct}%")
    print("\nTop artists:")
    for i, item in enumerate(result.top_artists, start=1):
        print(f"  #{i} {item.artist} ({item.count} track{'s' if item.count > 1 else ''})")
    print_track_list(tracks)


def print_track_list(tracks: list) -> None:
    print("\nTrack list:")
    for i, track in enumerate(tracks[:TRACK_LIST_LIMIT], start=1):
        if not isinstance(track, TrackItem):
            continue
        artists = ", ".join(track.artist_names)
        print(f"  {i:>3}. {track.name} - {artists} [{format_duration(track.duration_ms)}]")
    if len(tracks) > TRACK_LIST_LIMIT:
        print(f"  Showing first {TRACK_LIST_LIMIT} tracks of {len(tracks)} total")
    print("=" * 60 + "\n")


def analyze_selected_playlist(analyzer: PlaylistAnalyzer, playlist: PlaylistSummary) -> None:
    state = AnalysisState()

    async def run():
        with tqdm(total=0, desc="Audio features", unit="batch", leave=False) as bar:

            def on_batch(done: int, total: int) -> None:
                bar.total = total
                bar.update(1)

            return await analyzer.analyze_playlist(playlist, state=state, on_batch=on_batch)

    log_info(f"Analyzing '{playlist.name}'...")
    result = _run_with_retry(analyzer, "Failed to analyze playlist", run)
    if result is None:
        if state.tracks and state.error is not None:
            print_track_list(state.tracks)
        return
    print_analysis(playlist, result, state.tracks)


def analysis_menu(config: dict, session_store: KeyValueStore) -> None:
    analyzer = create_analyzer(config, session_store=session_store)

    dashboard = _run_with_retry(analyzer, "Failed to load dashboard", analyzer.load_dashboard)
    if dashboard is None:
        return

    if dashboard.profile.label:
        log_info(f"Signed in as: {dashboard.profile.label}")

    if not dashboard.playlists:
        log_warning("No playlists found for this account.")
        return

    while True:
        choices = [questionary.Choice(title=_playlist_title(p), value=p) for p in dashboard.playlists]
        choices.append(questionary.Choice(title="Back", value=None))
        selected = questionary.select("Select a playlist to analyze:", choices=choices).ask()
        if selected is None:
            break
        analyze_selected_playlist(analyzer, selected)
        if not asyncio.run(analyzer.auth.is_authenticated()):
            break
