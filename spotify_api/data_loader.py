import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from utils.logger import log_warning

from .client import SpotifyClient, is_valid_spotify_id
from .errors import SpotifyAPIError
from .models import FeatureRecord, PlaylistSummary, TrackItem, UserProfile

logger = logging.getLogger(__name__)

MAX_PAGES = 50
FEATURE_BATCH_SIZE = 100

BatchProgress = Callable[[int, int], Any]


def filter_valid_ids(ids: Iterable[Any]) -> List[str]:
    """Drop malformed ids, preserving order.

    Repeated ids are kept: a track listed twice contributes two records.
    """

    return [i for i in ids or [] if is_valid_spotify_id(i)]


class SpotifyDataLoader:
    """High-level helpers for pulling playlists, tracks and audio features.

    Pages and feature batches are fetched strictly one after another, so
    results keep response order.
    """

    def __init__(self, client: SpotifyClient, config: Optional[Dict[str, Any]] = None):
        self.client = client
        self.config = config or {}
        self.max_pages = min(MAX_PAGES, int(self.config.get("spotify_max_pages", MAX_PAGES)))
        self.batch_size = min(FEATURE_BATCH_SIZE, int(self.config.get("spotify_feature_batch_size", FEATURE_BATCH_SIZE)))

    async def collect_all(self, initial_path: str) -> List[Dict[str, Any]]:
        """Follow ``next`` cursors from ``initial_path`` and concatenate ``items``.

        Stops when a page has no ``next`` or after ``max_pages`` pages. A
        failing page aborts the whole collection.
        """

        items: List[Dict[str, Any]] = []
        path: Optional[str] = initial_path
        pages = 0

        while path and pages < self.max_pages:
            page = await self.client.request("GET", path)
            pages += 1
            page_items = page.get("items") or []
            if isinstance(page_items, list):
                items.extend(page_items)
            cursor = page.get("next")
            path = cursor if isinstance(cursor, str) and cursor else None

        if path:
            logger.warning(f"Stopped paging {initial_path} after {pages} pages")
        return items

    async def fetch_features(
        self,
        ids: Iterable[Any],
        *,
        on_batch: Optional[BatchProgress] = None,
    ) -> Dict[str, List[FeatureRecord]]:
        """Fetch audio features in batches of up to 100 ids.

        A batch that fails is logged and skipped; the result holds the
        features of every batch that succeeded.
        """

        ids = list(ids or [])
        if not ids:
            return {"items": []}

        valid = filter_valid_ids(ids)
        if len(valid) < len(ids):
            logger.debug(f"Ignoring {len(ids) - len(valid)} malformed track ids")

        batches = [valid[i : i + self.batch_size] for i in range(0, len(valid), self.batch_size)]
        records: List[FeatureRecord] = []

        for n, batch in enumerate(batches, start=1):
            try:
                payload = await self.client.audio_features(batch)
            except SpotifyAPIError as e:
                log_warning(f"Audio features batch {n}/{len(batches)} failed: {e.message}")
            else:
                feats = payload.get("audio_features") or []
                if isinstance(feats, list):
                    for f in feats:
                        record = FeatureRecord.from_spotify(f)
                        if record is not None:
                            records.append(record)
            if on_batch is not None:
                on_batch(n, len(batches))

        return {"items": records}

    async def load_playlist_tracks(self, playlist_id: str) -> List[TrackItem]:
        """All tracks of a playlist, skipping entries with no usable track id."""

        raw = await self.collect_all(self.client.playlist_tracks_path(playlist_id))
        tracks = []
        for item in raw:
            track = TrackItem.from_playlist_item(item)
            if track is not None:
                tracks.append(track)
        return tracks

    async def list_playlists(self, *, limit: int = 50) -> List[PlaylistSummary]:
        raw = await self.collect_all(f"/me/playlists?limit={min(50, int(limit))}")
        out = []
        for p in raw:
            summary = PlaylistSummary.from_spotify(p)
            if summary is not None:
                out.append(summary)
        return out

    async def get_profile(self) -> UserProfile:
        return UserProfile.from_spotify(await self.client.me())
