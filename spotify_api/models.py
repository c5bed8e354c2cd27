from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple


def _unit_float(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    value = float(value)
    if value < 0.0 or value > 1.0:
        return None
    return value


@dataclass(frozen=True)
class TrackItem:
    """A playlist entry reduced to what the analysis needs (plus display fields)."""

    id: str
    duration_ms: int
    artist_names: Tuple[str, ...] = field(default_factory=tuple)
    name: str = ""
    album: str = ""

    @staticmethod
    def from_playlist_item(item: Any) -> Optional["TrackItem"]:
        """Normalize one ``/playlists/{id}/tracks`` item.

        Returns None for entries without a track object or track id
        (removed tracks, local files, podcast placeholders).
        """

        if not isinstance(item, dict):
            return None
        track_obj = item.get("track")
        if not isinstance(track_obj, dict):
            return None

        track_id = track_obj.get("id")
        if not isinstance(track_id, str) or not track_id.strip():
            return None

        artists = track_obj.get("artists")
        names = []
        if isinstance(artists, list):
            for a in artists:
                if isinstance(a, dict) and a.get("name"):
                    names.append(str(a["name"]).strip())

        duration = track_obj.get("duration_ms")
        if isinstance(duration, bool) or not isinstance(duration, (int, float)) or duration < 0:
            duration = 0

        album = track_obj.get("album")
        return TrackItem(
            id=track_id.strip(),
            duration_ms=int(duration),
            artist_names=tuple(n for n in names if n),
            name=str(track_obj.get("name") or ""),
            album=str(album.get("name") or "") if isinstance(album, dict) else "",
        )


@dataclass(frozen=True)
class FeatureRecord:
    track_id: str
    energy: float
    valence: float
    danceability: float
    tempo: float

    @staticmethod
    def from_spotify(payload: Any) -> Optional["FeatureRecord"]:
        """Parse one ``/audio-features`` entry; None if missing or out of range.

        Spotify returns ``null`` in place of a record for unknown ids.
        """

        if not isinstance(payload, dict):
            return None
        track_id = payload.get("id")
        if not isinstance(track_id, str) or not track_id:
            return None

        energy = _unit_float(payload.get("energy"))
        valence = _unit_float(payload.get("valence"))
        danceability = _unit_float(payload.get("danceability"))
        tempo = payload.get("tempo")
        if energy is None or valence is None or danceability is None:
            return None
        if isinstance(tempo, bool) or not isinstance(tempo, (int, float)) or tempo <= 0:
            return None

        return FeatureRecord(
            track_id=track_id,
            energy=energy,
            valence=valence,
            danceability=danceability,
            tempo=float(tempo),
        )


@dataclass(frozen=True)
class PlaylistSummary:
    id: str
    name: str
    tracks_total: Optional[int] = None
    owner: Optional[str] = None
    public: Optional[bool] = None

    @staticmethod
    def from_spotify(payload: Any) -> Optional["PlaylistSummary"]:
        if not isinstance(payload, dict):
            return None
        pid = str(payload.get("id") or "").strip()
        if not pid:
            return None
        tracks = payload.get("tracks")
        total = tracks.get("total") if isinstance(tracks, dict) else None
        owner = payload.get("owner")
        return PlaylistSummary(
            id=pid,
            name=str(payload.get("name") or "").strip(),
            tracks_total=total if isinstance(total, int) else None,
            owner=owner.get("display_name") if isinstance(owner, dict) else None,
            public=payload.get("public"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "tracks_total": self.tracks_total,
            "owner": self.owner,
            "public": self.public,
        }


@dataclass(frozen=True)
class UserProfile:
    id: str
    display_name: Optional[str] = None
    email: Optional[str] = None
    country: Optional[str] = None
    product: Optional[str] = None

    @staticmethod
    def from_spotify(payload: Any) -> "UserProfile":
        payload = payload if isinstance(payload, dict) else {}
        return UserProfile(
            id=str(payload.get("id") or ""),
            display_name=payload.get("display_name"),
            email=payload.get("email"),
            country=payload.get("country"),
            product=payload.get("product"),
        )

    @property
    def label(self) -> str:
        return (self.display_name or self.id or "").strip()


def format_duration(ms: int) -> str:
    """Format milliseconds as ``m:ss``."""
    ms = max(0, int(ms or 0))
    minutes = ms // 60000
    seconds = (ms % 60000) // 1000
    return f"{minutes}:{seconds:02d}"
