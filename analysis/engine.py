import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Sequence

from spotify_api.errors import InsufficientData
from spotify_api.models import FeatureRecord, TrackItem

TOP_ARTISTS_LIMIT = 5


class Mood(str, Enum):
    ENERGETIC_HAPPY = "Energetic & Happy"
    CHILL_POSITIVE = "Chill & Positive"
    INTENSE = "Intense"
    MELANCHOLIC = "Melancholic"
    HIGH_ENERGY = "High Energy"
    HAPPY = "Happy"
    NEUTRAL = "Neutral"


@dataclass(frozen=True)
class ArtistCount:
    artist: str
    count: int


@dataclass(frozen=True)
class AnalysisResult:
    total_tracks: int
    total_duration_minutes: int
    avg_energy_pct: int
    avg_valence_pct: int
    avg_danceability_pct: int
    avg_tempo_bpm: int
    mood: Mood
    top_artists: List[ArtistCount] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_tracks": self.total_tracks,
            "total_duration_minutes": self.total_duration_minutes,
            "avg_energy_pct": self.avg_energy_pct,
            "avg_valence_pct": self.avg_valence_pct,
            "avg_danceability_pct": self.avg_danceability_pct,
            "avg_tempo_bpm": self.avg_tempo_bpm,
            "mood": self.mood.value,
            "top_artists": [{"artist": a.artist, "count": a.count} for a in self.top_artists],
        }


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def classify_mood(valence: float, energy: float) -> Mood:
    """First matching rule wins."""
    if valence > 0.6 and energy > 0.6:
        return Mood.ENERGETIC_HAPPY
    if valence > 0.6 and energy < 0.4:
        return Mood.CHILL_POSITIVE
    if valence < 0.4 and energy > 0.6:
        return Mood.INTENSE
    if valence < 0.4 and energy < 0.4:
        return Mood.MELANCHOLIC
    if energy > 0.7:
        return Mood.HIGH_ENERGY
    if valence > 0.7:
        return Mood.HAPPY
    return Mood.NEUTRAL


def top_artists(tracks: Sequence[TrackItem], limit: int = TOP_ARTISTS_LIMIT) -> List[ArtistCount]:
    """Most frequent artist names; equal counts keep first-appearance order."""

    counts: Dict[str, int] = {}
    for track in tracks:
        for name in track.artist_names:
            counts[name] = counts.get(name, 0) + 1

    # dicts keep insertion order and sorted() is stable
    ranked = sorted(counts.items(), key=lambda kv: kv[1], reverse=True)
    return [ArtistCount(artist=name, count=count) for name, count in ranked[:limit]]


def analyze(tracks: Sequence[TrackItem], features: Sequence[FeatureRecord]) -> AnalysisResult:
    """Reduce a playlist's tracks and audio features to summary statistics.

    Averages are plain means over the feature records (not weighted by
    duration). Tracks without a feature record still count towards the
    track total, the duration and the artist ranking.

    Raises InsufficientData when there is no feature record at all.
    """

    if not features:
        raise InsufficientData("No audio features are available for this playlist.")

    n = len(features)
    avg_energy = sum(f.energy for f in features) / n
    avg_valence = sum(f.valence for f in features) / n
    avg_danceability = sum(f.danceability for f in features) / n
    avg_tempo = sum(f.tempo for f in features) / n

    total_ms = sum(t.duration_ms for t in tracks)

    return AnalysisResult(
        total_tracks=len(tracks),
        total_duration_minutes=total_ms // 60000,
        avg_energy_pct=round_half_up(avg_energy * 100),
        avg_valence_pct=round_half_up(avg_valence * 100),
        avg_danceability_pct=round_half_up(avg_danceability * 100),
        avg_tempo_bpm=round_half_up(avg_tempo),
        mood=classify_mood(avg_valence, avg_energy),
        top_artists=top_artists(tracks),
    )
