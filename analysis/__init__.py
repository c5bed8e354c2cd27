from .engine import AnalysisResult, ArtistCount, Mood, analyze, classify_mood
from .pipeline import (
    AnalysisState,
    CancellationToken,
    Dashboard,
    PlaylistAnalyzer,
    create_analyzer,
    validate_playlist,
)

__all__ = [
    "AnalysisResult",
    "AnalysisState",
    "ArtistCount",
    "CancellationToken",
    "Dashboard",
    "Mood",
    "PlaylistAnalyzer",
    "analyze",
    "classify_mood",
    "create_analyzer",
    "validate_playlist",
]
