import sys
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from analysis.engine import ArtistCount, Mood, analyze, classify_mood, round_half_up, top_artists
from spotify_api.errors import InsufficientData
from spotify_api.models import FeatureRecord, TrackItem


def rec(track_id="t", energy=0.5, valence=0.5, danceability=0.5, tempo=120.0):
    return FeatureRecord(track_id=track_id, energy=energy, valence=valence, danceability=danceability, tempo=tempo)


def trk(track_id, *artists, duration_ms=60000):
    return TrackItem(id=track_id, duration_ms=duration_ms, artist_names=tuple(artists))


class TestMood(unittest.TestCase):
    def test_energetic_and_happy(self):
        result = analyze([trk("t")], [rec(energy=0.8, valence=0.8)])
        self.assertEqual(result.mood, Mood.ENERGETIC_HAPPY)
        self.assertEqual(result.mood.value, "Energetic & Happy")

    def test_melancholic(self):
        self.assertEqual(analyze([trk("t")], [rec(energy=0.2, valence=0.2)]).mood, Mood.MELANCHOLIC)

    def test_rule_order(self):
        cases = [
            ((0.7, 0.3), Mood.CHILL_POSITIVE),
            ((0.3, 0.7), Mood.INTENSE),
            ((0.5, 0.75), Mood.HIGH_ENERGY),
            ((0.75, 0.5), Mood.HAPPY),
            ((0.5, 0.5), Mood.NEUTRAL),
            # Boundaries are strict comparisons.
            ((0.6, 0.6), Mood.NEUTRAL),
            ((0.4, 0.4), Mood.NEUTRAL),
            ((0.5, 0.7), Mood.NEUTRAL),
        ]
        for (valence, energy), expected in cases:
            with self.subTest(valence=valence, energy=energy):
                self.assertEqual(classify_mood(valence, energy), expected)


class TestAnalyze(unittest.TestCase):
    def test_no_features_is_insufficient_data(self):
        with self.assertRaises(InsufficientData):
            analyze([trk("t", "A")], [])

    def test_unweighted_averages_and_rounding(self):
        features = [
            rec("a", energy=0.5, valence=0.2, danceability=0.333, tempo=100.0),
            rec("b", energy=0.6, valence=0.3, danceability=0.334, tempo=121.0),
        ]
        tracks = [trk("a", duration_ms=1_000_000), trk("b", duration_ms=10)]
        result = analyze(tracks, features)

        self.assertEqual(result.avg_energy_pct, 55)
        self.assertEqual(result.avg_valence_pct, 25)
        self.assertEqual(result.avg_danceability_pct, 33)
        self.assertEqual(result.avg_tempo_bpm, 111)

    def test_duration_is_floored_minutes(self):
        tracks = [trk("a", duration_ms=119_999), trk("b", duration_ms=60_000)]
        self.assertEqual(analyze(tracks, [rec("a")]).total_duration_minutes, 2)

    def test_tracks_without_features_still_count(self):
        tracks = [trk("a", "X"), trk("b", "Y"), trk("c", "Y")]
        result = analyze(tracks, [rec("a", energy=0.9, valence=0.9)])
        self.assertEqual(result.total_tracks, 3)
        self.assertEqual(result.avg_energy_pct, 90)
        self.assertEqual(result.top_artists[0], ArtistCount("Y", 2))

    def test_to_dict(self):
        data = analyze([trk("a", "X")], [rec("a")]).to_dict()
        self.assertEqual(data["mood"], "Neutral")
        self.assertEqual(data["top_artists"], [{"artist": "X", "count": 1}])


class TestTopArtists(unittest.TestCase):
    def test_ties_keep_first_appearance(self):
        tracks = [
            trk("1", "Zed"),
            trk("2", "Amy", "Bob"),
            trk("3", "Bob"),
            trk("4", "Zed"),
            trk("5", "Amy"),
        ]
        ranked = top_artists(tracks)
        self.assertEqual([a.artist for a in ranked], ["Zed", "Amy", "Bob"])
        self.assertEqual([a.count for a in ranked], [2, 2, 2])

    def test_keeps_top_five(self):
        tracks = [trk(str(i), f"Artist {i}") for i in range(8)] + [trk("x", "Artist 7")]
        ranked = top_artists(tracks)
        self.assertEqual(len(ranked), 5)
        self.assertEqual(ranked[0], ArtistCount("Artist 7", 2))
        self.assertEqual([a.artist for a in ranked[1:]], ["Artist 0", "Artist 1", "Artist 2", "Artist 3"])


class TestRounding(unittest.TestCase):
    def test_half_rounds_up(self):
        self.assertEqual(round_half_up(12.5), 13)
        self.assertEqual(round_half_up(13.5), 14)
        self.assertEqual(round_half_up(12.49), 12)


if __name__ == "__main__":
    unittest.main(verbosity=2)
