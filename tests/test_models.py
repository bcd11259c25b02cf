"""
Tests for feature record normalization.
"""

import json

import pytest
from mixplan.models import (
    VocalInterval,
    INSTRUMENTAL,
    BUILD_UP,
    CHORUS,
    normalize_section_kind,
    parse_time_to_ms,
    track_from_record,
    tracks_from_records,
)


class TestParseTime:
    """Test timestamp parsing."""

    def test_numbers_are_ms(self):
        assert parse_time_to_ms(1500) == 1500
        assert parse_time_to_ms(1500.4) == 1500

    def test_minutes_seconds(self):
        assert parse_time_to_ms("01:30.5") == 90500

    def test_hours_minutes_seconds(self):
        assert parse_time_to_ms("1:00:00") == 3600000

    def test_numeric_string(self):
        assert parse_time_to_ms("2500") == 2500

    def test_unparseable(self):
        assert parse_time_to_ms("soon") is None
        assert parse_time_to_ms(None) is None
        assert parse_time_to_ms("") is None

    def test_non_finite(self):
        assert parse_time_to_ms(float("nan")) is None
        assert parse_time_to_ms(float("inf")) is None
        assert parse_time_to_ms("inf") is None


class TestSectionKinds:
    """Test section label normalization."""

    def test_canonical(self):
        assert normalize_section_kind("Chorus") == CHORUS

    def test_aliases(self):
        assert normalize_section_kind("breakdown") == INSTRUMENTAL
        assert normalize_section_kind("subidon_build_up") == BUILD_UP
        assert normalize_section_kind("estribillo") == CHORUS

    def test_unknown_passes_through(self):
        assert normalize_section_kind("Mystery") == "mystery"

    def test_empty(self):
        assert normalize_section_kind(None) is None
        assert normalize_section_kind("  ") is None


class TestTrackFromRecord:
    """Test building Tracks from catalog records."""

    def test_snake_case_record(self):
        track = track_from_record(
            {
                "id": "t1",
                "duration_ms": 200000,
                "bpm": 128,
                "key": "A minor",
                "energy": 0.7,
                "downbeats_ms": [4000, 0, 2000],
                "segments": [{"kind": "intro", "start_ms": 0, "end_ms": 16000}],
                "vocals": [{"start_ms": 20000, "end_ms": 40000}],
            }
        )
        assert track.track_id == "t1"
        assert track.bpm == 128.0
        assert track.key == "8A"
        assert track.downbeats_ms == (0, 2000, 4000)
        assert track.segments[0].kind == "intro"
        assert track.vocals == (VocalInterval(20000, 40000),)

    def test_camel_case_and_json_strings(self):
        track = track_from_record(
            {
                "trackId": 42,
                "durationMs": 180000,
                "downbeatsMs": json.dumps([0, 1875, 3750]),
                "phrasesMs": json.dumps([0, 30000]),
                "hash": "abc",
                "title": "Song",
            }
        )
        assert track.track_id == "42"
        assert track.downbeats_ms == (0, 1875, 3750)
        assert track.phrases_ms == (0, 30000)
        assert track.content_hash == "abc"
        assert track.describe() == "'Song' (42)"

    def test_vocals_derived_from_segments(self):
        track = track_from_record(
            {
                "id": "t2",
                "duracion_ms": 120000,
                "tonalidad_camelot": "9B",
                "timeline": [
                    {"tipo_seccion": "verso", "inicio": "00:10.0", "fin": "00:40.0", "has_vocals": True},
                    {"tipo_seccion": "solo_instrumental", "inicio": "00:40.0", "fin": "01:00.0"},
                ],
            }
        )
        assert track.key == "9B"
        assert [s.kind for s in track.segments] == ["verse", INSTRUMENTAL]
        assert track.segments[1].start_ms == 40000
        assert track.vocals == (VocalInterval(10000, 40000),)

    def test_explicit_vocals_win(self):
        track = track_from_record(
            {
                "id": "t3",
                "duration_ms": 60000,
                "segments": [{"kind": "verse", "start_ms": 0, "end_ms": 30000, "has_vocals": True}],
                "vocals": [[5000, 10000]],
            }
        )
        assert track.vocals == (VocalInterval(5000, 10000),)

    def test_malformed_segments_skipped(self):
        track = track_from_record(
            {
                "id": "t4",
                "duration_ms": 60000,
                "segments": [
                    {"kind": "intro", "start_ms": 10000, "end_ms": 5000},
                    "not a segment",
                    {"kind": "outro", "start_ms": 50000, "end_ms": 60000},
                ],
            }
        )
        assert [s.kind for s in track.segments] == ["outro"]

    def test_unknown_key_and_missing_features(self):
        track = track_from_record({"id": "t5", "duration_ms": 1000, "key": "unknown"})
        assert track.key is None
        assert track.bpm is None
        assert track.segments == ()

    def test_non_finite_numbers_dropped(self):
        track = track_from_record(
            {
                "id": "t7",
                "duration_ms": 60000,
                "bpm": "nan",
                "energy": float("inf"),
                "danceability": float("-inf"),
                "segments": [{"kind": "intro", "start_ms": float("nan"), "end_ms": 8000}],
            }
        )
        assert track.bpm is None
        assert track.energy is None
        assert track.danceability is None
        assert track.segments == ()

    def test_missing_id(self):
        with pytest.raises(ValueError):
            track_from_record({"duration_ms": 1000})

    def test_missing_duration(self):
        with pytest.raises(ValueError):
            track_from_record({"id": "t6"})

    def test_records_skip_bad_entries(self):
        tracks = tracks_from_records(
            [{"id": "ok", "duration_ms": 1000}, {"duration_ms": 1000}, {"id": "ok2", "duration_ms": 2000}]
        )
        assert [t.track_id for t in tracks] == ["ok", "ok2"]
