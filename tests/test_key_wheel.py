"""
Unit tests for Camelot key handling.

Tests key parsing, wheel distance, and harmonic compatibility scoring.
"""

import pytest
from mixplan.analyze.key import (
    parse_camelot,
    to_camelot,
    wheel_distance,
    harmonic_score,
    describe_relation,
    MAX_WHEEL_DISTANCE,
)

ALL_KEYS = [f"{n}{m}" for n in range(1, 13) for m in "AB"]


class TestKeyParsing:
    """Test normalization of key notations."""

    def test_camelot_notation(self):
        """Plain Camelot keys parse directly."""
        assert parse_camelot("8A") == (8, "A")
        assert parse_camelot("12B") == (12, "B")

    def test_camelot_lowercase_and_padding(self):
        """Lowercase letters and zero padding are accepted."""
        assert parse_camelot("08a") == (8, "A")
        assert parse_camelot(" 1b ") == (1, "B")

    def test_standard_minor(self):
        """Standard minor keys map to the A ring."""
        assert parse_camelot("A minor") == (8, "A")
        assert parse_camelot("Am") == (8, "A")
        assert parse_camelot("F#m") == (11, "A")

    def test_standard_major(self):
        """Standard major keys (and bare notes) map to the B ring."""
        assert parse_camelot("C major") == (8, "B")
        assert parse_camelot("C") == (8, "B")
        assert parse_camelot("Db major") == (3, "B")

    def test_out_of_range_number(self):
        """Numbers outside 1-12 are rejected."""
        assert parse_camelot("13A") is None
        assert parse_camelot("0B") is None

    def test_unknown_and_malformed(self):
        """Unknown, empty or malformed keys parse to None."""
        assert parse_camelot(None) is None
        assert parse_camelot("unknown") is None
        assert parse_camelot("") is None
        assert parse_camelot("invalid") is None

    def test_to_camelot(self):
        """to_camelot returns the canonical string form."""
        assert to_camelot("a minor") == "8A"
        assert to_camelot("09b") == "9B"
        assert to_camelot("H") is None


class TestWheelDistance:
    """Test distance on the Camelot wheel."""

    def test_same_key(self):
        assert wheel_distance("8A", "8A") == 0

    def test_adjacent_number(self):
        assert wheel_distance("8A", "9A") == 1
        assert wheel_distance("8A", "7A") == 1

    def test_wraparound(self):
        """12 and 1 are neighbours on the wheel."""
        assert wheel_distance("12B", "1B") == 1

    def test_mode_change_adds_one(self):
        assert wheel_distance("8A", "8B") == 1
        assert wheel_distance("8A", "9B") == 2

    def test_antipode_is_maximum(self):
        assert wheel_distance("1A", "7A") == 6
        assert wheel_distance("1A", "7B") == MAX_WHEEL_DISTANCE

    def test_unknown_key(self):
        assert wheel_distance("8A", None) is None

    def test_symmetric(self):
        """Distance is symmetric for every key pair."""
        for key1 in ALL_KEYS:
            for key2 in ALL_KEYS:
                assert wheel_distance(key1, key2) == wheel_distance(key2, key1)


class TestHarmonicScore:
    """Test harmonic compatibility scoring."""

    def test_same_key_is_maximum(self):
        assert harmonic_score("8A", "8A") == 1.0

    def test_adjacent_near_maximum(self):
        assert harmonic_score("8A", "9A") == pytest.approx(0.9)
        assert harmonic_score("12B", "1B") == pytest.approx(0.9)

    def test_relative_near_maximum(self):
        assert harmonic_score("8A", "8B") == pytest.approx(0.85)

    def test_decay_with_distance(self):
        """Scores fall as wheel distance grows beyond the compatible ring."""
        scores = [harmonic_score("1A", key) for key in ("3A", "4A", "5A", "6A", "7A", "7B")]
        assert scores == sorted(scores, reverse=True)
        assert len(set(scores)) == len(scores)

    def test_antipode_floor(self):
        assert harmonic_score("1A", "7B") == pytest.approx(0.1)

    def test_unknown_key_neutral(self):
        assert harmonic_score("8A", None) == 0.5
        assert harmonic_score("unknown", "8A") == 0.5

    def test_standard_notation_accepted(self):
        """Standard notation scores like its Camelot equivalent."""
        assert harmonic_score("A minor", "E minor") == harmonic_score("8A", "9A")

    def test_symmetric(self):
        """Score between A and B equals score between B and A."""
        for key1 in ALL_KEYS:
            for key2 in ALL_KEYS:
                assert harmonic_score(key1, key2) == harmonic_score(key2, key1)

    def test_describe_relation(self):
        assert describe_relation("8A", "8A") == "same key"
        assert describe_relation("8A", "9A") == "adjacent key"
        assert describe_relation("8A", "8B") == "relative key"
        assert describe_relation("1A", "7B") == "wheel distance 7"
        assert describe_relation(None, "8A") == "unknown key"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
