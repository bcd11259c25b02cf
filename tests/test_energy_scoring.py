"""
Unit tests for energy scoring and estimation.

Tests energy estimation, local (section) energy, and continuity scoring.
"""

import pytest
from mixplan.models import Track, MixPoint, EXIT, ENTRY, VOCAL_NONE, INTRO, CHORUS, OUTRO
from mixplan.generate.energy import (
    estimate_track_energy,
    estimate_point_energy,
    compute_energy_distance,
    energy_continuity_score,
    describe_energy,
)


def _point(section, role=EXIT):
    return MixPoint(time_ms=0, role=role, section=section, vocal_density=VOCAL_NONE, confidence=1.0)


class TestEnergyEstimation:
    """Test track energy estimation."""

    def test_estimate_explicit_energy(self):
        """Use explicit energy if provided."""
        track = Track(track_id="track-1", duration_ms=1000, energy=0.75)
        energy = estimate_track_energy(track)
        assert energy == 0.75

    def test_estimate_danceability_fallback(self):
        """Fallback to danceability if energy missing."""
        track = Track(track_id="track-1", duration_ms=1000, danceability=0.6)
        energy = estimate_track_energy(track)
        assert energy == 0.6

    def test_estimate_bpm_proxy(self):
        """Rough estimate from BPM."""
        track = Track(track_id="track-1", duration_ms=1000, bpm=130.0)
        energy = estimate_track_energy(track)
        # (130 - 80) / 100 = 0.5
        assert energy == 0.5

    def test_estimate_neutral_no_data(self):
        """Neutral 0.5 if no data available."""
        track = Track(track_id="track-1", duration_ms=1000)
        energy = estimate_track_energy(track)
        assert energy == 0.5

    def test_estimate_clamp_bounds(self):
        """Clamp energy to [0.0, 1.0]."""
        track = Track(track_id="track-1", duration_ms=1000, energy=1.5)
        assert estimate_track_energy(track) == 1.0

        track = Track(track_id="track-1", duration_ms=1000, energy=-0.5)
        assert estimate_track_energy(track) == 0.0

    def test_estimate_priority_order(self):
        """Explicit energy takes priority over all others."""
        track = Track(
            track_id="track-1", duration_ms=1000, energy=0.9, danceability=0.5, bpm=100.0
        )
        assert estimate_track_energy(track) == 0.9


    def test_estimate_skips_non_finite(self):
        """NaN or infinite features fall through to the next source."""
        track = Track(track_id="track-1", duration_ms=1000, energy=float("nan"), danceability=0.6)
        assert estimate_track_energy(track) == 0.6

        track = Track(track_id="track-1", duration_ms=1000, energy=float("inf"), bpm=float("nan"))
        assert estimate_track_energy(track) == 0.5


class TestPointEnergy:
    """Test local energy at a mix point."""

    @pytest.fixture
    def track(self):
        return Track(track_id="track-1", duration_ms=1000, energy=0.8)

    def test_chorus_above_average(self, track):
        assert estimate_point_energy(track, _point(CHORUS)) == pytest.approx(0.88)

    def test_intro_below_average(self, track):
        assert estimate_point_energy(track, _point(INTRO, ENTRY)) == pytest.approx(0.6)

    def test_unlabelled_section_uses_track_energy(self, track):
        assert estimate_point_energy(track, _point(None)) == pytest.approx(0.8)

    def test_clamped(self):
        track = Track(track_id="loud", duration_ms=1000, energy=1.0)
        assert estimate_point_energy(track, _point(CHORUS)) == 1.0


class TestEnergyDistance:
    """Test energy distance computation."""

    def test_distance_same_energy(self):
        assert compute_energy_distance(0.5, 0.5) == 0.0

    def test_distance_opposite_energy(self):
        assert compute_energy_distance(0.0, 1.0) == 1.0

    def test_distance_symmetric(self):
        assert compute_energy_distance(0.3, 0.7) == compute_energy_distance(0.7, 0.3)


class TestEnergyContinuity:
    """Test continuity scoring across a transition."""

    def test_level_handover_is_perfect(self):
        assert energy_continuity_score(0.6, 0.6) == 1.0

    def test_rise_cost(self):
        assert energy_continuity_score(0.5, 0.7) == pytest.approx(0.88)

    def test_drop_cost(self):
        assert energy_continuity_score(0.7, 0.5) == pytest.approx(0.8)

    def test_drop_penalized_more_than_rise(self):
        """Same magnitude, building beats deflating."""
        assert energy_continuity_score(0.4, 0.8) > energy_continuity_score(0.8, 0.4)

    def test_custom_penalties(self):
        assert energy_continuity_score(0.5, 0.7, rise_penalty=1.0) == pytest.approx(0.8)
        assert energy_continuity_score(0.7, 0.5, drop_penalty=2.0) == pytest.approx(0.6)

    def test_score_bounds(self):
        assert 0.0 <= energy_continuity_score(1.0, 0.0, drop_penalty=2.0) <= 1.0
        assert energy_continuity_score(1.0, 0.0, drop_penalty=2.0) == 0.0


class TestDescribeEnergy:
    """Test energy labels used in transition descriptions."""

    def test_level(self):
        assert describe_energy(0.6, 0.62) == "energy 0.60→0.62 (level)"

    def test_rise(self):
        assert describe_energy(0.5, 0.7).endswith("(rise)")

    def test_drop(self):
        assert describe_energy(0.7, 0.5).endswith("(drop)")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
