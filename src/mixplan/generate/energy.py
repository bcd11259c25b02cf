"""
Energy Continuity Analysis: Keep the dancefloor energy flowing.

- Estimate a track's overall energy from whatever features are available
- Scale it by the section a mix point falls in (local energy)
- Penalize jumps between exit and entry energy, drops harder than rises
"""

import logging
import math
from typing import Optional

from ..models import (
    Track,
    MixPoint,
    INTRO,
    VERSE,
    CHORUS,
    BRIDGE,
    INSTRUMENTAL,
    OUTRO,
    BUILD_UP,
)

logger = logging.getLogger(__name__)

# Relative loudness/intensity of each section against the track average
SECTION_ENERGY_FACTORS = {
    INTRO: 0.75,
    VERSE: 0.9,
    CHORUS: 1.1,
    BRIDGE: 0.85,
    INSTRUMENTAL: 1.0,
    OUTRO: 0.75,
    BUILD_UP: 1.05,
}


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def _finite(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value)


def estimate_track_energy(track: Track) -> float:
    """
    Estimate energy level of a track (0.0-1.0).

    Energy is estimated as:
    1. Primary: explicit energy feature
    2. Fallback: danceability
    3. Fallback: BPM as a rough proxy (80-180 BPM range)
    4. Final fallback: Neutral 0.5 (no data)

    Args:
        track: Track features

    Returns:
        Energy estimate (0.0=calm, 1.0=intense), clamped to [0.0, 1.0]
    """
    if _finite(track.energy):
        return _clamp(float(track.energy))

    if _finite(track.danceability):
        return _clamp(float(track.danceability))

    if _finite(track.bpm) and track.bpm > 0:
        return _clamp((float(track.bpm) - 80.0) / 100.0)

    logger.debug(f"No energy data for track {track.track_id}; using neutral 0.5")
    return 0.5


def estimate_point_energy(track: Track, point: MixPoint) -> float:
    """Local energy at a mix point: track energy scaled by its section."""
    factor = SECTION_ENERGY_FACTORS.get(point.section, 1.0)
    return _clamp(estimate_track_energy(track) * factor)


def compute_energy_distance(energy1: float, energy2: float) -> float:
    """
    Compute energy distance between two levels (0.0-1.0).

    Returns:
        Distance (0.0=same, 1.0=opposite)
    """
    return abs(energy1 - energy2)


def energy_continuity_score(
    exit_energy: float,
    entry_energy: float,
    rise_penalty: float = 0.6,
    drop_penalty: float = 1.0,
) -> float:
    """
    Score how smoothly energy carries across a transition (0.0-1.0).

    A rise of a given size costs rise_penalty per unit, a drop of the same
    size costs drop_penalty per unit: building beats deflating.

    Args:
        exit_energy: Local energy at the outgoing track's exit point
        entry_energy: Local energy at the incoming track's entry point
        rise_penalty: Cost per unit of energy increase
        drop_penalty: Cost per unit of energy decrease

    Returns:
        1.0 for a perfectly level handover, lower for larger jumps
    """
    delta = entry_energy - exit_energy
    penalty = delta * rise_penalty if delta >= 0 else -delta * drop_penalty
    return _clamp(1.0 - penalty)


def describe_energy(exit_energy: float, entry_energy: float) -> str:
    """Short label for the energy move, e.g. 'energy 0.62→0.70 (rise)'."""
    if compute_energy_distance(exit_energy, entry_energy) < 0.05:
        trend = "level"
    elif entry_energy > exit_energy:
        trend = "rise"
    else:
        trend = "drop"
    return f"energy {exit_energy:.2f}→{entry_energy:.2f} ({trend})"
