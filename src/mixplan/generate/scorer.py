"""
Transition Scorer: Rate a handover from one track's exit point to another's entry point.

Score is a weighted sum of independent sub-scores (each 0.0-1.0), scaled to 0-100:
- Harmonic compatibility (Camelot wheel distance)
- Tempo compatibility (ratio, with half/double-time equivalence)
- Energy continuity (local section energy, drops cost more than rises)
- Structural/vocal fitness of the two mix points

The score band decides the transition type (HARMONIC_BLEND, CROSSFADE, CUT);
below the minimum viability threshold the pair is flagged as not viable.
"""

import logging
import math
from typing import Optional, Dict, Tuple

from ..analyze.key import harmonic_score, describe_relation
from ..models import (
    Track,
    MixPoint,
    MixPlan,
    TransitionCandidate,
    CUT,
    CROSSFADE,
    HARMONIC_BLEND,
    VOCAL_NONE,
    VOCAL_LIGHT,
    VOCAL_HEAVY,
    INTRO,
    VERSE,
    CHORUS,
    BRIDGE,
    INSTRUMENTAL,
    OUTRO,
    BUILD_UP,
    CURVE_LINEAR,
    CURVE_BASS_SWAP,
    CURVE_CUT,
)
from .energy import estimate_point_energy, energy_continuity_score, describe_energy

logger = logging.getLogger(__name__)

TEMPO_UNKNOWN = 0.5

# A blend needs the non-negotiable constraints to be nearly perfect on their own
BLEND_MIN_HARMONIC = 0.85
BLEND_MIN_TEMPO = 0.8

EXIT_SECTION_FIT = {
    OUTRO: 1.0,
    INSTRUMENTAL: 1.0,
    BUILD_UP: 0.9,
    INTRO: 0.5,
    BRIDGE: 0.5,
    VERSE: 0.3,
    CHORUS: 0.2,
}
ENTRY_SECTION_FIT = {
    INTRO: 1.0,
    INSTRUMENTAL: 0.9,
    BUILD_UP: 0.6,
    BRIDGE: 0.4,
    VERSE: 0.4,
    OUTRO: 0.3,
    CHORUS: 0.3,
}
UNKNOWN_SECTION_FIT = 0.4

VOCAL_FIT = {VOCAL_NONE: 1.0, VOCAL_LIGHT: 0.6, VOCAL_HEAVY: 0.2}
VOCAL_CLASH_FACTOR = 0.25

# Overlap length suggested per transition type, in beats of the outgoing track
MIX_BEATS = {CROSSFADE: 16, HARMONIC_BLEND: 32}


class ScoringParams:
    """Transition scoring weights and thresholds from config."""

    def __init__(self, config: Optional[dict] = None):
        """
        Args:
            config: Scoring dict from config["scoring"]
        """
        config = config or {}
        self.harmonic_weight = config.get("harmonic_weight", 0.35)
        self.tempo_weight = config.get("tempo_weight", 0.35)
        self.energy_weight = config.get("energy_weight", 0.15)
        self.structure_weight = config.get("structure_weight", 0.15)
        self.bpm_tolerance = config.get("bpm_tolerance_percent", 6.0)
        self.min_viable_score = config.get("min_viable_score", 35.0)
        self.crossfade_threshold = config.get("crossfade_threshold", 55.0)
        self.blend_threshold = config.get("blend_threshold", 75.0)
        self.rise_penalty = config.get("rise_penalty", 0.6)
        self.drop_penalty = config.get("drop_penalty", 1.0)

    @property
    def weights(self) -> Dict[str, float]:
        return {
            "harmonic": self.harmonic_weight,
            "tempo": self.tempo_weight,
            "energy": self.energy_weight,
            "structure": self.structure_weight,
        }


def _usable_bpm(bpm: Optional[float]) -> bool:
    return bpm is not None and math.isfinite(bpm) and bpm > 0


def tempo_deviation(bpm1: float, bpm2: float) -> Tuple[float, float]:
    """
    Relative tempo deviation, allowing half/double time.

    Returns:
        (deviation, factor) where factor is the tempo multiple (1.0, 0.5
        or 2.0) applied to bpm2/bpm1 that brings it closest to 1.0
    """
    ratio = bpm2 / bpm1
    return min((abs(ratio * factor - 1.0), factor) for factor in (1.0, 0.5, 2.0))


def tempo_score(
    bpm1: Optional[float], bpm2: Optional[float], tolerance_percent: float = 6.0
) -> float:
    """
    Tempo compatibility of two BPMs (0.0-1.0).

    Decays smoothly (quadratically) as the ratio departs from 1.0 (or 2.0 /
    0.5), reaching 0.0 at the tolerance. Unknown BPM scores neutral 0.5.
    """
    if not _usable_bpm(bpm1) or not _usable_bpm(bpm2):
        return TEMPO_UNKNOWN

    tolerance = tolerance_percent / 100.0
    deviation, _ = tempo_deviation(bpm1, bpm2)
    if deviation >= tolerance:
        return 0.0
    return 1.0 - (deviation / tolerance) ** 2


def _point_fit(point: MixPoint, section_fit: Dict[str, float]) -> float:
    section = section_fit.get(point.section, UNKNOWN_SECTION_FIT)
    return 0.5 * section + 0.5 * VOCAL_FIT[point.vocal_density]


def structure_score(exit_point: MixPoint, entry_point: MixPoint) -> float:
    """
    Structural/vocal fitness of an exit/entry pairing (0.0-1.0).

    Rewards sections suited to mixing out (outro, instrumental, build-up)
    and in (intro, instrumental), low vocal density and confident points.
    Two heavy-vocal points would collide lyrically and are cut hard.
    """
    fit = (_point_fit(exit_point, EXIT_SECTION_FIT) + _point_fit(entry_point, ENTRY_SECTION_FIT)) / 2
    confidence = (exit_point.confidence + entry_point.confidence) / 2
    score = 0.7 * fit + 0.3 * confidence

    if exit_point.vocal_density == VOCAL_HEAVY and entry_point.vocal_density == VOCAL_HEAVY:
        score *= VOCAL_CLASH_FACTOR

    return max(0.0, min(1.0, score))


def _describe_tempo(track_a: Track, track_b: Track) -> str:
    if not _usable_bpm(track_a.bpm) or not _usable_bpm(track_b.bpm):
        return "unknown tempo"
    deviation, factor = tempo_deviation(track_a.bpm, track_b.bpm)
    label = f"{track_a.bpm:.1f}→{track_b.bpm:.1f} BPM"
    if factor != 1.0:
        label += " (half/double time)"
    change = (track_b.bpm * factor / track_a.bpm - 1.0) * 100.0
    return f"{label} ({change:+.1f}%)"


def suggest_curve(transition_type: str, exit_point: MixPoint, entry_point: MixPoint) -> str:
    """Crossfade curve for a transition: hard cut, bass swap when a point asks for one, else linear."""
    if transition_type == CUT:
        return CURVE_CUT
    if CURVE_BASS_SWAP in (exit_point.curve, entry_point.curve):
        return CURVE_BASS_SWAP
    return CURVE_LINEAR


def _describe_point(point: MixPoint) -> str:
    return f"{point.section or 'unlabelled'}/{point.vocal_density}"


class TransitionScorer:
    """
    Pairwise transition scorer.

    Pure function of its inputs: the same tracks and points always produce
    the same TransitionCandidate.
    """

    def __init__(self, params: Optional[ScoringParams] = None):
        self.params = params or ScoringParams()
        weights = self.params.weights
        self._weight_sum = sum(weights.values()) or 1.0

    def classify(self, score: float, harmonic: float, tempo: float) -> str:
        """Pick the transition type for a score band."""
        if (
            score >= self.params.blend_threshold
            and harmonic >= BLEND_MIN_HARMONIC
            and tempo >= BLEND_MIN_TEMPO
        ):
            return HARMONIC_BLEND
        if score >= self.params.crossfade_threshold:
            return CROSSFADE
        return CUT

    def _mix_duration(
        self, transition_type: str, track_a: Track, exit_point: MixPoint, entry_point: MixPoint
    ) -> int:
        beats = MIX_BEATS.get(transition_type)
        if beats is None:
            return 0
        beat_ms = 60000.0 / track_a.bpm if _usable_bpm(track_a.bpm) else 500.0
        # A looping exit can hold as long as the incoming track needs
        if exit_point.is_loopable:
            window = entry_point.safe_duration_ms
        else:
            window = min(exit_point.safe_duration_ms, entry_point.safe_duration_ms)
        return int(min(window, round(beats * beat_ms)))

    def score(
        self,
        track_a: Track,
        exit_point: MixPoint,
        track_b: Track,
        entry_point: MixPoint,
    ) -> TransitionCandidate:
        """
        Score one exit/entry pairing.

        Args:
            track_a: Outgoing track
            exit_point: EXIT point of track_a
            track_b: Incoming track
            entry_point: ENTRY point of track_b

        Returns:
            TransitionCandidate (returned even when not viable, for diagnostics)
        """
        exit_energy = estimate_point_energy(track_a, exit_point)
        entry_energy = estimate_point_energy(track_b, entry_point)

        sub_scores = {
            "harmonic": harmonic_score(track_a.key, track_b.key),
            "tempo": tempo_score(track_a.bpm, track_b.bpm, self.params.bpm_tolerance),
            "energy": energy_continuity_score(
                exit_energy,
                entry_energy,
                rise_penalty=self.params.rise_penalty,
                drop_penalty=self.params.drop_penalty,
            ),
            "structure": structure_score(exit_point, entry_point),
        }

        weighted = sum(self.params.weights[name] * value for name, value in sub_scores.items())
        total = round(100.0 * weighted / self._weight_sum, 4)

        transition_type = self.classify(total, sub_scores["harmonic"], sub_scores["tempo"])
        viable = total >= self.params.min_viable_score

        parts = [
            f"{track_a.key or '?'}→{track_b.key or '?'} "
            f"{describe_relation(track_a.key, track_b.key)}",
            _describe_tempo(track_a, track_b),
            describe_energy(exit_energy, entry_energy),
            f"{_describe_point(exit_point)} → {_describe_point(entry_point)}",
        ]
        if exit_point.vocal_density == VOCAL_HEAVY and entry_point.vocal_density == VOCAL_HEAVY:
            parts.append("vocal clash")
        description = "; ".join(parts)
        if not viable:
            description = f"incompatible: {description}"

        return TransitionCandidate(
            from_track_id=track_a.track_id,
            to_track_id=track_b.track_id,
            exit_point=exit_point,
            entry_point=entry_point,
            score=total,
            transition_type=transition_type,
            description=description,
            viable=viable,
            mix_duration_ms=self._mix_duration(transition_type, track_a, exit_point, entry_point),
            curve=suggest_curve(transition_type, exit_point, entry_point),
            sub_scores=sub_scores,
        )

    def best(
        self,
        track_a: Track,
        plan_a: MixPlan,
        track_b: Track,
        plan_b: MixPlan,
    ) -> TransitionCandidate:
        """
        Best achievable transition from track_a into track_b.

        Evaluates every EXIT candidate of plan_a against every ENTRY candidate
        of plan_b. Ties go to the pairing with the higher combined point
        confidence, then to the first in plan order.

        Raises:
            ValueError: If either plan has no candidates for its role
        """
        if not plan_a.exits or not plan_b.entries:
            raise ValueError(
                f"Cannot score {track_a.track_id}→{track_b.track_id}: empty mix plan"
            )

        best: Optional[TransitionCandidate] = None
        best_key = None

        for exit_point in plan_a.exits:
            for entry_point in plan_b.entries:
                candidate = self.score(track_a, exit_point, track_b, entry_point)
                key = (candidate.score, exit_point.confidence + entry_point.confidence)
                if best is None or key > best_key:
                    best = candidate
                    best_key = key

        logger.debug(
            f"Best {track_a.track_id}→{track_b.track_id}: {best.score:.1f} "
            f"{best.transition_type} (exit {best.exit_point.time_ms}ms, "
            f"entry {best.entry_point.time_ms}ms)"
        )
        return best
