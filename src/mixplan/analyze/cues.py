"""
Mix Point Planning: Identify candidate exit and entry points per track.

- EXIT anchors: starts of outro / instrumental / build-up sections, and chorus
  ends that hand over to a vocal-free section (bass swap)
- Vocal-free instrumental exits become loop anchors when a 4- or 1-bar loop fits
- ENTRY anchors: starts of intro / instrumental sections
- Anchors snap to the nearest downbeat within a tolerance window
- Vocal presence around an anchor lowers its confidence (never discards it)
- Tracks without usable structure get low-confidence fallback points
"""

import logging
import math
from dataclasses import replace
from typing import Optional, List, Dict, Sequence, Tuple
import numpy as np

from ..models import (
    Track,
    MixPoint,
    MixPlan,
    ENTRY,
    EXIT,
    VOCAL_NONE,
    VOCAL_LIGHT,
    VOCAL_HEAVY,
    INTRO,
    CHORUS,
    INSTRUMENTAL,
    OUTRO,
    BUILD_UP,
    OUTRO_FADE,
    BREAKDOWN,
    DROP_SWAP,
    LOOP_ANCHOR,
    INTRO_SIMPLE,
    CURVE_LINEAR,
    CURVE_BASS_SWAP,
)

logger = logging.getLogger(__name__)

EXIT_SECTION_WEIGHTS = {OUTRO: 1.0, INSTRUMENTAL: 0.9, BUILD_UP: 0.8}
ENTRY_SECTION_WEIGHTS = {INTRO: 1.0, INSTRUMENTAL: 0.9}

EXIT_STRATEGIES = {OUTRO: OUTRO_FADE, INSTRUMENTAL: BREAKDOWN, BUILD_UP: DROP_SWAP}
ENTRY_STRATEGIES = {INTRO: INTRO_SIMPLE, INSTRUMENTAL: BREAKDOWN}

# Chorus end handing over to a vocal-free section: swap basslines on the drop
DROP_SWAP_WEIGHT = 0.85

# Loop sizes tried inside vocal-free instrumental exits, longest first
LOOP_BARS = (4, 1)

VOCAL_FACTORS = {VOCAL_NONE: 1.0, VOCAL_LIGHT: 0.75, VOCAL_HEAVY: 0.4}

OFF_DOWNBEAT_FACTOR = 0.8
PHRASE_BONUS = 1.1
FALLBACK_CONFIDENCE = 0.25
EDGE_CONFIDENCE = 0.1

# Beat length assumed when BPM is unknown (120 BPM)
DEFAULT_BEAT_MS = 500.0
FALLBACK_ENTRY_WINDOW_MS = 16000


class PlannerParams:
    """Mix point planning parameters from config."""

    def __init__(self, config: Optional[dict] = None):
        """
        Args:
            config: Planner dict from config["planner"]
        """
        config = config or {}
        self.snap_tolerance_beats = config.get("snap_tolerance_beats", 1.0)
        self.vocal_window_ms = config.get("vocal_window_ms", 4000)
        self.max_candidates = max(1, int(config.get("max_candidates", 4)))
        self.exit_fallback_ratio = config.get("exit_fallback_ratio", 0.85)
        self.entry_fallback_ratio = config.get("entry_fallback_ratio", 0.05)


def _beat_length_ms(track: Track) -> float:
    if track.bpm and math.isfinite(track.bpm) and track.bpm > 0:
        return 60000.0 / track.bpm
    return DEFAULT_BEAT_MS


def _nearest(times: Sequence[int], target: float) -> Optional[int]:
    """Nearest timestamp to target in a sorted sequence (earlier wins ties)."""
    if not times:
        return None
    grid = np.asarray(times)
    idx = int(np.searchsorted(grid, target))
    neighbours = [i for i in (idx - 1, idx) if 0 <= i < grid.size]
    best = min(neighbours, key=lambda i: (abs(float(grid[i]) - target), int(grid[i])))
    return int(grid[best])


def _snap_to_grid(track: Track, time_ms: int, tolerance_ms: float) -> Tuple[int, bool]:
    """
    Snap a position to the beat grid.

    Returns:
        (snapped_ms, on_downbeat). Prefers downbeats; falls back to plain
        beats; leaves the position untouched when nothing is in range.
    """
    downbeat = _nearest(track.downbeats_ms, time_ms)
    if downbeat is not None and abs(downbeat - time_ms) <= tolerance_ms:
        return downbeat, True

    beat = _nearest(track.beats_ms, time_ms)
    if beat is not None and abs(beat - time_ms) <= tolerance_ms:
        return beat, False

    return time_ms, False


def _near_any(times: Sequence[int], time_ms: int, tolerance_ms: float) -> bool:
    nearest = _nearest(times, time_ms)
    return nearest is not None and abs(nearest - time_ms) <= tolerance_ms


def _clamp_time(time_ms: float, duration_ms: int) -> int:
    return int(max(0, min(duration_ms, round(time_ms))))


def vocal_density_at(track: Track, time_ms: int, window_ms: float) -> str:
    """
    Classify vocal presence around a position.

    Looks at [time_ms - window_ms, time_ms + window_ms] (clipped to the
    track) and measures how much of it is covered by vocal intervals.

    Returns:
        "none" without overlap, "light" below half coverage, else "heavy"
    """
    if not track.vocals:
        return VOCAL_NONE

    lo = max(0.0, time_ms - window_ms)
    hi = min(float(track.duration_ms), time_ms + window_ms)
    span = hi - lo
    if span <= 0:
        return VOCAL_NONE

    starts = np.array([v.start_ms for v in track.vocals], dtype=float)
    ends = np.array([v.end_ms for v in track.vocals], dtype=float)
    overlap = float(np.clip(np.minimum(ends, hi) - np.maximum(starts, lo), 0.0, None).sum())

    if overlap <= 0:
        return VOCAL_NONE
    return VOCAL_LIGHT if overlap / span < 0.5 else VOCAL_HEAVY


def _position_bias(role: str, time_ms: int, duration_ms: int) -> float:
    """Soft preference for exits in the later half and entries in the earlier half."""
    if duration_ms <= 0:
        return 1.0
    position = time_ms / duration_ms
    if role == EXIT:
        return 1.0 if position >= 0.5 else 0.5 + position
    return 1.0 if position <= 0.5 else 1.5 - position


def _anchor_point(
    track: Track,
    role: str,
    anchor_ms: int,
    section: str,
    section_weight: float,
    section_end_ms: int,
    params: PlannerParams,
    strategy: Optional[str] = None,
    curve: str = CURVE_LINEAR,
) -> MixPoint:
    tolerance_ms = params.snap_tolerance_beats * _beat_length_ms(track)
    snapped, on_downbeat = _snap_to_grid(track, anchor_ms, tolerance_ms)
    time_ms = _clamp_time(snapped, track.duration_ms)
    on_phrase = _near_any(track.phrases_ms, time_ms, tolerance_ms)
    density = vocal_density_at(track, time_ms, params.vocal_window_ms)

    confidence = section_weight
    confidence *= 1.0 if on_downbeat else OFF_DOWNBEAT_FACTOR
    confidence *= VOCAL_FACTORS[density]
    confidence *= _position_bias(role, time_ms, track.duration_ms)
    if on_phrase:
        confidence *= PHRASE_BONUS

    return MixPoint(
        time_ms=time_ms,
        role=role,
        section=section,
        vocal_density=density,
        confidence=round(min(1.0, confidence), 4),
        on_downbeat=on_downbeat,
        on_phrase=on_phrase,
        safe_duration_ms=max(0, min(section_end_ms, track.duration_ms) - time_ms),
        strategy=strategy,
        curve=curve,
    )


def _has_vocals(track: Track, start_ms: int, end_ms: int) -> bool:
    return any(v.start_ms < end_ms and v.end_ms > start_ms for v in track.vocals)


def _loop_length(track: Track, start_ms: int, end_ms: int) -> int:
    """Longest loop (in ms) from LOOP_BARS that fits between start_ms and end_ms, else 0."""
    bar_ms = 4 * _beat_length_ms(track)
    for bars in LOOP_BARS:
        length = int(round(bars * bar_ms))
        if start_ms + length <= end_ms:
            return length
    return 0


def _drop_swap_exits(track: Track, params: PlannerParams) -> List[MixPoint]:
    """Exits at chorus ends handing over to a section without vocals."""
    points = []
    for segment in track.segments:
        if segment.kind != CHORUS or not (0 < segment.end_ms < track.duration_ms):
            continue
        following = min(
            (s for s in track.segments if s.start_ms >= segment.end_ms),
            key=lambda s: s.start_ms,
            default=None,
        )
        if following is None or _has_vocals(track, following.start_ms, following.end_ms):
            continue
        points.append(
            _anchor_point(
                track, EXIT, segment.end_ms, following.kind, DROP_SWAP_WEIGHT,
                following.end_ms, params, strategy=DROP_SWAP, curve=CURVE_BASS_SWAP,
            )
        )
    return points


def _structural_points(track: Track, role: str, params: PlannerParams) -> List[MixPoint]:
    weights = EXIT_SECTION_WEIGHTS if role == EXIT else ENTRY_SECTION_WEIGHTS
    strategies = EXIT_STRATEGIES if role == EXIT else ENTRY_STRATEGIES
    candidates: List[MixPoint] = []

    for segment in track.segments:
        weight = weights.get(segment.kind)
        if weight is None:
            continue
        if not (0 <= segment.start_ms <= track.duration_ms):
            logger.debug(
                f"Segment {segment.kind}@{segment.start_ms}ms outside track "
                f"{track.track_id}; skipping"
            )
            continue

        point = _anchor_point(
            track, role, segment.start_ms, segment.kind, weight, segment.end_ms, params,
            strategy=strategies[segment.kind],
        )
        if (
            role == EXIT
            and segment.kind == INSTRUMENTAL
            and not _has_vocals(track, segment.start_ms, segment.end_ms)
        ):
            loop_ms = _loop_length(track, point.time_ms, min(segment.end_ms, track.duration_ms))
            if loop_ms:
                point = replace(point, strategy=LOOP_ANCHOR, loop_length_ms=loop_ms)
        candidates.append(point)

    if role == EXIT:
        candidates.extend(_drop_swap_exits(track, params))

    # One point per position and strategy; the most confident wins
    points: Dict[Tuple[int, Optional[str]], MixPoint] = {}
    for point in candidates:
        existing = points.get((point.time_ms, point.strategy))
        if existing is None or point.confidence > existing.confidence:
            points[(point.time_ms, point.strategy)] = point

    return list(points.values())


def _section_at(track: Track, time_ms: int) -> Optional[str]:
    for segment in track.segments:
        if segment.start_ms <= time_ms < segment.end_ms:
            return segment.kind
    return None


def _fallback_point(
    track: Track,
    role: str,
    time_ms: int,
    base_confidence: float,
    safe_duration_ms: int,
    params: PlannerParams,
) -> MixPoint:
    density = vocal_density_at(track, time_ms, params.vocal_window_ms)
    return MixPoint(
        time_ms=time_ms,
        role=role,
        section=_section_at(track, time_ms),
        vocal_density=density,
        confidence=round(base_confidence * VOCAL_FACTORS[density], 4),
        on_downbeat=time_ms in track.downbeats_ms,
        on_phrase=False,
        safe_duration_ms=max(0, safe_duration_ms),
        fallback=True,
        strategy=OUTRO_FADE if role == EXIT else INTRO_SIMPLE,
    )


def _fallback_exits(track: Track, params: PlannerParams) -> List[MixPoint]:
    duration = track.duration_ms
    target = duration * params.exit_fallback_ratio
    earlier = [d for d in track.downbeats_ms if d <= target]
    time_ms = _clamp_time(earlier[-1] if earlier else target, duration)
    return [
        _fallback_point(track, EXIT, time_ms, FALLBACK_CONFIDENCE, duration - time_ms, params),
        _fallback_point(track, EXIT, duration, EDGE_CONFIDENCE, 0, params),
    ]


def _fallback_entries(track: Track, params: PlannerParams) -> List[MixPoint]:
    duration = track.duration_ms
    target = duration * params.entry_fallback_ratio
    later = [d for d in track.downbeats_ms if target <= d <= duration]
    time_ms = _clamp_time(later[0] if later else target, duration)
    return [
        _fallback_point(
            track, ENTRY, time_ms, FALLBACK_CONFIDENCE,
            min(duration - time_ms, FALLBACK_ENTRY_WINDOW_MS), params,
        ),
        _fallback_point(
            track, ENTRY, 0, EDGE_CONFIDENCE, min(duration, FALLBACK_ENTRY_WINDOW_MS), params
        ),
    ]


def _rank(points: List[MixPoint], limit: int) -> List[MixPoint]:
    return sorted(points, key=lambda p: (-p.confidence, p.time_ms))[:limit]


def plan_mix_points(track: Track, params: Optional[PlannerParams] = None) -> MixPlan:
    """
    Derive candidate exit and entry points for one track.

    Never raises: a track with no structural data still gets fallback
    points for both roles.

    Args:
        track: Track features
        params: PlannerParams (defaults when None)

    Returns:
        MixPlan with exits and entries sorted best first, capped per role
    """
    params = params or PlannerParams()

    exits = _structural_points(track, EXIT, params)
    if not exits:
        logger.debug(f"No structural exit for {track.describe()}; using fallback points")
        exits = _fallback_exits(track, params)

    entries = _structural_points(track, ENTRY, params)
    if not entries:
        logger.debug(f"No structural entry for {track.describe()}; using fallback points")
        entries = _fallback_entries(track, params)

    plan = MixPlan(
        track_id=track.track_id,
        exits=_rank(exits, params.max_candidates),
        entries=_rank(entries, params.max_candidates),
    )

    logger.debug(
        f"Mix plan for {track.describe()}: {len(plan.exits)} exits "
        f"(top {plan.exits[0].confidence:.2f}), {len(plan.entries)} entries "
        f"(top {plan.entries[0].confidence:.2f})"
    )
    return plan


def build_mix_plan(tracks: Sequence[Track], config: Optional[dict] = None) -> Dict[str, MixPlan]:
    """
    Build mix plans for a set of tracks.

    Args:
        tracks: Tracks to plan
        config: Full config dict (uses its "planner" section)

    Returns:
        Dict mapping track_id -> MixPlan, in input order
    """
    params = PlannerParams((config or {}).get("planner", {}))
    plans = {track.track_id: plan_mix_points(track, params) for track in tracks}

    fallback_count = sum(
        1 for plan in plans.values()
        if plan.exits[0].fallback or plan.entries[0].fallback
    )
    logger.info(
        f"✅ Mix plan built: {len(plans)} tracks "
        f"({fallback_count} using fallback points)"
    )
    return plans
