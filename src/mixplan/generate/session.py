"""
Session Assembly: Turn a winning track order into the session handed to callers.

Each placed track records its position and the transition leading into it;
totals and warnings are computed here. Nothing is persisted.
"""

import logging
from typing import Optional, List, Mapping, Sequence

from ..models import Track, MixPlan, TransitionCandidate, Session, SessionEntry
from .scorer import TransitionScorer

logger = logging.getLogger(__name__)


def _derive_transitions(
    tracks: Sequence[Track],
    mix_plans: Mapping[str, MixPlan],
    scorer: TransitionScorer,
) -> List[TransitionCandidate]:
    transitions = []
    for track_a, track_b in zip(tracks, tracks[1:]):
        transitions.append(
            scorer.best(
                track_a, mix_plans[track_a.track_id], track_b, mix_plans[track_b.track_id]
            )
        )
    return transitions


def assemble_session(
    tracks: Sequence[Track],
    transitions: Optional[Sequence[TransitionCandidate]] = None,
    warnings: Optional[Sequence[str]] = None,
    mix_plans: Optional[Mapping[str, MixPlan]] = None,
    scorer: Optional[TransitionScorer] = None,
) -> Session:
    """
    Build a Session from an ordered track list.

    Transitions cached during search are reused as-is; without them the best
    transition for each consecutive pair is re-derived from mix_plans.

    Args:
        tracks: Tracks in playback order
        transitions: One TransitionCandidate per consecutive pair, if known
        warnings: Warnings collected upstream (propagated verbatim)
        mix_plans: Mix plans keyed by track_id (needed when transitions is None)
        scorer: Scorer used for re-derivation (defaults when None)

    Returns:
        Session with totals computed over its transitions

    Raises:
        ValueError: If transitions do not line up with the track list, or
                    neither transitions nor mix_plans were given
    """
    if transitions is None:
        if mix_plans is None:
            raise ValueError("Either transitions or mix_plans is required")
        transitions = _derive_transitions(tracks, mix_plans, scorer or TransitionScorer())

    expected = max(0, len(tracks) - 1)
    if len(transitions) != expected:
        raise ValueError(
            f"Expected {expected} transitions for {len(tracks)} tracks, got {len(transitions)}"
        )

    for position, (track_a, track_b) in enumerate(zip(tracks, tracks[1:])):
        candidate = transitions[position]
        if (candidate.from_track_id, candidate.to_track_id) != (track_a.track_id, track_b.track_id):
            raise ValueError(
                f"Transition {position} links {candidate.from_track_id}→{candidate.to_track_id}, "
                f"expected {track_a.track_id}→{track_b.track_id}"
            )

    entries = [
        SessionEntry(
            position=position,
            track=track,
            transition=transitions[position - 1] if position > 0 else None,
        )
        for position, track in enumerate(tracks)
    ]

    total = round(sum(candidate.score for candidate in transitions), 4)
    average = round(total / len(transitions), 4) if transitions else 0.0

    session = Session(
        entries=entries,
        total_score=total,
        avg_transition_score=average,
        warnings=list(warnings or []),
    )

    for warning in session.warnings:
        logger.debug(f"Session warning: {warning}")

    return session
