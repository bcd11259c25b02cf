"""
Track Feature Model and planning result types.

Tracks are immutable views over precomputed feature records supplied by the
catalog. Everything the engine produces (mix points, transition candidates,
sessions) is built from these and carries no identity of its own.
"""

import json
import logging
import math
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any, Tuple, Sequence

from .analyze.key import to_camelot

logger = logging.getLogger(__name__)

# Mix point roles
ENTRY = "ENTRY"
EXIT = "EXIT"

# Vocal density at a mix point
VOCAL_NONE = "none"
VOCAL_LIGHT = "light"
VOCAL_HEAVY = "heavy"

# Transition types
CUT = "CUT"
CROSSFADE = "CROSSFADE"
HARMONIC_BLEND = "HARMONIC_BLEND"

# Mix strategies carried by a mix point
OUTRO_FADE = "OUTRO_FADE"
BREAKDOWN = "BREAKDOWN"
DROP_SWAP = "DROP_SWAP"
LOOP_ANCHOR = "LOOP_ANCHOR"
INTRO_SIMPLE = "INTRO_SIMPLE"

# Crossfade curves suggested to the playback side
CURVE_LINEAR = "LINEAR"
CURVE_BASS_SWAP = "BASS_SWAP"
CURVE_CUT = "CUT"

# Section kinds
INTRO = "intro"
VERSE = "verse"
CHORUS = "chorus"
BRIDGE = "bridge"
INSTRUMENTAL = "instrumental"
OUTRO = "outro"
BUILD_UP = "build-up"

SECTION_KINDS = frozenset({INTRO, VERSE, CHORUS, BRIDGE, INSTRUMENTAL, OUTRO, BUILD_UP})

SECTION_ALIASES = {
    "buildup": BUILD_UP,
    "build_up": BUILD_UP,
    "build up": BUILD_UP,
    "drop": INSTRUMENTAL,
    "breakdown": INSTRUMENTAL,
    "break": INSTRUMENTAL,
    "interlude": INSTRUMENTAL,
    "pre-chorus": VERSE,
    "hook": CHORUS,
    # Labels emitted by the structural labelling service
    "verso": VERSE,
    "estribillo": CHORUS,
    "puente": BRIDGE,
    "solo_instrumental": INSTRUMENTAL,
    "subidon_build_up": BUILD_UP,
}


def normalize_section_kind(kind: Optional[str]) -> Optional[str]:
    """Map a section label onto one of SECTION_KINDS (unknown labels pass through lowercased)."""
    if kind is None:
        return None
    label = str(kind).strip().lower()
    if not label:
        return None
    if label in SECTION_KINDS:
        return label
    return SECTION_ALIASES.get(label, label)


def finite_or_none(value: Optional[float]) -> Optional[float]:
    """Drop NaN and infinities, which no downstream JSON consumer accepts."""
    if value is None or not math.isfinite(value):
        return None
    return value


@dataclass(frozen=True)
class Segment:
    """Structural section of a track."""

    kind: str
    start_ms: int
    end_ms: int


@dataclass(frozen=True)
class VocalInterval:
    """Span of a track where a voice is active."""

    start_ms: int
    end_ms: int


@dataclass(frozen=True)
class Track:
    """Immutable container for a track's precomputed musical features."""

    track_id: str
    duration_ms: int
    bpm: Optional[float] = None
    key: Optional[str] = None  # Camelot notation (1A-12B) or None
    energy: Optional[float] = None
    danceability: Optional[float] = None
    beats_ms: Tuple[int, ...] = ()
    downbeats_ms: Tuple[int, ...] = ()
    phrases_ms: Tuple[int, ...] = ()
    segments: Tuple[Segment, ...] = ()
    vocals: Tuple[VocalInterval, ...] = ()
    title: Optional[str] = None
    content_hash: Optional[str] = None

    def describe(self) -> str:
        """Label used in logs and warnings."""
        if self.title:
            return f"'{self.title}' ({self.track_id})"
        return self.track_id


@dataclass(frozen=True)
class MixPoint:
    """Candidate transition anchor within one track."""

    time_ms: int
    role: str
    section: Optional[str]
    vocal_density: str
    confidence: float
    on_downbeat: bool = False
    on_phrase: bool = False
    safe_duration_ms: int = 0
    fallback: bool = False
    strategy: Optional[str] = None
    curve: str = CURVE_LINEAR
    loop_length_ms: int = 0

    @property
    def is_loopable(self) -> bool:
        return self.loop_length_ms > 0


@dataclass
class MixPlan:
    """Candidate exit and entry points for one track, best first."""

    track_id: str
    exits: List[MixPoint] = field(default_factory=list)
    entries: List[MixPoint] = field(default_factory=list)


@dataclass(frozen=True)
class TransitionCandidate:
    """Evaluated pairing of an EXIT point of track A with an ENTRY point of track B."""

    from_track_id: str
    to_track_id: str
    exit_point: MixPoint
    entry_point: MixPoint
    score: float
    transition_type: str
    description: str
    viable: bool
    mix_duration_ms: int = 0
    curve: str = CURVE_LINEAR
    sub_scores: Dict[str, float] = field(default_factory=dict, compare=False, hash=False)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON-serializable transition shape."""
        return {
            "type": self.transition_type,
            "exitPointMs": self.exit_point.time_ms,
            "entryPointMs": self.entry_point.time_ms,
            "score": self.score,
            "description": self.description,
            "mixDurationMs": self.mix_duration_ms,
            "crossfadeCurve": self.curve,
            "loopLengthMs": self.exit_point.loop_length_ms,
        }


@dataclass(frozen=True)
class SessionEntry:
    """One placed track and the transition leading into it."""

    position: int
    track: Track
    transition: Optional[TransitionCandidate] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "position": self.position,
            "track": {
                "id": self.track.track_id,
                "hash": self.track.content_hash,
                "title": self.track.title,
                "bpm": finite_or_none(self.track.bpm),
                "key": self.track.key,
                "energy": finite_or_none(self.track.energy),
                "durationMs": self.track.duration_ms,
            },
            "transition": self.transition.to_dict() if self.transition else None,
        }


@dataclass
class Session:
    """Final ordered DJ set plan."""

    entries: List[SessionEntry] = field(default_factory=list)
    total_score: float = 0.0
    avg_transition_score: float = 0.0
    warnings: List[str] = field(default_factory=list)

    @property
    def track_ids(self) -> List[str]:
        return [entry.track.track_id for entry in self.entries]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON-serializable session consumed downstream."""
        return {
            "tracks": [entry.to_dict() for entry in self.entries],
            "totalScore": self.total_score,
            "avgTransitionScore": self.avg_transition_score,
            "warnings": list(self.warnings),
        }


# --- Record normalization ---


def parse_time_to_ms(value: Any) -> Optional[int]:
    """
    Parse a timestamp into milliseconds.

    Accepts numbers (already ms) and "mm:ss.d" / "hh:mm:ss" strings.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(round(value)) if math.isfinite(value) else None

    text = str(value).strip()
    if not text:
        return None

    try:
        if ":" not in text:
            return int(round(float(text)))
        seconds = 0.0
        for part in text.split(":"):
            seconds = seconds * 60 + float(part)
        return int(round(seconds * 1000))
    except (ValueError, OverflowError):
        logger.debug(f"Unparseable timestamp: {value!r}")
        return None


def _load_list(value: Any) -> List[Any]:
    """Accept a list or a JSON-encoded list; anything else becomes empty."""
    if value is None:
        return []
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            logger.debug("Discarding non-JSON list field")
            return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


def _pick(record: Dict[str, Any], *names: str) -> Any:
    for name in names:
        if name in record and record[name] is not None:
            return record[name]
    return None


def _optional_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return finite_or_none(float(value))
    except (TypeError, ValueError):
        return None


def _timestamps(value: Any) -> Tuple[int, ...]:
    times = (parse_time_to_ms(v) for v in _load_list(value))
    return tuple(sorted(t for t in times if t is not None and t >= 0))


def _span(item: Dict[str, Any]) -> Tuple[Optional[int], Optional[int]]:
    start = parse_time_to_ms(_pick(item, "start_ms", "startMs", "inicio_ms", "start", "inicio"))
    end = parse_time_to_ms(_pick(item, "end_ms", "endMs", "fin_ms", "end", "fin"))
    return start, end


def track_from_record(record: Dict[str, Any]) -> Track:
    """
    Build a Track from a catalog feature record.

    Field names may be snake_case or camelCase; list fields may be JSON
    strings; segment times may be "mm:ss.d" strings. When no explicit vocal
    intervals are given, they are derived from segments flagged has_vocals.

    Raises:
        ValueError: If the record has no id or no usable duration
    """
    track_id = _pick(record, "id", "track_id", "trackId")
    if track_id is None:
        raise ValueError("Track record has no id")

    duration_ms = parse_time_to_ms(_pick(record, "duration_ms", "durationMs", "duracion_ms"))
    if duration_ms is None or duration_ms < 0:
        raise ValueError(f"Track record {track_id} has no usable duration")

    segments = []
    derived_vocals = []
    for item in _load_list(_pick(record, "segments", "timeline")):
        if not isinstance(item, dict):
            continue
        start, end = _span(item)
        if start is None or end is None or end < start:
            logger.debug(f"Skipping malformed segment in {track_id}: {item!r}")
            continue
        kind = normalize_section_kind(_pick(item, "kind", "type", "section", "tipo_seccion"))
        segments.append(Segment(kind=kind or "unknown", start_ms=start, end_ms=end))
        if item.get("has_vocals") or item.get("hasVocals"):
            derived_vocals.append(VocalInterval(start_ms=start, end_ms=end))

    vocals = []
    for item in _load_list(_pick(record, "vocals", "vocal_intervals", "vocalIntervals")):
        if isinstance(item, dict):
            start, end = _span(item)
        elif isinstance(item, (list, tuple)) and len(item) == 2:
            start, end = parse_time_to_ms(item[0]), parse_time_to_ms(item[1])
        else:
            continue
        if start is None or end is None or end < start:
            continue
        vocals.append(VocalInterval(start_ms=start, end_ms=end))
    if not vocals:
        vocals = derived_vocals

    raw_key = _pick(record, "key", "camelot", "tonalidad_camelot")
    key = to_camelot(raw_key)
    if raw_key is not None and key is None:
        logger.debug(f"Unrecognized key {raw_key!r} for track {track_id}")

    content_hash = _pick(record, "hash", "content_hash", "hash_archivo")
    title = _pick(record, "title", "titulo")

    return Track(
        track_id=str(track_id),
        duration_ms=duration_ms,
        bpm=_optional_float(_pick(record, "bpm", "tempo")),
        key=key,
        energy=_optional_float(_pick(record, "energy", "energia")),
        danceability=_optional_float(_pick(record, "danceability", "bailabilidad")),
        beats_ms=_timestamps(_pick(record, "beats_ms", "beatsMs", "beats_ts_ms")),
        downbeats_ms=_timestamps(_pick(record, "downbeats_ms", "downbeatsMs", "downbeats_ts_ms")),
        phrases_ms=_timestamps(_pick(record, "phrases_ms", "phrasesMs", "frases_ts_ms")),
        segments=tuple(sorted(segments, key=lambda s: (s.start_ms, s.end_ms))),
        vocals=tuple(sorted(vocals, key=lambda v: (v.start_ms, v.end_ms))),
        title=str(title) if title is not None else None,
        content_hash=str(content_hash) if content_hash is not None else None,
    )


def tracks_from_records(records: Sequence[Dict[str, Any]]) -> List[Track]:
    """Convert feature records, skipping (and logging) malformed ones."""
    tracks = []
    for record in records:
        try:
            tracks.append(track_from_record(record))
        except ValueError as e:
            logger.warning(f"Skipping track record: {e}")
    return tracks
