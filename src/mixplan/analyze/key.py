"""
Camelot key handling: normalization and wheel distance.

Keys arrive either in Camelot notation (1A, 1B, ..., 12B) or in standard
notation ("A minor", "F#m", "Db"). Everything is normalized to Camelot
before any harmonic comparison.
"""

import logging
import re
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

# Mapping from standard key notation to Camelot notation
# Standard: C, C#/Db, D, D#/Eb, E, F, F#/Gb, G, G#/Ab, A, A#/Bb, B

STANDARD_TO_CAMELOT_MAJOR = {
    "C": "8B",
    "C#": "3B",
    "Db": "3B",
    "D": "10B",
    "D#": "5B",
    "Eb": "5B",
    "E": "12B",
    "F": "7B",
    "F#": "2B",
    "Gb": "2B",
    "G": "9B",
    "G#": "4B",
    "Ab": "4B",
    "A": "11B",
    "A#": "6B",
    "Bb": "6B",
    "B": "1B",
}

STANDARD_TO_CAMELOT_MINOR = {
    "C": "5A",
    "C#": "12A",
    "Db": "12A",
    "D": "7A",
    "D#": "2A",
    "Eb": "2A",
    "E": "9A",
    "F": "4A",
    "F#": "11A",
    "Gb": "11A",
    "G": "6A",
    "G#": "1A",
    "Ab": "1A",
    "A": "8A",
    "A#": "3A",
    "Bb": "3A",
    "B": "10A",
}

WHEEL_SIZE = 12

# Largest possible distance: six steps around the wheel plus a mode change
MAX_WHEEL_DISTANCE = WHEEL_SIZE // 2 + 1

HARMONIC_SAME = 1.0
HARMONIC_ADJACENT = 0.9
HARMONIC_RELATIVE = 0.85
HARMONIC_NEAR = 0.7
HARMONIC_FLOOR = 0.1
HARMONIC_UNKNOWN = 0.5

_CAMELOT_RE = re.compile(r"^\s*(\d{1,2})\s*([ABab])\s*$")
_STANDARD_RE = re.compile(
    r"^\s*([A-Ga-g])([#b♯♭]?)\s*(maj|major|min|minor|m)?\s*$"
)


def parse_camelot(key: Optional[str]) -> Optional[Tuple[int, str]]:
    """
    Parse a key into its Camelot (number, letter) pair.

    Accepts Camelot ("8A", "08a") and standard notation ("A minor", "Am",
    "C#", "Db major"). A bare note is read as major.

    Returns:
        (number, "A"|"B") or None when the key is missing or unparseable
    """
    if key is None:
        return None

    text = str(key).strip()
    if not text or text.lower() == "unknown":
        return None

    match = _CAMELOT_RE.match(text)
    if match:
        number = int(match.group(1))
        if 1 <= number <= WHEEL_SIZE:
            return number, match.group(2).upper()
        logger.debug(f"Camelot number out of range: {key}")
        return None

    match = _STANDARD_RE.match(text)
    if match:
        note = match.group(1).upper()
        accidental = match.group(2).replace("♯", "#").replace("♭", "b")
        quality = (match.group(3) or "").lower()
        mapping = (
            STANDARD_TO_CAMELOT_MINOR
            if quality in ("m", "min", "minor")
            else STANDARD_TO_CAMELOT_MAJOR
        )
        camelot = mapping.get(note + accidental)
        if camelot:
            return int(camelot[:-1]), camelot[-1]

    logger.debug(f"Malformed key: {key}")
    return None


def to_camelot(key: Optional[str]) -> Optional[str]:
    """Normalize a key to Camelot notation ("8A"), or None if unknown."""
    parsed = parse_camelot(key)
    if parsed is None:
        return None
    number, letter = parsed
    return f"{number}{letter}"


def wheel_distance(key1: Optional[str], key2: Optional[str]) -> Optional[int]:
    """
    Distance between two keys on the Camelot wheel.

    Number steps are counted around the circle (12 wraps to 1), and a mode
    change (A <-> B) adds one step. The result is symmetric and lies in
    [0, MAX_WHEEL_DISTANCE].

    Returns:
        Distance, or None if either key is unknown
    """
    parsed1 = parse_camelot(key1)
    parsed2 = parse_camelot(key2)
    if parsed1 is None or parsed2 is None:
        return None

    num1, mode1 = parsed1
    num2, mode2 = parsed2
    steps = abs(num1 - num2) % WHEEL_SIZE
    steps = min(steps, WHEEL_SIZE - steps)
    return steps + (0 if mode1 == mode2 else 1)


def harmonic_score(key1: Optional[str], key2: Optional[str]) -> float:
    """
    Harmonic compatibility of two keys (0.0-1.0).

    - Same key: 1.0
    - Adjacent number, same letter (e.g. 8A/9A): 0.9
    - Same number, opposite letter (relative major/minor, e.g. 8A/8B): 0.85
    - Otherwise decays linearly with wheel distance from 0.7 down to 0.1
      at the antipodal key
    - Unknown key on either side: neutral 0.5
    """
    parsed1 = parse_camelot(key1)
    parsed2 = parse_camelot(key2)
    if parsed1 is None or parsed2 is None:
        return HARMONIC_UNKNOWN

    if parsed1 == parsed2:
        return HARMONIC_SAME

    distance = wheel_distance(key1, key2)
    same_mode = parsed1[1] == parsed2[1]

    if distance == 1 and same_mode:
        return HARMONIC_ADJACENT
    if distance == 1:
        return HARMONIC_RELATIVE

    # distance in [2, MAX_WHEEL_DISTANCE]
    span = MAX_WHEEL_DISTANCE - 2
    fraction = (MAX_WHEEL_DISTANCE - distance) / span
    return HARMONIC_FLOOR + (HARMONIC_NEAR - HARMONIC_FLOOR) * fraction


def describe_relation(key1: Optional[str], key2: Optional[str]) -> str:
    """Short human-readable label for how two keys relate on the wheel."""
    parsed1 = parse_camelot(key1)
    parsed2 = parse_camelot(key2)
    if parsed1 is None or parsed2 is None:
        return "unknown key"
    if parsed1 == parsed2:
        return "same key"

    distance = wheel_distance(key1, key2)
    if distance == 1:
        return "adjacent key" if parsed1[1] == parsed2[1] else "relative key"
    return f"wheel distance {distance}"
