#!/usr/bin/env python3
"""
Plan a DJ Set Script

Usage: plan_set.py <records.json> [length] [start_track_id]

Reads analyzed track feature records (a JSON list, or an object with a
"tracks" list), plans mix points, sequences a session and prints the
session JSON to stdout.
"""

import sys
import json
import logging
from pathlib import Path

# Add src/ to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from mixplan.config import Config, ConfigError
from mixplan.models import tracks_from_records
from mixplan.analyze.cues import build_mix_plan
from mixplan.generate.search import find_optimal_sequence, InputError

# Configure logging (stderr, so stdout stays clean JSON)
logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

DEFAULT_SESSION_LENGTH = 10


def _load_records(path: Path) -> list:
    with open(path) as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("tracks", [])
    if not isinstance(data, list):
        raise InputError(f"{path} does not contain a list of track records")
    return data


def main(argv=None):
    """Main planning entrypoint."""
    argv = sys.argv[1:] if argv is None else argv

    if not argv:
        logger.error("Usage: plan_set.py <records.json> [length] [start_track_id]")
        return 2

    try:
        config = Config.load()

        records = _load_records(Path(argv[0]))
        length = int(argv[1]) if len(argv) > 1 else DEFAULT_SESSION_LENGTH
        start_track_id = argv[2] if len(argv) > 2 else None

        tracks = tracks_from_records(records)
        logger.info(f"Loaded {len(tracks)} of {len(records)} track records")

        mix_plans = build_mix_plan(tracks, config.data)
        session = find_optimal_sequence(
            tracks, mix_plans, length, start_track_id=start_track_id, config=config.data
        )

        for warning in session.warnings:
            logger.warning(warning)

        json.dump(session.to_dict(), sys.stdout, indent=2)
        sys.stdout.write("\n")

        if not session.entries:
            logger.error("Planning failed: session has no tracks")
            return 1
        return 0

    except ValueError as e:
        logger.error(f"Invalid request: {e}")
        return 2
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1
    except KeyboardInterrupt:
        logger.warning("Planning interrupted by user")
        return 130
    except Exception as e:
        logger.error(f"Planning failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
