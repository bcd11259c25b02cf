# MixPlan: DJ set planning and sequencing engine
# Package: src.mixplan

__version__ = "1.0.0"
__author__ = "MixPlan Contributors"
__description__ = "Mix point planning, transition scoring and A* set sequencing"

# Module structure:
#   - mixplan.models    : Track feature model, mix points, sessions
#   - mixplan.analyze   : Camelot keys and mix point planning
#   - mixplan.generate  : Transition scoring, sequence search, session assembly
#   - mixplan.config    : Configuration management

from .analyze.cues import build_mix_plan
from .generate.search import InputError, find_optimal_sequence

__all__ = ["build_mix_plan", "find_optimal_sequence", "InputError"]
