"""
Sequence Search Engine: Best-first (A*) ordering of a track subset.

- State: ordered prefix of placed tracks, accumulated score, placed-track bitmask
- Edge cost: best achievable transition score between consecutive tracks, less a
  variety penalty when a step repeats the previous transition type or exit strategy
- Priority: accumulated score + admissible upper bound on the remaining slots
- Bounded frontier (frontier_width) trades optimality for tractability;
  frontier_width = 0 keeps every open state and guarantees the optimum
- Never fails to deliver a session: incompatible steps fall back to the
  least-bad pairing and are reported as warnings
"""

import heapq
import itertools
import logging
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Tuple, Sequence, Mapping
import numpy as np

from ..models import Track, MixPlan, TransitionCandidate, Session
from .scorer import TransitionScorer, ScoringParams
from .session import assemble_session

logger = logging.getLogger(__name__)


class InputError(ValueError):
    """Raised when a sequencing request cannot be planned at all."""
    pass


class SearchParams:
    """Search bounds from config."""

    def __init__(self, config: Optional[dict] = None):
        """
        Args:
            config: Search dict from config["search"]
        """
        config = config or {}
        self.frontier_width = int(config.get("frontier_width", 512))
        self.max_expansions = int(config.get("max_expansions", 20000))
        self.variety_type_penalty = config.get("variety_type_penalty", 25.0)
        self.variety_strategy_penalty = config.get("variety_strategy_penalty", 15.0)


@dataclass(frozen=True)
class SequenceNode:
    """Partial ordering explored by the search (indices into the pool)."""

    prefix: Tuple[int, ...]
    score: float
    placed: int

    def has(self, index: int) -> bool:
        return bool(self.placed >> index & 1)


@dataclass
class SearchResult:
    """Winning path plus the transitions chosen along it."""

    path: Tuple[int, ...]
    score: float
    transitions: List[TransitionCandidate] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    expansions: int = 0


@dataclass
class PairTable:
    """
    Best transition for every ordered pair of pool indices.

    `inbound` holds (best inbound score, index) for every track, best first.
    """

    pairs: Dict[Tuple[int, int], TransitionCandidate]
    inbound: List[Tuple[float, int]]

    @property
    def size(self) -> int:
        return len(self.inbound)

    def __getitem__(self, pair: Tuple[int, int]) -> TransitionCandidate:
        return self.pairs[pair]


class SequenceSearch:
    """
    A* search over partial track orderings.

    The pairwise transition table is computed once per search call and
    passed down; nodes only carry indices into it.
    """

    def __init__(
        self,
        scorer: Optional[TransitionScorer] = None,
        params: Optional[SearchParams] = None,
    ):
        self.scorer = scorer or TransitionScorer()
        self.params = params or SearchParams()

    def build_pair_table(self, pool: Sequence[Track], plans: Mapping[str, MixPlan]) -> PairTable:
        size = len(pool)
        pairs: Dict[Tuple[int, int], TransitionCandidate] = {}
        scores = np.full((size, size), -np.inf)

        for i, track_a in enumerate(pool):
            plan_a = plans[track_a.track_id]
            for j, track_b in enumerate(pool):
                if i == j:
                    continue
                candidate = self.scorer.best(track_a, plan_a, track_b, plans[track_b.track_id])
                pairs[(i, j)] = candidate
                scores[i, j] = candidate.score

        best_inbound = scores.max(axis=0, initial=0.0)
        order = np.argsort(-best_inbound, kind="stable")
        inbound = [(float(best_inbound[j]), int(j)) for j in order]

        viable = sum(1 for c in pairs.values() if c.viable)
        logger.debug(f"Pair table: {len(pairs)} ordered pairs, {viable} viable")
        return PairTable(pairs=pairs, inbound=inbound)

    def _top_inbound(
        self, table: PairTable, node: SequenceNode, slots: int
    ) -> List[Tuple[float, int]]:
        """The `slots` best inbound scores among unplaced tracks, best first."""
        top: List[Tuple[float, int]] = []
        if slots <= 0:
            return top
        for score, index in table.inbound:
            if node.has(index):
                continue
            top.append((score, index))
            if len(top) == slots:
                break
        return top

    def _upper_bound(self, table: PairTable, node: SequenceNode, target_length: int) -> float:
        """
        Admissible estimate of the score still obtainable.

        Every future transition enters a distinct unplaced track and can
        score no more than that track's best inbound transition (variety
        penalties only subtract), so the sum of the best inbound scores of
        the top `slots` unplaced tracks never underestimates.
        """
        top = self._top_inbound(table, node, target_length - len(node.prefix))
        return sum(score for score, _ in top)

    def _step_score(self, table: PairTable, prefix: Tuple[int, ...], j: int) -> float:
        """Transition score into j, less the variety penalties for repeating the previous step."""
        candidate = table[(prefix[-1], j)]
        score = candidate.score
        if len(prefix) >= 2:
            previous = table[(prefix[-2], prefix[-1])]
            if previous.transition_type == candidate.transition_type:
                score -= self.params.variety_type_penalty
            strategy = candidate.exit_point.strategy
            if strategy is not None and previous.exit_point.strategy == strategy:
                score -= self.params.variety_strategy_penalty
        return score

    def _successors(self, table: PairTable, node: SequenceNode) -> List[SequenceNode]:
        """
        Children of a node: one per remaining track reachable over a viable
        transition, or the single least-bad child when none is viable.
        """
        last = node.prefix[-1]
        remaining = [j for j in range(table.size) if not node.has(j)]

        choices = [j for j in remaining if table[(last, j)].viable]
        if not choices:
            choices = [max(remaining, key=lambda j: table[(last, j)].score)]

        return [
            SequenceNode(
                prefix=node.prefix + (j,),
                score=node.score + self._step_score(table, node.prefix, j),
                placed=node.placed | 1 << j,
            )
            for j in choices
        ]

    def _complete_greedily(
        self, table: PairTable, node: SequenceNode, target_length: int
    ) -> SequenceNode:
        while len(node.prefix) < target_length:
            node = max(self._successors(table, node), key=lambda c: c.score)
        return node

    def search(
        self,
        pool: Sequence[Track],
        plans: Mapping[str, MixPlan],
        target_length: int,
        start_index: Optional[int] = None,
    ) -> SearchResult:
        """
        Find a high-scoring ordering of target_length tracks from the pool.

        Args:
            pool: Distinct tracks, all with mix plans
            plans: Mix plans keyed by track_id
            target_length: Number of tracks to place (1 <= target_length <= len(pool))
            start_index: Pool index pinned to the first position, if any

        Returns:
            SearchResult for the first goal popped from the frontier. Its score
            is the search objective: transition scores less variety penalties.
        """
        table = self.build_pair_table(pool, plans)
        warnings: List[str] = []

        frontier: List[tuple] = []
        counter = itertools.count()

        def push(node: SequenceNode, bound: float) -> None:
            # Max-priority first; ties go to deeper prefixes, then insertion order
            heapq.heappush(frontier, (-(node.score + bound), -len(node.prefix), next(counter), node))

        starts = [start_index] if start_index is not None else range(len(pool))
        for index in starts:
            start = SequenceNode(prefix=(index,), score=0.0, placed=1 << index)
            push(start, self._upper_bound(table, start, target_length))

        expansions = 0
        goal: Optional[SequenceNode] = None
        width = self.params.frontier_width

        while frontier:
            _, _, _, node = heapq.heappop(frontier)

            if len(node.prefix) == target_length:
                goal = node
                break

            if expansions >= self.params.max_expansions:
                logger.warning(
                    f"Search budget of {self.params.max_expansions} expansions exhausted; "
                    f"completing greedily from a {len(node.prefix)}-track prefix"
                )
                warnings.append(
                    f"search budget of {self.params.max_expansions} expansions exhausted; "
                    f"last {target_length - len(node.prefix)} tracks chosen greedily"
                )
                goal = self._complete_greedily(table, node, target_length)
                break

            expansions += 1

            # A child's bound is the parent's minus the slot it fills: its own
            # inbound score when it was counted, else the smallest counted one
            top = self._top_inbound(table, node, target_length - len(node.prefix))
            bound = sum(score for score, _ in top)
            counted = {index: score for score, index in top}
            floor = top[-1][0] if top else 0.0
            for child in self._successors(table, node):
                push(child, bound - counted.get(child.prefix[-1], floor))

            # Trim in batches so the heap is rebuilt only every few expansions
            if width and len(frontier) > 2 * width:
                frontier = heapq.nsmallest(width, frontier)
                heapq.heapify(frontier)

        if goal is None:
            # Unreachable while target_length <= len(pool): every open node has a child
            raise RuntimeError("Search frontier exhausted before reaching the target length")

        transitions = [table[(a, b)] for a, b in zip(goal.prefix, goal.prefix[1:])]
        for step, candidate in enumerate(transitions):
            if not candidate.viable:
                track_a = pool[goal.prefix[step]]
                track_b = pool[goal.prefix[step + 1]]
                warnings.append(
                    f"no transition above threshold found between {track_a.describe()} "
                    f"and {track_b.describe()} (best score {candidate.score:.1f} < "
                    f"{self.scorer.params.min_viable_score:.1f}); used fallback {candidate.transition_type}"
                )

        logger.debug(f"Search finished after {expansions} expansions")
        return SearchResult(
            path=goal.prefix,
            score=goal.score,
            transitions=transitions,
            warnings=warnings,
            expansions=expansions,
        )


def find_optimal_sequence(
    tracks: Sequence[Track],
    mix_plans: Mapping[str, MixPlan],
    target_length: int,
    start_track_id: Optional[str] = None,
    config: Optional[dict] = None,
) -> Session:
    """
    Order a subset of tracks into a DJ session maximizing transition quality.

    Args:
        tracks: Candidate pool
        mix_plans: Mix plans keyed by track_id (see build_mix_plan)
        target_length: Requested number of tracks
        start_track_id: Track pinned to the first position, if any
        config: Full config dict (uses its "scoring" and "search" sections)

    Returns:
        Session (possibly shortened or empty, with warnings explaining why)

    Raises:
        InputError: No tracks, non-positive target_length, or a start track
                    that is not in the pool
    """
    if not tracks:
        raise InputError("No tracks supplied")
    if isinstance(target_length, bool) or not isinstance(target_length, int) or target_length <= 0:
        raise InputError(f"target_length must be a positive integer, got {target_length!r}")

    config = config or {}
    warnings: List[str] = []
    pool: List[Track] = []
    seen = set()

    for track in tracks:
        if track.track_id in seen:
            warnings.append(f"duplicate track {track.track_id} ignored")
            continue
        seen.add(track.track_id)

        plan = mix_plans.get(track.track_id)
        if plan is None or not plan.exits or not plan.entries:
            warnings.append(f"no mix plan for track {track.describe()}; excluded from the session")
            continue
        pool.append(track)

    start_index = None
    if start_track_id is not None:
        ids = [track.track_id for track in pool]
        if start_track_id not in ids:
            raise InputError(f"Start track {start_track_id} is not in the pool")
        start_index = ids.index(start_track_id)

    if not pool:
        logger.warning("No plannable tracks in the pool; returning an empty session")
        warnings.append("no plannable tracks in the pool; session is empty")
        return Session(warnings=warnings)

    length = min(target_length, len(pool))
    if length < target_length:
        warnings.append(
            f"requested {target_length} tracks but only {len(pool)} available; "
            f"session shortened to {length}"
        )

    logger.info(
        f"Sequencing {length} of {len(pool)} tracks"
        + (f" starting from {pool[start_index].describe()}" if start_index is not None else "")
    )

    search = SequenceSearch(
        scorer=TransitionScorer(ScoringParams(config.get("scoring", {}))),
        params=SearchParams(config.get("search", {})),
    )
    result = search.search(pool, mix_plans, length, start_index=start_index)

    session = assemble_session(
        [pool[i] for i in result.path],
        transitions=result.transitions,
        warnings=warnings + result.warnings,
    )

    logger.info(
        f"✅ Session built: {len(session.entries)} tracks, "
        f"total {session.total_score:.1f}, avg {session.avg_transition_score:.1f} "
        f"({result.expansions} expansions, {len(session.warnings)} warnings)"
    )
    return session
