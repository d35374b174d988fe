# src/tradearena/matchmaking/algorithm.py

"""
Pairing rules for the ranked matchmaking queue.

Everything here is pure: the scan loads queue rows, turns them into
QueueCandidate snapshots and asks this module who should play whom. Keeping
the rules free of database access lets them be tested exhaustively.
"""

import math
from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class QueueCandidate:
    """Point-in-time view of a searching queue entry."""

    entry_id: int
    user_id: str
    username: str
    game_mode: str
    rating: int
    rating_min: int
    rating_max: int
    search_start_time: datetime

    def accepts(self, rating: int) -> bool:
        """True if an opponent with this rating is inside our range (inclusive)."""
        return self.rating_min <= rating <= self.rating_max


def expansions_due(wait_ms: float, interval_ms: int) -> int:
    """Number of range expansions earned after waiting `wait_ms`."""
    if wait_ms <= 0:
        return 0
    return math.floor(wait_ms / interval_ms)


def is_mutually_compatible(a: QueueCandidate, b: QueueCandidate) -> bool:
    """Same mode, and each player's rating falls inside the other's range."""
    if a.user_id == b.user_id:
        return False
    if a.game_mode != b.game_mode:
        return False
    return b.accepts(a.rating) and a.accepts(b.rating)


def find_opponent(
    candidate: QueueCandidate,
    pool: list[QueueCandidate],
    matched: set[str],
) -> QueueCandidate | None:
    """Return the first compatible, not yet matched opponent in pool order."""
    for other in pool:
        if other.user_id == candidate.user_id or other.user_id in matched:
            continue
        if is_mutually_compatible(candidate, other):
            return other
    return None


def pair_candidates(
    pool: list[QueueCandidate],
) -> list[tuple[QueueCandidate, QueueCandidate]]:
    """
    Greedily pair a FIFO-ordered pool.

    The oldest unmatched candidate takes the oldest compatible opponent. This
    is not a globally optimal matching, but it guarantees the longest waiting
    players are served first.
    """
    matched: set[str] = set()
    pairs: list[tuple[QueueCandidate, QueueCandidate]] = []

    for candidate in pool:
        if candidate.user_id in matched:
            continue
        opponent = find_opponent(candidate, pool, matched)
        if opponent is None:
            continue
        pairs.append((candidate, opponent))
        matched.add(candidate.user_id)
        matched.add(opponent.user_id)

    return pairs
