"""
Round-history analysis for bots.

Predicts the next target from a recency-weighted average of the last few
targets and collects the numbers that recently collided.
"""
from __future__ import annotations
from collections import Counter
from dataclasses import dataclass, field
from typing import List, Sequence, Set

from diamonds.core.constants import BASELINE_TARGET, ROUND_NUMBERS
from diamonds.game.game_state import RoundResult


@dataclass
class HistorySummary:
    predicted_target: int
    recent_targets: List[float] = field(default_factory=list)
    common_numbers: List[int] = field(default_factory=list)


def weighted_target(targets: Sequence[float]) -> float:
    """Linear recency weights: the newest target counts len(targets) times the oldest."""
    weights = range(1, len(targets) + 1)
    return sum(w * t for w, t in zip(weights, targets)) / sum(weights)


class HistoryAnalyzer:
    def __init__(self, window: int = 3, baseline: int = BASELINE_TARGET) -> None:
        self.window = window
        self.baseline = baseline

    def analyze(self, history: Sequence[RoundResult]) -> HistorySummary:
        recent = list(history)[-self.window:]
        # All-timeout rounds carry target 0 and say nothing about the crowd
        targets = [r.target for r in recent if r.target > 0]
        predicted = int(weighted_target(targets)) if targets else self.baseline

        counts = Counter(
            c.choice
            for r in recent
            for c in r.choices
            if c.choice is not None and not c.timed_out
        )
        common = sorted(n for n, k in counts.items() if k > 1)
        return HistorySummary(predicted_target=predicted, recent_targets=targets, common_numbers=common)

    def avoid_numbers(self, summary: HistorySummary) -> Set[int]:
        return set(summary.common_numbers) | set(ROUND_NUMBERS)
