"""
Strategy engine for bots.

Early game (first rounds or 4+ players): personality-flavoured guess around
  the predicted target
Mid game (3 players):  duplicate avoidance, occasional exact-target attempt
End game (2 players):  0/100 gambit, exact-target attempt, round-number avoidance
"""
from __future__ import annotations
import math
import random
from typing import Optional

from diamonds.ai.history import HistoryAnalyzer, HistorySummary
from diamonds.core.constants import ROUND_NUMBERS, Personality
from diamonds.game.game_state import BotContext, Rule


def clamp(value: float, low: int = 0, high: int = 100) -> int:
    """Floor value into [low, high]. Bot guesses are floored, never rounded to nearest."""
    return max(low, min(high, int(math.floor(value))))


class StrategyEngine:
    """Decides a bot's number given its personality and the game context."""

    def __init__(self, analyzer: Optional[HistoryAnalyzer] = None) -> None:
        self._analyzer = analyzer or HistoryAnalyzer()

    def decide(self, personality: Personality, context: BotContext, summary: HistorySummary) -> int:
        remaining = context.remaining_players
        if context.current_round <= 2 or remaining >= 4:
            return self._early(personality, context, summary)
        if remaining == 3:
            return self._mid(personality, context, summary)
        if remaining == 2:
            return self._end(personality, context, summary)
        return self.conservative_choice()

    # ------------------------------------------------------------------
    # Early game: stay near the crowd
    # ------------------------------------------------------------------

    def _early(self, personality: Personality, context: BotContext, summary: HistorySummary) -> int:
        if context.current_round <= 1:
            if personality.type == "unpredictable":
                base = random.randint(20, 79)
            else:
                base = {"aggressive": 45, "mathematical": 40}.get(personality.type, 42)
            return clamp(base + random.randint(-5, 4), 20, 70)

        predicted = summary.predicted_target
        if Rule.DUPLICATE in context.active_rules:
            avoid = self._analyzer.avoid_numbers(summary)
            choice = predicted + random.randint(-10, 9)
            attempts = 0
            while choice in avoid and attempts < 10 and random.random() < 0.7:
                choice = predicted + random.randint(-10, 9)
                attempts += 1
            return clamp(choice)

        adjustment = personality.risk_tolerance * random.randint(-8, 7)
        return clamp(predicted + adjustment)

    # ------------------------------------------------------------------
    # Mid game: three players left
    # ------------------------------------------------------------------

    def _mid(self, personality: Personality, context: BotContext, summary: HistorySummary) -> int:
        predicted = self._predict_for_remaining(context, summary)

        if (Rule.PERFECT_TARGET in context.active_rules
                and personality.calculation_focus > 0.7 and random.random() < 0.3):
            return clamp(predicted)

        if Rule.DUPLICATE in context.active_rules:
            avoid = self._analyzer.avoid_numbers(summary)
            choice = predicted + random.randint(-6, 5)
            attempts = 0
            while clamp(choice) in avoid and attempts < 10:
                choice = predicted + random.randint(-10, 9)
                attempts += 1
            return clamp(choice)

        adjustment = personality.risk_tolerance * random.randint(-6, 5)
        return clamp(predicted + adjustment)

    # ------------------------------------------------------------------
    # End game: two players left
    # ------------------------------------------------------------------

    def _end(self, personality: Personality, context: BotContext, summary: HistorySummary) -> int:
        rules = context.active_rules

        if Rule.ZERO_HUNDRED in rules:
            if personality.type == "aggressive" and random.random() < 0.4:
                return 0
            if personality.type == "mathematical" and random.random() < 0.3:
                return 100
            if personality.type == "unpredictable" and random.random() < 0.5:
                return random.choice((0, 100))

        predicted = self._predict_for_two(summary)

        if (Rule.PERFECT_TARGET in rules
                and personality.calculation_focus > 0.8 and random.random() < 0.4):
            return clamp(predicted)

        choice = math.floor(predicted + random.randint(-4, 3))
        if Rule.DUPLICATE in rules and choice in ROUND_NUMBERS and random.random() < 0.8:
            choice += random.choice((3, -3))
        return clamp(choice)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _predict_for_remaining(self, context: BotContext, summary: HistorySummary) -> float:
        if summary.recent_targets:
            return summary.predicted_target + random.randint(-5, 4)
        remaining = context.remaining_players
        if remaining <= 2:
            return 35
        if remaining == 3:
            return 38
        return 40

    def _predict_for_two(self, summary: HistorySummary) -> float:
        # Two-player targets swing harder, so follow the latest one
        if summary.recent_targets:
            return summary.recent_targets[-1] + random.randint(-6, 5)
        return 35 + random.randint(-5, 4)

    def conservative_choice(self) -> int:
        return random.randint(35, 55)
