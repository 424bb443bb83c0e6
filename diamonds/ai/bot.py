"""BotPlayer — wires HistoryAnalyzer + StrategyEngine together."""
from __future__ import annotations
import random

from diamonds.ai.history import HistoryAnalyzer
from diamonds.ai.strategy import StrategyEngine, clamp
from diamonds.core.constants import personality_for
from diamonds.game.game_state import BotContext
from diamonds.game.player import Player


class BotPlayer:
    """
    Stateless bot decision-maker.

    Called from GameRoom once a bot's response delay has elapsed, with the
    bot (or proxy) player and a read-only snapshot of the room.
    """

    def __init__(self) -> None:
        self._analyzer = HistoryAnalyzer()
        self._strategy = StrategyEngine(self._analyzer)

    def decide(self, bot: Player, context: BotContext) -> int:
        """Return an integer choice in [0, 100]."""
        personality = personality_for(bot.bot_name)
        summary = self._analyzer.analyze(context.round_history)
        choice = self._strategy.decide(personality, context, summary)
        return clamp(choice)

    def response_delay(self, low: float, high: float) -> float:
        """Seconds a bot waits before answering, drawn uniformly from [low, high]."""
        return random.uniform(low, high)

    def fallback_choice(self) -> int:
        return self._strategy.conservative_choice()
