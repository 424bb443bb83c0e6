"""Bot name pool and personality table."""
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List


BOT_NAMES: List[str] = [
    "King of Hearts", "Queen of Diamonds", "King of Spades", "Queen of Clubs",
    "King of Diamonds", "Queen of Hearts", "King of Clubs", "Queen of Spades",
    "Jack of Hearts", "Jack of Diamonds", "Jack of Spades", "Jack of Clubs",
    "Ace of Hearts", "Ace of Diamonds", "Ace of Spades", "Ace of Clubs",
]

# Numbers bots treat as collision-prone once duplicates are penalised
ROUND_NUMBERS: List[int] = [0, 10, 20, 30, 40, 50, 60, 70, 80, 90, 100]

# Predicted target when there is no usable history
BASELINE_TARGET = 40


@dataclass(frozen=True)
class Personality:
    type: str              # "aggressive" | "balanced" | "unpredictable" | "mathematical"
    risk_tolerance: float  # scales the random offset from the predicted target
    calculation_focus: float  # gates exact-target attempts


PERSONALITIES: Dict[str, Personality] = {
    "King": Personality("aggressive", 0.8, 0.6),
    "Queen": Personality("balanced", 0.5, 0.8),
    "Jack": Personality("unpredictable", 0.7, 0.4),
    "Ace": Personality("mathematical", 0.3, 0.9),
}
DEFAULT_PERSONALITY = Personality("balanced", 0.5, 0.6)


def personality_for(bot_name: str) -> Personality:
    """Pick a personality from the card rank in the bot's name."""
    for rank, personality in PERSONALITIES.items():
        if rank in bot_name:
            return personality
    return DEFAULT_PERSONALITY
