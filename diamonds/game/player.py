"""Player dataclass with an explicit human/bot/proxy/departed variant."""
from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class PlayerKind(Enum):
    HUMAN = "human"
    BOT = "bot"
    PROXY = "proxy"          # departed human played by an assigned bot
    DEPARTED = "departed"    # departed human with no replacement


@dataclass
class Player:
    """One participant in a room (persistent across rounds)."""
    player_id: str
    name: str
    kind: PlayerKind = PlayerKind.HUMAN
    score: int = 0
    is_eliminated: bool = False
    timeout_count: int = 0
    current_choice: Optional[int] = None
    has_chosen: bool = False
    choice_seq: int = 0      # room-wide submission order, used for tie-breaks
    original_name: Optional[str] = None
    assigned_bot_name: Optional[str] = None

    @property
    def is_bot(self) -> bool:
        return self.kind in (PlayerKind.BOT, PlayerKind.PROXY)

    @property
    def has_left(self) -> bool:
        return self.kind in (PlayerKind.PROXY, PlayerKind.DEPARTED)

    @property
    def is_human_origin(self) -> bool:
        """True for anyone who joined as a human, present or not."""
        return self.kind is not PlayerKind.BOT

    @property
    def represents_human(self) -> bool:
        """A live human, or a bot standing in for one."""
        return self.kind in (PlayerKind.HUMAN, PlayerKind.PROXY)

    @property
    def is_eligible(self) -> bool:
        """Takes part in rounds: not eliminated and not departed without a proxy."""
        return not self.is_eliminated and self.kind is not PlayerKind.DEPARTED

    @property
    def bot_name(self) -> str:
        """Name the bot engine sees (drives personality)."""
        return self.assigned_bot_name or self.name

    @property
    def display_label(self) -> str:
        """Label broadcast with submission progress; hides human names."""
        if self.kind is PlayerKind.PROXY:
            return f"\U0001F916 {self.assigned_bot_name} (for {self.original_name})"
        if self.kind is PlayerKind.BOT:
            return f"\U0001F916 {self.name}"
        return "\U0001F464 Player"

    def reset_round(self) -> None:
        self.current_choice = None
        self.has_chosen = False

    def to_dict(self) -> dict:
        return {
            "id": self.player_id,
            "name": self.name,
            "score": self.score,
            "is_eliminated": self.is_eliminated,
            "is_bot": self.is_bot,
            "has_left": self.has_left,
            "kind": self.kind.value,
            "original_name": self.original_name,
            "assigned_bot_name": self.assigned_bot_name,
        }
