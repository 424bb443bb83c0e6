"""
Errors raised at the event gateway boundary.

Each carries a one-line message that is sent back to the originating client
only. Room methods never raise these; they return False instead.
"""


class GameError(Exception):
    """Base class for all rejected client actions."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class RoomNotFound(GameError):
    def __init__(self, room_id: str) -> None:
        self.room_id = room_id
        super().__init__("Room not found")


class PlayerNotFound(GameError):
    def __init__(self, player_id: str) -> None:
        self.player_id = player_id
        super().__init__("Invalid room or player")


class InvalidChoice(GameError):
    """Choice is not an integer in [0, 100]."""

    def __init__(self, message: str = "Invalid choice. Must be an integer between 0 and 100") -> None:
        super().__init__(message)


class NotAuthorized(GameError):
    """Non-host attempted a host-only action."""


class InvalidStateTransition(GameError):
    """Action is not allowed in the room's current game state."""


class InvalidEvent(GameError):
    """Malformed or unknown event envelope."""
