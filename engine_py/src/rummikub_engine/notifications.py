"""
Notification hooks for out-of-band messages (e-mail, push and so on).

Delivery is not part of the engine; the room service calls a Notifier with
plain data after each committed change and the default implementation only
logs it.
"""

import logging
from typing import Any, Dict, List, Protocol

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def turn_started(self, room_code: str, player: Dict[str, Any], standings: List[Dict[str, Any]]) -> None: ...

    def queued_turn_autoplayed(self, room_code: str, outcome: Dict[str, Any]) -> None: ...

    def queued_turn_failed(self, room_code: str, outcome: Dict[str, Any]) -> None: ...

    def game_results(self, room_code: str, scores: List[Dict[str, Any]], end_reason: str) -> None: ...


class LoggingNotifier:
    """Notifier that writes every notification to the log."""

    def turn_started(self, room_code, player, standings):
        logger.info(f"[{room_code}] Turn started for {player['name']}")

    def queued_turn_autoplayed(self, room_code, outcome):
        logger.info(f"[{room_code}] Queued turn auto-played for {outcome['player_name']}")

    def queued_turn_failed(self, room_code, outcome):
        logger.info(
            f"[{room_code}] Queued turn for {outcome['player_name']} not played "
            f"({outcome['status']}): {outcome['reason']}"
        )

    def game_results(self, room_code, scores, end_reason):
        winner = scores[0]["name"] if scores else None
        logger.info(f"[{room_code}] Game over ({end_reason}), winner {winner}")


class RecordingNotifier:
    """Notifier that keeps every call in memory, in order."""

    def __init__(self):
        self.calls: List[tuple] = []

    def turn_started(self, room_code, player, standings):
        self.calls.append(("turn_started", room_code, player, standings))

    def queued_turn_autoplayed(self, room_code, outcome):
        self.calls.append(("queued_turn_autoplayed", room_code, outcome))

    def queued_turn_failed(self, room_code, outcome):
        self.calls.append(("queued_turn_failed", room_code, outcome))

    def game_results(self, room_code, scores, end_reason):
        self.calls.append(("game_results", room_code, scores, end_reason))

    def names(self) -> List[str]:
        return [call[0] for call in self.calls]
