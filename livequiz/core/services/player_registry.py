"""Service for resolving player identity across connection churn.

Players are keyed by display name. A separate mapping binds the current
live connection handle to that name, so a reconnect only rebinds the
handle and never recreates the player record. Dropped players wait in a
provisional disconnect set until they come back or their grace period
expires.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
import logging

from livequiz.core.errors import CommandRejected
from livequiz.core.models import DisconnectRecord, Player

logger = logging.getLogger(__name__)


class JoinResolution(str, Enum):
    CREATED = "created"
    REBOUND = "rebound"
    RESTORED = "restored"
    UNCHANGED = "unchanged"


@dataclass(slots=True)
class JoinOutcome:
    """Result of mapping a join request onto exactly one player."""

    player: Player
    resolution: JoinResolution
    retired_connection: str | None = None
    released: DisconnectRecord | None = None


class PlayerRegistry:
    """Maps display names to players and live connections to names."""

    def __init__(self) -> None:
        self._players: dict[str, Player] = {}
        self._connections: dict[str, str] = {}
        self._disconnected: dict[str, DisconnectRecord] = {}
        self._join_counter: int = 0
        self._token_counter: int = 0

    def resolve_join(
        self,
        name: str,
        connection_id: str,
        *,
        allow_new: bool,
        now: datetime,
    ) -> JoinOutcome:
        """Bind ``connection_id`` to the player called ``name``.

        Raises ``CommandRejected`` when ``name`` is unknown and new players
        are not admitted.
        """
        player = self._players.get(name)
        if player is None and not allow_new:
            raise CommandRejected("game_in_progress", "Game already in progress")

        released: DisconnectRecord | None = None
        bound_name = self._connections.get(connection_id)
        if bound_name is not None and bound_name != name:
            # The same connection switches identity; the old player drops.
            released = self.release_connection(connection_id, now)

        if player is None:
            self._join_counter += 1
            player = Player(name=name, join_order=self._join_counter, connection_id=connection_id)
            self._players[name] = player
            self._connections[connection_id] = name
            logger.info("Player %s joined", name)
            return JoinOutcome(player=player, resolution=JoinResolution.CREATED, released=released)

        record = self._disconnected.pop(name, None)
        if record is not None:
            if record.timer is not None:
                record.timer.cancel()
            player.connection_id = connection_id
            self._connections[connection_id] = name
            logger.info("Player %s reconnected after disconnect (score %d)", name, player.score)
            return JoinOutcome(player=player, resolution=JoinResolution.RESTORED, released=released)

        if player.connection_id == connection_id:
            return JoinOutcome(player=player, resolution=JoinResolution.UNCHANGED, released=released)

        retired = player.connection_id
        if retired is not None:
            self._connections.pop(retired, None)
        player.connection_id = connection_id
        self._connections[connection_id] = name
        logger.info("Player %s rebound from %s to %s", name, retired, connection_id)
        return JoinOutcome(
            player=player,
            resolution=JoinResolution.REBOUND,
            retired_connection=retired,
            released=released,
        )

    def release_connection(self, connection_id: str, now: datetime) -> DisconnectRecord | None:
        """Detach a dropped connection; its player enters the provisional set.

        Handles that were retired by a rebind, or never joined, are ignored.
        """
        name = self._connections.pop(connection_id, None)
        if name is None:
            return None
        player = self._players[name]
        player.connection_id = None
        self._token_counter += 1
        record = DisconnectRecord(player_name=name, disconnected_at=now, token=self._token_counter)
        self._disconnected[name] = record
        logger.info("Player %s disconnected temporarily", name)
        return record

    def attach_timer(self, name: str, token: int, timer: object) -> None:
        record = self._disconnected.get(name)
        if record is not None and record.token == token:
            record.timer = timer

    def expire(self, name: str, token: int) -> Player | None:
        """Remove a player whose grace period ran out.

        Returns None when the player reconnected (or dropped again with a
        newer record) in the meantime.
        """
        record = self._disconnected.get(name)
        if record is None or record.token != token:
            return None
        del self._disconnected[name]
        player = self._players.pop(name)
        logger.info("Player %s removed after grace period", name)
        return player

    def clear(self) -> None:
        for record in self._disconnected.values():
            if record.timer is not None:
                record.timer.cancel()
        self._players.clear()
        self._connections.clear()
        self._disconnected.clear()
        self._join_counter = 0

    def get(self, name: str) -> Player | None:
        return self._players.get(name)

    def get_by_connection(self, connection_id: str) -> Player | None:
        name = self._connections.get(connection_id)
        if name is None:
            return None
        return self._players.get(name)

    def get_players(self) -> list[Player]:
        """Return all players in join order, connected or not."""
        return sorted(self._players.values(), key=lambda p: p.join_order)

    def get_player_count(self) -> int:
        return len(self._players)

    def is_disconnected(self, name: str) -> bool:
        return name in self._disconnected

    def get_disconnect_record(self, name: str) -> DisconnectRecord | None:
        return self._disconnected.get(name)
