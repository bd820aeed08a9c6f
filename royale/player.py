"""Session participants: board ownership, health and readiness."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Collection, Dict, Literal, Optional, Union

from royale.board import Board
from royale.endpoint import Announce
from royale.errors import BoardOwnershipError, PermissionDeniedError
from royale.schemas import PlayerState
from royale.types import GameStatus
from utils.logging_config import get_logger

if TYPE_CHECKING:  # pragma: no cover - used only for typing
    from royale.game import Game

logger = get_logger("player")

DEFAULT_MAX_HEALTH = 100

PLAYER_FIELDS = ("board", "health", "max_health", "ready")
WIRE_FIELD_NAMES = {"board": "board", "health": "health", "max_health": "maxHealth", "ready": "ready"}

Allow = Union[Literal["all"], Collection[str]]


class PlayerChange:
    """Partial change of a player.

    Only the keyword arguments actually passed are part of the change, so
    ``PlayerChange(board=None)`` removes the board while ``PlayerChange()``
    leaves it alone.
    """

    __slots__ = ("changes",)

    def __init__(self, **changes: Any) -> None:
        unknown = set(changes) - set(PLAYER_FIELDS)
        if unknown:
            raise TypeError(f"Unknown player fields: {', '.join(sorted(unknown))}")
        self.changes: Dict[str, Any] = changes

    def __repr__(self) -> str:
        return f"PlayerChange({', '.join(f'{key}={value!r}' for key, value in self.changes.items())})"

    def __contains__(self, field: str) -> bool:
        return field in self.changes

    def serialize(self) -> Dict[str, Any]:
        """Wire form of the change; boards are sent without their answers."""

        payload: Dict[str, Any] = {}
        for field, value in self.changes.items():
            if field == "board" and value is not None:
                value = value.board_state(include_answers=False).to_wire()
            payload[WIRE_FIELD_NAMES[field]] = value
        return payload


class Player:
    """A participant of a game, identified by an opaque string id."""

    def __init__(self, *, game: "Game", id: str) -> None:
        self.game = game
        self.id = id
        self._board: Optional[Board] = None
        self._max_health: float = DEFAULT_MAX_HEALTH
        self._health: float = DEFAULT_MAX_HEALTH
        self._ready = False

    def __repr__(self) -> str:
        return f"Player(id={self.id!r}, health={self._health}, ready={self._ready})"

    @classmethod
    def from_player_state(cls, state: PlayerState, game: "Game") -> "Player":
        player = cls(game=game, id=state.id)
        player.change(
            PlayerChange(
                board=Board.from_board_state(state.board_state) if state.board_state else None,
                max_health=state.max_health,
                health=state.health,
                ready=state.ready,
            ),
            allow="all",
            announce=False,
            call_handlers=False,
        )
        return player

    @property
    def board(self) -> Optional[Board]:
        return self._board

    @property
    def health(self) -> float:
        return self._health

    @property
    def max_health(self) -> float:
        return self._max_health

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def is_alive(self) -> bool:
        return self._health > 0

    def _set_health(self, value: float) -> None:
        self._health = max(0, min(self._max_health, value))

    def _set_board(self, board: Optional[Board]) -> None:
        if board is not None and board.player is not None and board.player is not self:
            raise BoardOwnershipError(f"Board {board.id} already belongs to player {board.player.id}")
        if self._board is not None:
            self._board._player = None
        self._board = board
        if board is not None:
            board._player = self

    def player_state(self, *, include_answers: bool) -> PlayerState:
        return PlayerState(
            id=self.id,
            board_state=self._board.board_state(include_answers=include_answers) if self._board else None,
            health=self._health,
            max_health=self._max_health,
            ready=self._ready,
        )

    def change(
        self,
        player_change: PlayerChange,
        *,
        allow: Allow,
        announce: Announce,
        call_handlers: bool = True,
    ) -> None:
        """Apply ``player_change`` if every field in it is allowed."""

        changes = player_change.changes
        if allow != "all":
            denied = [field for field in changes if field not in allow]
            if denied:
                raise PermissionDeniedError(f"Cannot change {', '.join(denied)}")

        was_alive = self.is_alive

        if "board" in changes:
            self._set_board(changes["board"])
        if "max_health" in changes:
            self._max_health = changes["max_health"]
            self._set_health(self._health)
        if "health" in changes:
            self._set_health(changes["health"])
        if "ready" in changes:
            self._ready = bool(changes["ready"])

        if announce:
            self.game.endpoint.dispatch(
                {
                    "type": "playerChange",
                    "playerId": self.id,
                    "playerChange": player_change.serialize(),
                },
                announce,
            )

        if call_handlers:
            self.game.on_player_change(self, player_change)

        if was_alive and not self.is_alive and self.game.status is GameStatus.PLAYING:
            logger.info("Player %s ran out of health", self.id)


__all__ = ["Allow", "DEFAULT_MAX_HEALTH", "Player", "PlayerChange"]
