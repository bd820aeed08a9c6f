"""Game session: players, status state machine, rules and authority timers."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Dict, Optional

from apscheduler.schedulers.base import BaseScheduler

from royale.endpoint import Announce, Endpoint
from royale.errors import GameStateError
from royale.player import Player, PlayerChange
from royale.schemas import GameState, GameStatusState, KnownLetter
from royale.ticker import Ticker
from royale.types import GAME_STATUS_ORDER, CellChange, CellStatus, GameChange, GameStatus
from utils.logging_config import get_logger

if TYPE_CHECKING:  # pragma: no cover - used only for typing
    from royale.board import Board
    from royale.cell import Cell

logger = get_logger("game")

DEFAULT_TICK_INTERVAL = 0.1


@dataclass(frozen=True, slots=True)
class HealthDrainRule:
    """Every ``period`` seconds of play, each player loses ``amount`` health."""

    amount: float = 1
    period: float = 3


@dataclass(frozen=True, slots=True)
class GameRules:
    mark_correct_words_on_fill: bool = True
    time_health_drain: HealthDrainRule = field(default_factory=HealthDrainRule)


class Game:
    """Shared state of one session, synchronised through ``endpoint``."""

    def __init__(
        self,
        *,
        endpoint: Endpoint,
        rules: Optional[GameRules] = None,
        scheduler: Optional[BaseScheduler] = None,
        clock: Callable[[], float] = time.monotonic,
        tick_interval: float = DEFAULT_TICK_INTERVAL,
    ) -> None:
        self.endpoint = endpoint
        self.rules = rules or GameRules()
        self.players: Dict[str, Player] = {}
        self.clock = clock
        self._status = GameStatus.LOBBY
        self.started_playing_at: Optional[float] = None
        self.last_health_drain_at: Optional[float] = None
        self._ticker: Optional[Ticker] = None
        if scheduler is not None:
            self._ticker = Ticker(
                scheduler,
                self._playing_update,
                interval=tick_interval,
                name=f"game-tick-{id(self)}",
            )

    @classmethod
    def from_game_state(cls, state: GameState, endpoint: Endpoint) -> "Game":
        game = cls(endpoint=endpoint)
        for player_state in state.player_states:
            game.add_player(Player.from_player_state(player_state, game))
        game.change(GameChange(status=state.status.type), announce=False)
        return game

    # Status ----------------------------------------------------------------------
    @property
    def status(self) -> GameStatus:
        return self._status

    def _set_status(self, new_status: GameStatus) -> None:
        old_status = self._status
        if old_status is new_status:
            return
        if GAME_STATUS_ORDER.index(new_status) < GAME_STATUS_ORDER.index(old_status):
            raise GameStateError(f"Cannot go from {old_status.value} back to {new_status.value}")

        self._status = new_status
        logger.info("Game status %s -> %s", old_status.value, new_status.value)

        if old_status is GameStatus.PLAYING and self._ticker is not None:
            self._ticker.cancel()

        if new_status is GameStatus.PLAYING:
            self.started_playing_at = self.clock()
            self.last_health_drain_at = self.started_playing_at
            if self.endpoint.is_authority() and self._ticker is not None:
                self._ticker.start()

    @property
    def time_playing(self) -> float:
        if self.started_playing_at is None:
            return 0.0
        return self.clock() - self.started_playing_at

    def change(self, change: GameChange, *, announce: Announce) -> None:
        if change.status is not None:
            self._set_status(GameStatus(change.status))

        if announce:
            self.endpoint.dispatch({"type": "gameChange", "gameChange": change.to_dict()}, announce)

    # Players ---------------------------------------------------------------------
    def add_player(self, player: Player) -> None:
        self.players[player.id] = player

    def remove_player(self, player_id: str) -> Optional[Player]:
        return self.players.pop(player_id, None)

    def get_board_by_id(self, board_id: str) -> Optional["Board"]:
        for player in self.players.values():
            if player.board is not None and player.board.id == board_id:
                return player.board
        return None

    def game_state(self, *, include_answers: bool) -> GameState:
        return GameState(
            status=GameStatusState(type=self._status),
            player_states=[
                player.player_state(include_answers=include_answers) for player in self.players.values()
            ],
        )

    # Handlers --------------------------------------------------------------------
    def on_player_change(self, player: Player, change: PlayerChange) -> None:
        if not self.endpoint.is_authority():
            return
        if self._status is not GameStatus.LOBBY or "ready" not in change:
            return

        if all(other.ready for other in self.players.values()):
            logger.info("All %d players ready, starting game", len(self.players))
            self.endpoint.start_game()

    def on_cell_change(self, cell: "Cell") -> None:
        if not self.rules.mark_correct_words_on_fill or not self.endpoint.is_authority():
            return

        for word in cell.words.values():
            if word is None:
                continue

            cells = list(word.cells())
            all_correct = True
            any_unmarked = False
            for word_cell in cells:
                correct = word_cell.correct_letter
                if not isinstance(correct, KnownLetter):
                    raise GameStateError(
                        f"Cell ({word_cell.x}, {word_cell.y}) has no known correct letter"
                    )
                if word_cell.letter != correct.letter:
                    all_correct = False
                if word_cell.status is not CellStatus.KNOWN_CORRECT:
                    any_unmarked = True

            if all_correct and any_unmarked:
                logger.debug("Word %s %s solved, marking cells", word.label, word.direction.value)
                for word_cell in cells:
                    word_cell.change(
                        CellChange(letter=word_cell.letter, status=CellStatus.KNOWN_CORRECT),
                        announce=True,
                        call_handlers=False,
                    )

    def _playing_update(self) -> None:
        """Health-drain tick, run by the ticker while the game is playing."""

        if self._status is not GameStatus.PLAYING or not self.endpoint.is_authority():
            return

        drain = self.rules.time_health_drain
        if drain.amount <= 0 or self.last_health_drain_at is None:
            return

        if self.clock() - self.last_health_drain_at < drain.period:
            return

        self.last_health_drain_at += drain.period
        for player in list(self.players.values()):
            player.change(
                PlayerChange(health=player.health - drain.amount),
                allow="all",
                announce=True,
            )


__all__ = ["DEFAULT_TICK_INTERVAL", "Game", "GameRules", "HealthDrainRule"]
