"""Authoritative endpoint: owns the game and reconciles every player change.

The server is transport agnostic. The socket layer opens a session per
connection with a ``send`` callable (text frames) and a ``close`` callable
(close code and reason), feeds inbound frames to :meth:`Server.handle_message`
and reports disconnects through :meth:`Server.close_session`.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union
from uuid import uuid4

from apscheduler.schedulers.base import BaseScheduler

from royale.board import Board
from royale.endpoint import AnnounceOptions, Endpoint, EndpointRole
from royale.errors import (
    BoardOwnershipError,
    GameStateError,
    InvalidLetterError,
    PacketValidationError,
    PermissionDeniedError,
    RoyaleError,
    SelectionError,
)
from royale.game import DEFAULT_TICK_INTERVAL, Game, GameRules
from royale.network import (
    NORMAL_CLOSURE,
    CellChangePacket,
    CloseCode,
    Network,
    ParseContext,
    PlayerChangePacket,
    PlayerSender,
    ReadyPacket,
    RequestNewBoardPacket,
    SelectionChangePacket,
    close_reason,
    encode_packet,
)
from royale.player import Player, PlayerChange
from royale.types import GameChange, GameStatus
from utils.logging_config import get_logger, logging_context
from utils.puzzle_bank import PuzzleBank

logger = get_logger("server")

# Errors caused by what a client sent rather than by the server itself.
CLIENT_FAULTS = (
    PacketValidationError,
    PermissionDeniedError,
    SelectionError,
    InvalidLetterError,
    BoardOwnershipError,
)


class ClientError(RoyaleError):
    """Raised when a client must be disconnected with a coded reason."""

    def __init__(self, close_code: CloseCode, message: str) -> None:
        super().__init__(f"{close_code.value}: {message}", code=close_code.value)
        self.close_code = close_code


SendText = Callable[[str], Any]
CloseConnection = Callable[[int, str], Any]


@dataclass(slots=True)
class PlayerSession:
    """One connected player and the callables reaching its socket."""

    player_id: str
    send: SendText
    close: CloseConnection
    remote: str = "-"
    puzzle_index: Optional[int] = None
    closed: bool = False


class Server(Endpoint):
    """Single source of truth for one game."""

    role = EndpointRole.AUTHORITY

    def __init__(
        self,
        *,
        puzzle_bank: Optional[PuzzleBank] = None,
        rules: Optional[GameRules] = None,
        scheduler: Optional[BaseScheduler] = None,
        clock: Callable[[], float] = time.monotonic,
        tick_interval: float = DEFAULT_TICK_INTERVAL,
        id_factory: Callable[[], str] = lambda: str(uuid4()),
    ) -> None:
        self.puzzle_bank = puzzle_bank or PuzzleBank()
        self.rules = rules or GameRules()
        self.scheduler = scheduler
        self.clock = clock
        self.tick_interval = tick_interval
        self.id_factory = id_factory
        self.network = Network(self)
        self.sessions: Dict[str, PlayerSession] = {}
        self._game = self._new_game()

    def _new_game(self) -> Game:
        return Game(
            endpoint=self,
            rules=self.rules,
            scheduler=self.scheduler,
            clock=self.clock,
            tick_interval=self.tick_interval,
        )

    @property
    def game(self) -> Game:
        return self._game

    # Transport -------------------------------------------------------------------
    def send_to(self, session: PlayerSession, packet: Dict[str, Any]) -> None:
        if session.closed:
            return
        session.send(encode_packet(packet))

    def announce(self, packet: Dict[str, Any], *, except_player_id: Optional[str] = None) -> None:
        text = encode_packet(packet)
        for session in list(self.sessions.values()):
            if session.player_id == except_player_id or session.closed:
                continue
            session.send(text)

    def _disconnect(self, session: PlayerSession, code: CloseCode) -> None:
        if session.closed:
            return
        session.closed = True
        session.close(NORMAL_CLOSURE, close_reason(code))

    # Session lifecycle -----------------------------------------------------------
    def open_session(
        self,
        send: SendText,
        close: CloseConnection,
        *,
        remote: str = "-",
    ) -> Optional[PlayerSession]:
        """Register a new connection; returns ``None`` when it was refused."""

        if self._game.status is not GameStatus.LOBBY:
            logger.info("Refusing connection from %s: game is %s", remote, self._game.status.value)
            close(NORMAL_CLOSURE, close_reason(CloseCode.GAME_NOT_IN_LOBBY))
            return None

        session = PlayerSession(player_id=self.id_factory(), send=send, close=close, remote=remote)
        player = Player(game=self._game, id=session.player_id)
        self._game.add_player(player)
        self.sessions[session.player_id] = session

        with logging_context(player_id=session.player_id):
            logger.info("Connection from %s, %d players in lobby", remote, len(self._game.players))

        self.send_to(
            session,
            {
                "type": "init",
                "playerId": player.id,
                "gameState": self._game.game_state(include_answers=False).to_wire(),
            },
        )
        self.announce(
            {
                "type": "playerJoin",
                "playerState": player.player_state(include_answers=False).to_wire(),
            }
        )
        return session

    def close_session(self, session: PlayerSession) -> None:
        """Forget a disconnected player and tell everyone else."""

        session.closed = True
        if self.sessions.pop(session.player_id, None) is None:
            return

        self._game.remove_player(session.player_id)
        with logging_context(player_id=session.player_id):
            logger.info("Connection closed from %s", session.remote)

        self.announce({"type": "playerLeave", "playerId": session.player_id})

        if not self.sessions and self._game.status is not GameStatus.LOBBY:
            self._reset_game()

    def _reset_game(self) -> None:
        logger.info("Last player left, opening a new lobby")
        if self._game.status is GameStatus.PLAYING:
            self._game.change(GameChange(status=GameStatus.ENDED), announce=False)
        self._game = self._new_game()

    # Inbound packets -------------------------------------------------------------
    def handle_message(self, session: PlayerSession, raw: Union[str, bytes]) -> None:
        """Apply one inbound frame, closing the connection on client faults."""

        player = self._game.players.get(session.player_id)
        board_id = player.board.id if player is not None and player.board is not None else None
        with logging_context(player_id=session.player_id, board_id=board_id):
            try:
                self._handle_packet(session, raw)
            except ClientError as exc:
                logger.warning("Disconnecting client: %s", exc)
                self._disconnect(session, exc.close_code)

    def _handle_packet(self, session: PlayerSession, raw: Union[str, bytes]) -> None:
        if session.closed:
            return
        if not isinstance(raw, str):
            raise ClientError(CloseCode.INVALID_PACKET, "Received non-text frame")

        context = ParseContext(sender=PlayerSender(player_id=session.player_id))
        try:
            packet = self.network.parse_client_to_server(raw, context)
        except PacketValidationError as exc:
            raise ClientError(CloseCode.INVALID_PACKET, str(exc)) from exc

        logger.debug("Received %s", type(packet).__name__)
        echo = AnnounceOptions(except_player_id=session.player_id)

        try:
            if isinstance(packet, PlayerChangePacket):
                packet.player.change(packet.player_change, allow=("ready",), announce=echo)
            elif isinstance(packet, SelectionChangePacket):
                packet.board.change_selection(packet.selection_change, announce=echo)
            elif isinstance(packet, CellChangePacket):
                packet.cell.change(packet.cell_change, announce=echo)
            elif isinstance(packet, ReadyPacket):
                packet.player.change(PlayerChange(ready=True), allow=("ready",), announce=True)
            elif isinstance(packet, RequestNewBoardPacket):
                self.assign_new_board(session)
            else:
                raise ClientError(CloseCode.INVALID_PACKET, f"Unhandled packet {type(packet).__name__}")
        except CLIENT_FAULTS as exc:
            raise ClientError(CloseCode.INVALID_PACKET, str(exc)) from exc

    # Authority operations --------------------------------------------------------
    def _give_board(self, player: Player, except_index: Optional[int] = None) -> int:
        index, puzzle = self.puzzle_bank.random_puzzle(except_index)
        player.change(PlayerChange(board=Board.from_puzzle(puzzle)), allow="all", announce=True)
        return index

    def assign_new_board(self, session: PlayerSession) -> None:
        """Give the session's player a puzzle other than the current one."""

        player = self._game.players.get(session.player_id)
        if player is None:
            raise GameStateError(f"No player for session {session.player_id}")
        session.puzzle_index = self._give_board(player, session.puzzle_index)
        logger.info("Assigned puzzle %d", session.puzzle_index)

    def start_game(self) -> None:
        if self._game.status is not GameStatus.LOBBY:
            raise GameStateError("Game is not in lobby")

        for player in list(self._game.players.values()):
            index = self._give_board(player)
            session = self.sessions.get(player.id)
            if session is not None:
                session.puzzle_index = index

        self._game.change(GameChange(status=GameStatus.PLAYING), announce=True)
        logger.info("Game started with %d players", len(self._game.players))


__all__ = [
    "CLIENT_FAULTS",
    "ClientError",
    "PlayerSession",
    "Server",
]
