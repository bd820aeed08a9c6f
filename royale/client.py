"""Participant endpoint mirroring the server's game state.

:class:`Client` is transport agnostic: it writes outbound frames through a
``send`` callable and is fed inbound frames and connection events by the
socket layer. :func:`run_websocket_client` is that socket layer for the
``websockets`` library.
"""

from __future__ import annotations

import asyncio
from contextlib import suppress
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosedError

from royale.endpoint import Endpoint, EndpointRole
from royale.errors import ProtocolError
from royale.game import Game
from royale.network import (
    GOING_AWAY,
    CellChangePacket,
    CloseReason,
    GameChangePacket,
    InitPacket,
    Network,
    ParseContext,
    PlayerChangePacket,
    PlayerJoinPacket,
    PlayerLeavePacket,
    SelectionChangePacket,
    ServerSender,
    encode_packet,
    parse_close_reason,
)
from royale.player import Player, PlayerChange
from utils.logging_config import get_logger, logging_context

logger = get_logger("client")


class ConnectionStatus(str, Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    IN_GAME = "inGame"
    DISCONNECTED = "disconnected"


@dataclass(frozen=True, slots=True)
class Connection:
    status: ConnectionStatus
    game: Optional[Game] = None
    player_id: Optional[str] = None
    reason: Optional[CloseReason] = None


class Client(Endpoint):
    """Local mirror of the game, sending this player's intents to the server."""

    role = EndpointRole.PARTICIPANT

    def __init__(self, send: Callable[[str], Any], *, close: Optional[Callable[[], Any]] = None) -> None:
        self._send = send
        self._close = close
        self.network = Network(self)
        self.connection = Connection(status=ConnectionStatus.CONNECTING)

    def __repr__(self) -> str:
        return f"Client(status={self.connection.status.value}, player_id={self.connection.player_id!r})"

    @property
    def game(self) -> Optional[Game]:
        if self.connection.status is not ConnectionStatus.IN_GAME:
            return None
        return self.connection.game

    @property
    def this_player(self) -> Optional[Player]:
        game = self.game
        if game is None:
            return None
        return game.players.get(self.connection.player_id)

    @property
    def all_players(self) -> List[Player]:
        game = self.game
        return list(game.players.values()) if game is not None else []

    @property
    def other_players(self) -> List[Player]:
        return [player for player in self.all_players if player.id != self.connection.player_id]

    # Outbound --------------------------------------------------------------------
    def announce(self, packet: Dict[str, Any], *, except_player_id: Optional[str] = None) -> None:
        if except_player_id is not None:
            raise ProtocolError("A client announces to the server only; except_player_id is not allowed")
        self._send(encode_packet(packet))

    def toggle_ready(self) -> None:
        player = self.this_player
        if player is None:
            raise ProtocolError("Not in a game")
        player.change(PlayerChange(ready=not player.ready), allow="all", announce=True)

    def request_new_board(self) -> None:
        if self.connection.status is not ConnectionStatus.IN_GAME:
            raise ProtocolError("Not in a game")
        self._send(encode_packet({"type": "requestNewBoard", "playerId": self.connection.player_id}))

    def disconnect(self) -> None:
        if self._close is None:
            raise ProtocolError("Client has no connection to close")
        self._close()

    # Connection events -----------------------------------------------------------
    def on_open(self) -> None:
        logger.info("Connected to the server")
        self.connection = Connection(status=ConnectionStatus.CONNECTED)

    def on_close(self, code: Optional[int], reason: str) -> None:
        close = parse_close_reason(code, reason)
        logger.info("Disconnected from the server (code=%s, error=%s)", code, close.error)
        self.connection = Connection(status=ConnectionStatus.DISCONNECTED, reason=close)

    def handle_message(self, raw: Union[str, bytes]) -> None:
        """Apply one packet from the server to the local game."""

        with logging_context(player_id=self.connection.player_id):
            self._handle_packet(raw)

    def _handle_packet(self, raw: Union[str, bytes]) -> None:
        packet = self.network.parse_server_to_client(raw, ParseContext(sender=ServerSender()))
        status = self.connection.status
        logger.debug("Received %s while %s", type(packet).__name__, status.value)

        if status is ConnectionStatus.CONNECTED and isinstance(packet, InitPacket):
            self.connection = Connection(
                status=ConnectionStatus.IN_GAME,
                game=Game.from_game_state(packet.game_state, self),
                player_id=packet.player_id,
            )
            return

        if status is ConnectionStatus.IN_GAME:
            game = self.connection.game
            if isinstance(packet, PlayerJoinPacket):
                if packet.player_state.id != self.connection.player_id:
                    game.add_player(Player.from_player_state(packet.player_state, game))
                return
            if isinstance(packet, PlayerLeavePacket):
                game.remove_player(packet.player_id)
                return
            if isinstance(packet, GameChangePacket):
                game.change(packet.game_change, announce=False)
                return
            if isinstance(packet, SelectionChangePacket):
                packet.board.change_selection(packet.selection_change, announce=False)
                return
            if isinstance(packet, CellChangePacket):
                packet.cell.change(packet.cell_change, announce=False)
                return
            if isinstance(packet, PlayerChangePacket):
                packet.player.change(packet.player_change, allow="all", announce=False)
                return

        raise ProtocolError(f"Unexpected {type(packet).__name__} while {status.value}")


async def _write_outbound(websocket: ClientConnection, outbound: "asyncio.Queue[Optional[str]]") -> None:
    while True:
        text = await outbound.get()
        if text is None:
            await websocket.close(GOING_AWAY)
            return
        await websocket.send(text)


async def run_websocket_client(
    url: str,
    *,
    on_client: Optional[Callable[[Client], Any]] = None,
) -> Client:
    """Connect to ``url`` and mirror the game until the connection closes.

    ``on_client`` receives the client before the connection is opened, so
    callers can keep a reference for sending input while this coroutine runs.
    """

    outbound: asyncio.Queue[Optional[str]] = asyncio.Queue()
    client = Client(outbound.put_nowait, close=lambda: outbound.put_nowait(None))
    if on_client is not None:
        on_client(client)

    async with connect(url) as websocket:
        client.on_open()
        writer = asyncio.create_task(_write_outbound(websocket, outbound))
        try:
            async for message in websocket:
                client.handle_message(message)
        except ConnectionClosedError as exc:
            logger.warning("Connection lost: %s", exc)
        finally:
            writer.cancel()
            with suppress(asyncio.CancelledError):
                await writer

    client.on_close(websocket.close_code, websocket.close_reason or "")
    return client


__all__ = ["Client", "Connection", "ConnectionStatus", "run_websocket_client"]
