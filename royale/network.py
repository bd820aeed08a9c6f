"""Wire packets and the parser that turns raw frames into resolved packets.

Parsing happens in two stages. The raw frame is decoded with orjson and
validated against a pydantic discriminated union of the packets allowed in the
given direction. The validated message is then resolved against the endpoint's
in-memory game: board ids become :class:`Board` objects, cell positions become
:class:`Cell` objects and player ids become :class:`Player` objects. Both
stages fail closed.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

import orjson
from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr, TypeAdapter, ValidationError

from royale.board import Board
from royale.cell import Cell
from royale.endpoint import Endpoint
from royale.errors import (
    GameStateError,
    OutOfBoundsError,
    PacketValidationError,
    ParserReentryError,
    RoyaleError,
    UnresolvedReferenceError,
)
from royale.game import Game
from royale.player import Player, PlayerChange
from royale.schemas import (
    BoardState,
    CellLetter,
    GameState,
    GameStatusState,
    Number,
    PlayerState,
    WireModel,
)
from royale.types import CellChange, CellStatus, Direction, GameChange, Position, SelectionChange
from utils.logging_config import get_logger

logger = get_logger("network")


# Partial changes ---------------------------------------------------------------
class CellChangeModel(WireModel):
    letter: Optional[CellLetter] = None
    status: Optional[CellStatus] = None

    def to_change(self) -> CellChange:
        return CellChange(letter=self.letter, status=self.status)


class SelectionChangeModel(WireModel):
    cell: Optional[Position] = None
    direction: Optional[Direction] = None

    def to_change(self) -> SelectionChange:
        return SelectionChange(cell=self.cell, direction=self.direction)


class PlayerChangeModel(WireModel):
    board: Optional[BoardState] = None
    health: Optional[Number] = None
    max_health: Optional[Number] = None
    ready: Optional[StrictBool] = None

    def to_change(self) -> PlayerChange:
        """Build the change from the fields present in the packet.

        ``board: null`` is kept as an explicit board removal, an absent
        ``board`` key leaves the board untouched.
        """

        changes: dict[str, Any] = {}
        for field in self.model_fields_set:
            value = getattr(self, field)
            if field == "board":
                changes["board"] = Board.from_board_state(value) if value is not None else None
            elif value is not None:
                changes[field] = value
        return PlayerChange(**changes)


class GameChangeModel(WireModel):
    status: Optional[GameStatusState] = None

    def to_change(self) -> GameChange:
        return GameChange(status=self.status.type if self.status is not None else None)


# Messages ----------------------------------------------------------------------
class PlayerChangeMessage(WireModel):
    type: Literal["playerChange"]
    player_id: StrictStr
    player_change: PlayerChangeModel


class SelectionChangeMessage(WireModel):
    type: Literal["selectionChange"]
    board_id: StrictStr
    selection_change: Optional[SelectionChangeModel]


class CellChangeMessage(WireModel):
    type: Literal["cellChange"]
    board_id: StrictStr
    cell_position: Position
    cell_change: CellChangeModel


class InitMessage(WireModel):
    type: Literal["init"]
    player_id: StrictStr
    game_state: GameState


class GameChangeMessage(WireModel):
    type: Literal["gameChange"]
    game_change: GameChangeModel


class PlayerJoinMessage(WireModel):
    type: Literal["playerJoin"]
    player_state: PlayerState


class PlayerLeaveMessage(WireModel):
    type: Literal["playerLeave"]
    player_id: StrictStr


class ReadyMessage(WireModel):
    type: Literal["ready"]
    player_id: StrictStr


class RequestNewBoardMessage(WireModel):
    type: Literal["requestNewBoard"]
    player_id: StrictStr


ClientToServerMessage = Annotated[
    Union[
        PlayerChangeMessage,
        SelectionChangeMessage,
        CellChangeMessage,
        ReadyMessage,
        RequestNewBoardMessage,
    ],
    Field(discriminator="type"),
]

ServerToClientMessage = Annotated[
    Union[
        PlayerChangeMessage,
        SelectionChangeMessage,
        CellChangeMessage,
        InitMessage,
        GameChangeMessage,
        PlayerJoinMessage,
        PlayerLeaveMessage,
    ],
    Field(discriminator="type"),
]

CLIENT_TO_SERVER = TypeAdapter(ClientToServerMessage)
SERVER_TO_CLIENT = TypeAdapter(ServerToClientMessage)


# Resolved packets --------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class PlayerChangePacket:
    player: Player
    player_change: PlayerChange


@dataclass(frozen=True, slots=True)
class SelectionChangePacket:
    board: Board
    selection_change: Optional[SelectionChange]


@dataclass(frozen=True, slots=True)
class CellChangePacket:
    cell: Cell
    cell_change: CellChange


@dataclass(frozen=True, slots=True)
class ReadyPacket:
    player: Player


@dataclass(frozen=True, slots=True)
class RequestNewBoardPacket:
    player: Player


@dataclass(frozen=True, slots=True)
class InitPacket:
    player_id: str
    game_state: GameState


@dataclass(frozen=True, slots=True)
class GameChangePacket:
    game_change: GameChange


@dataclass(frozen=True, slots=True)
class PlayerJoinPacket:
    player_state: PlayerState


@dataclass(frozen=True, slots=True)
class PlayerLeavePacket:
    player_id: str


ClientToServerPacket = Union[
    PlayerChangePacket,
    SelectionChangePacket,
    CellChangePacket,
    ReadyPacket,
    RequestNewBoardPacket,
]

ServerToClientPacket = Union[
    PlayerChangePacket,
    SelectionChangePacket,
    CellChangePacket,
    InitPacket,
    GameChangePacket,
    PlayerJoinPacket,
    PlayerLeavePacket,
]


# Parse context -----------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class PlayerSender:
    """Packet sent by the connected player ``player_id``."""

    player_id: str


@dataclass(frozen=True, slots=True)
class ServerSender:
    """Packet sent by the authoritative server."""


Sender = Union[PlayerSender, ServerSender]


@dataclass(frozen=True, slots=True)
class ParseContext:
    sender: Sender


class Network:
    """Packet parser bound to one endpoint.

    Only one parse may be in progress per network; a nested call raises
    :class:`ParserReentryError`.
    """

    def __init__(self, endpoint: Endpoint) -> None:
        self.endpoint = endpoint
        self._context: Optional[ParseContext] = None

    @property
    def parsing(self) -> bool:
        return self._context is not None

    def parse_client_to_server(self, raw: Union[str, bytes], context: ParseContext) -> ClientToServerPacket:
        return self._parse(CLIENT_TO_SERVER, raw, context)

    def parse_server_to_client(self, raw: Union[str, bytes], context: ParseContext) -> ServerToClientPacket:
        return self._parse(SERVER_TO_CLIENT, raw, context)

    def _parse(self, adapter: TypeAdapter, raw: Union[str, bytes], context: ParseContext) -> Any:
        if self._context is not None:
            raise ParserReentryError("A packet is already being parsed on this network")

        self._context = context
        try:
            try:
                data = orjson.loads(raw)
            except orjson.JSONDecodeError as exc:
                raise PacketValidationError(f"Packet is not valid JSON: {exc}") from exc

            try:
                message = adapter.validate_python(data)
            except ValidationError as exc:
                raise PacketValidationError(
                    f"Packet matches no known shape ({exc.error_count()} errors)"
                ) from exc

            logger.debug("Parsing %s packet from %s", message.type, context.sender)
            try:
                return self._resolve(message)
            except (PacketValidationError, ParserReentryError):
                raise
            except RoyaleError as exc:
                raise PacketValidationError(f"Invalid {message.type} packet: {exc}") from exc
        finally:
            self._context = None

    # Resolution ------------------------------------------------------------------
    def _game(self) -> Game:
        try:
            return self.endpoint.require_game()
        except GameStateError as exc:
            raise UnresolvedReferenceError(f"No game to resolve packet references against: {exc}") from exc

    def _sender_player_id(self) -> Optional[str]:
        sender = self._context.sender
        return sender.player_id if isinstance(sender, PlayerSender) else None

    def _resolve_player(self, player_id: str) -> Player:
        sender_id = self._sender_player_id()
        if sender_id is not None and player_id != sender_id:
            raise UnresolvedReferenceError(f"Player {sender_id} cannot act as player {player_id}")

        player = self._game().players.get(player_id)
        if player is None:
            raise UnresolvedReferenceError(f"No player with id {player_id}")
        return player

    def _resolve_board(self, board_id: str) -> Board:
        sender_id = self._sender_player_id()
        if sender_id is not None:
            own_board = self._resolve_player(sender_id).board
            if own_board is None or own_board.id != board_id:
                raise UnresolvedReferenceError(f"Board {board_id} is not the board of player {sender_id}")
            return own_board

        board = self._game().get_board_by_id(board_id)
        if board is None:
            raise UnresolvedReferenceError(f"No board with id {board_id}")
        return board

    def _resolve(self, message: Any) -> Any:
        if isinstance(message, PlayerChangeMessage):
            return PlayerChangePacket(
                player=self._resolve_player(message.player_id),
                player_change=message.player_change.to_change(),
            )

        if isinstance(message, SelectionChangeMessage):
            change = message.selection_change
            return SelectionChangePacket(
                board=self._resolve_board(message.board_id),
                selection_change=change.to_change() if change is not None else None,
            )

        if isinstance(message, CellChangeMessage):
            board = self._resolve_board(message.board_id)
            position = message.cell_position
            try:
                cell = board.cell_at(position.x, position.y)
            except OutOfBoundsError as exc:
                raise UnresolvedReferenceError(str(exc)) from exc
            return CellChangePacket(cell=cell, cell_change=message.cell_change.to_change())

        if isinstance(message, ReadyMessage):
            return ReadyPacket(player=self._resolve_player(message.player_id))

        if isinstance(message, RequestNewBoardMessage):
            return RequestNewBoardPacket(player=self._resolve_player(message.player_id))

        if isinstance(message, InitMessage):
            return InitPacket(player_id=message.player_id, game_state=message.game_state)

        if isinstance(message, GameChangeMessage):
            return GameChangePacket(game_change=message.game_change.to_change())

        if isinstance(message, PlayerJoinMessage):
            return PlayerJoinPacket(player_state=message.player_state)

        if isinstance(message, PlayerLeaveMessage):
            return PlayerLeavePacket(player_id=message.player_id)

        raise PacketValidationError(f"Unhandled packet type {message.type!r}")


# Close reasons -----------------------------------------------------------------
NORMAL_CLOSURE = 1000
GOING_AWAY = 1001


class CloseCode(str, Enum):
    INVALID_PACKET = "INVALID_PACKET"
    GAME_NOT_IN_LOBBY = "GAME_NOT_IN_LOBBY"
    UNKNOWN = "UNKNOWN"
    USER_DISCONNECTED = "USER_DISCONNECTED"


class CloseReason(BaseModel):
    """JSON payload of a close frame, ``{"error": CODE}``."""

    model_config = ConfigDict(frozen=True)

    error: StrictStr


def close_reason(code: CloseCode) -> str:
    """Close-frame reason carrying ``code``."""

    return orjson.dumps({"error": code.value}).decode()


def parse_close_reason(code: Optional[int], reason: str) -> CloseReason:
    """Interpret a received close frame; unreadable reasons map to ``UNKNOWN``."""

    if code == GOING_AWAY:
        return CloseReason(error=CloseCode.USER_DISCONNECTED.value)
    try:
        return CloseReason.model_validate(orjson.loads(reason))
    except (orjson.JSONDecodeError, ValidationError):
        logger.error("Failed to parse close reason %r", reason)
        return CloseReason(error=CloseCode.UNKNOWN.value)


def encode_packet(packet: dict) -> str:
    """Serialize an outbound packet to a text frame."""

    return orjson.dumps(packet).decode()


__all__ = [
    "CLIENT_TO_SERVER",
    "GOING_AWAY",
    "NORMAL_CLOSURE",
    "SERVER_TO_CLIENT",
    "CellChangePacket",
    "CloseCode",
    "CloseReason",
    "ClientToServerPacket",
    "GameChangePacket",
    "InitPacket",
    "Network",
    "ParseContext",
    "PlayerChangePacket",
    "PlayerJoinPacket",
    "PlayerLeavePacket",
    "PlayerSender",
    "ReadyPacket",
    "RequestNewBoardPacket",
    "SelectionChangePacket",
    "ServerSender",
    "ServerToClientPacket",
    "close_reason",
    "encode_packet",
    "parse_close_reason",
]
