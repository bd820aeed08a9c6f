import asyncio
import socket

import orjson
import pytest
import uvicorn

import app as app_module

from royale.board import Board
from royale.client import Client, ConnectionStatus, run_websocket_client
from royale.errors import PacketValidationError, ProtocolError
from royale.server import Server
from royale.types import CellChange, Direction, GameStatus, KeyEvent, Position, SelectionChange
from utils.puzzle_bank import PuzzleBank


def _player_state(player_id: str, *, ready: bool = False) -> dict:
    return {"id": player_id, "boardState": None, "health": 100, "maxHealth": 100, "ready": ready}


def _init(player_id: str = "p1", *players: dict) -> str:
    states = list(players) or [_player_state(player_id)]
    return orjson.dumps(
        {"type": "init", "playerId": player_id, "gameState": {"status": {"type": "lobby"}, "playerStates": states}}
    ).decode()


class Outbox:
    def __init__(self) -> None:
        self.frames: list[dict] = []
        self.close_calls = 0

    def send(self, text: str) -> None:
        self.frames.append(orjson.loads(text))

    def close(self) -> None:
        self.close_calls += 1


@pytest.fixture
def outbox() -> Outbox:
    return Outbox()


@pytest.fixture
def client(outbox) -> Client:
    client = Client(outbox.send, close=outbox.close)
    client.on_open()
    client.handle_message(_init("p1", _player_state("p1"), _player_state("p0", ready=True)))
    return client


def test_init_requires_open_connection(outbox) -> None:
    fresh = Client(outbox.send)
    assert fresh.connection.status is ConnectionStatus.CONNECTING

    with pytest.raises(ProtocolError):
        fresh.handle_message(_init())
    assert fresh.game is None


def test_init_enters_game(client) -> None:
    assert client.connection.status is ConnectionStatus.IN_GAME
    assert client.this_player.id == "p1"
    assert [player.id for player in client.other_players] == ["p0"]
    assert client.other_players[0].ready is True
    assert client.game.status is GameStatus.LOBBY


def test_second_init_is_a_protocol_error(client) -> None:
    with pytest.raises(ProtocolError):
        client.handle_message(_init())


def test_join_and_leave(client) -> None:
    client.handle_message(orjson.dumps({"type": "playerJoin", "playerState": _player_state("p1")}).decode())
    client.handle_message(orjson.dumps({"type": "playerJoin", "playerState": _player_state("p2")}).decode())
    assert [player.id for player in client.all_players] == ["p1", "p0", "p2"]

    client.handle_message('{"type": "playerLeave", "playerId": "p0"}')
    assert [player.id for player in client.other_players] == ["p2"]


def test_server_changes_are_applied(client, puzzle) -> None:
    state = Board.from_puzzle(puzzle).board_state(include_answers=False).to_wire()
    client.handle_message(
        orjson.dumps({"type": "playerChange", "playerId": "p1", "playerChange": {"board": state, "health": 80}}).decode()
    )
    board = client.this_player.board
    assert board.id == state["id"]
    assert client.this_player.health == 80

    client.handle_message(
        orjson.dumps(
            {
                "type": "cellChange",
                "boardId": board.id,
                "cellPosition": {"x": 1, "y": 0},
                "cellChange": {"letter": "A", "status": "knownCorrect"},
            }
        ).decode()
    )
    client.handle_message(
        orjson.dumps(
            {"type": "selectionChange", "boardId": board.id, "selectionChange": {"cell": {"x": 2, "y": 0}}}
        ).decode()
    )
    client.handle_message('{"type": "gameChange", "gameChange": {"status": {"type": "playing"}}}')

    assert board.cell_at(1, 0).letter == "A"
    assert board.cell_at(1, 0).status.value == "knownCorrect"
    assert board.selection.cell is board.cell_at(2, 0)
    assert client.game.status is GameStatus.PLAYING


def test_malformed_server_packet_raises(client) -> None:
    with pytest.raises(PacketValidationError):
        client.handle_message('{"type": "ready", "playerId": "p1"}')


def test_toggle_ready_sends_player_change(client, outbox) -> None:
    client.toggle_ready()
    client.toggle_ready()

    assert outbox.frames == [
        {"type": "playerChange", "playerId": "p1", "playerChange": {"ready": True}},
        {"type": "playerChange", "playerId": "p1", "playerChange": {"ready": False}},
    ]
    assert client.this_player.ready is False


def test_request_new_board(client, outbox) -> None:
    client.request_new_board()
    assert outbox.frames == [{"type": "requestNewBoard", "playerId": "p1"}]


def test_outbound_requires_game(outbox) -> None:
    fresh = Client(outbox.send)
    with pytest.raises(ProtocolError):
        fresh.toggle_ready()
    with pytest.raises(ProtocolError):
        fresh.request_new_board()
    with pytest.raises(ProtocolError):
        fresh.disconnect()


def test_client_cannot_exclude_recipients(client) -> None:
    with pytest.raises(ProtocolError):
        client.announce({"type": "ready", "playerId": "p1"}, except_player_id="p0")


def test_disconnect_and_close(client, outbox) -> None:
    client.disconnect()
    assert outbox.close_calls == 1

    client.on_close(1001, "")

    assert client.connection.status is ConnectionStatus.DISCONNECTED
    assert client.connection.reason.error == "USER_DISCONNECTED"
    assert client.game is None
    assert client.this_player is None
    assert client.all_players == []


def test_close_reason_from_server(client) -> None:
    client.on_close(1000, '{"error": "INVALID_PACKET"}')
    assert client.connection.reason.error == "INVALID_PACKET"


# In-memory session ---------------------------------------------------------------
def wire(server: Server) -> Client:
    holder = {}
    client = Client(lambda text: server.handle_message(holder["session"], text))
    client.on_open()
    holder["session"] = server.open_session(client.handle_message, client.on_close)
    return client


@pytest.fixture
def server(scheduler, clock, puzzle) -> Server:
    ids = iter(["p1", "p2", "p3"])
    return Server(
        puzzle_bank=PuzzleBank([puzzle]),
        scheduler=scheduler,
        clock=clock,
        id_factory=lambda: next(ids),
    )


def test_clients_mirror_the_server(server) -> None:
    first, second = wire(server), wire(server)
    assert [player.id for player in first.all_players] == ["p1", "p2"]

    first.toggle_ready()
    second.toggle_ready()

    assert server.game.status is GameStatus.PLAYING
    for client in (first, second):
        assert client.game.status is GameStatus.PLAYING
        assert {player.id: player.board.id for player in client.all_players} == {
            player.id: player.board.id for player in server.game.players.values()
        }

    board = first.this_player.board
    board.change_selection(SelectionChange(cell=Position(x=1, y=1), direction=Direction.ACROSS), announce=True)
    board.handle_key_down(KeyEvent(key="x"))

    server_board = server.game.players["p1"].board
    mirrored = second.game.get_board_by_id(board.id)
    assert server_board.cell_at(1, 1).letter == "X"
    assert mirrored.cell_at(1, 1).letter == "X"
    assert server_board.selection.cell is server_board.cell_at(2, 1)
    assert mirrored.selection.cell is mirrored.cell_at(2, 1)


def test_solved_word_is_marked_on_the_client(server) -> None:
    client = wire(server)
    client.toggle_ready()
    board = client.this_player.board

    for x, letter in ((1, "A"), (2, "B"), (3, "C")):
        board.cell_at(x, 0).change(CellChange(letter=letter), announce=True)

    assert [board.cell_at(x, 0).status.value for x in (1, 2, 3)] == ["knownCorrect"] * 3


def test_refused_client_learns_the_reason(server) -> None:
    wire(server).toggle_ready()

    late = wire(server)

    assert late.connection.status is ConnectionStatus.DISCONNECTED
    assert late.connection.reason.error == "GAME_NOT_IN_LOBBY"


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


async def _wait_until(predicate, timeout: float = 5.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


def test_websocket_client_plays_against_running_app() -> None:
    port = _free_port()
    clients: list[Client] = []
    seen: dict = {}

    async def scenario() -> Client:
        config = uvicorn.Config(app_module.app, host="127.0.0.1", port=port, log_config=None, lifespan="on")
        server = uvicorn.Server(config)
        serve = asyncio.create_task(server.serve())
        try:
            await _wait_until(lambda: server.started)
            runner = asyncio.create_task(run_websocket_client(f"ws://127.0.0.1:{port}/game", on_client=clients.append))

            await _wait_until(lambda: bool(clients) and clients[0].connection.status is ConnectionStatus.IN_GAME)
            client = clients[0]
            client.toggle_ready()
            await _wait_until(
                lambda: client.game.status is GameStatus.PLAYING and client.this_player.board is not None
            )
            seen["status"] = client.game.status
            seen["words"] = len(client.this_player.board.words)

            client.disconnect()
            return await asyncio.wait_for(runner, 5)
        finally:
            server.should_exit = True
            await serve

    client = asyncio.run(scenario())

    assert seen["status"] is GameStatus.PLAYING
    assert seen["words"] > 0
    assert client.connection.status is ConnectionStatus.DISCONNECTED
    assert client.connection.reason.error == "USER_DISCONNECTED"
