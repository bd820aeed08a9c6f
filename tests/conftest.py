from __future__ import annotations

from typing import Any, Callable, Optional

import pytest

from royale.board import Board
from royale.endpoint import Endpoint, EndpointRole
from royale.game import Game, GameRules
from royale.player import Player, PlayerChange
from royale.types import Clue, Direction, Position, Puzzle

FIXTURE_ROWS = [" ABC ", "DEFGH", "IJKLM", "NOPQR", " STU "]
FIXTURE_CLUES = [
    (Direction.ACROSS, 1, 0, "1A"),
    (Direction.ACROSS, 0, 1, "4A"),
    (Direction.ACROSS, 0, 2, "6A"),
    (Direction.ACROSS, 0, 3, "7A"),
    (Direction.ACROSS, 1, 4, "8A"),
    (Direction.DOWN, 1, 0, "1D"),
    (Direction.DOWN, 2, 0, "2D"),
    (Direction.DOWN, 3, 0, "3D"),
    (Direction.DOWN, 0, 1, "4D"),
    (Direction.DOWN, 4, 1, "5D"),
]


def make_fixture_puzzle() -> Puzzle:
    return Puzzle(
        cell_letters=list(FIXTURE_ROWS),
        clues=[
            Clue(start=Position(x=x, y=y), direction=direction, text=text)
            for direction, x, y, text in FIXTURE_CLUES
        ],
    )


class RecordingEndpoint(Endpoint):
    """Endpoint that records announcements instead of sending them."""

    def __init__(self, role: EndpointRole = EndpointRole.PARTICIPANT) -> None:
        self.role = role
        self.announcements: list[tuple[dict[str, Any], Optional[str]]] = []
        self.start_calls = 0
        self._game: Optional[Game] = None

    @property
    def game(self) -> Optional[Game]:
        return self._game

    @game.setter
    def game(self, game: Game) -> None:
        self._game = game

    def announce(self, packet: dict[str, Any], *, except_player_id: Optional[str] = None) -> None:
        self.announcements.append((packet, except_player_id))

    def start_game(self) -> None:
        if not self.is_authority():
            super().start_game()
        self.start_calls += 1

    def packets(self, packet_type: str) -> list[dict[str, Any]]:
        return [packet for packet, _ in self.announcements if packet["type"] == packet_type]


class DummyJob:
    def __init__(self, func: Callable[..., Any], kwargs: dict[str, Any]) -> None:
        self.func = func
        self.kwargs = kwargs
        self.removed = False

    def remove(self) -> None:
        self.removed = True


class DummyScheduler:
    def __init__(self) -> None:
        self.jobs: list[DummyJob] = []

    def add_job(self, func, trigger, **kwargs):  # noqa: ANN001 - signature mimics library
        job = DummyJob(func, {"trigger": trigger, **kwargs})
        self.jobs.append(job)
        return job

    @property
    def active_jobs(self) -> list[DummyJob]:
        return [job for job in self.jobs if not job.removed]


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def puzzle() -> Puzzle:
    return make_fixture_puzzle()


@pytest.fixture
def endpoint() -> RecordingEndpoint:
    return RecordingEndpoint()


@pytest.fixture
def authority() -> RecordingEndpoint:
    return RecordingEndpoint(EndpointRole.AUTHORITY)


@pytest.fixture
def scheduler() -> DummyScheduler:
    return DummyScheduler()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_game(scheduler: DummyScheduler, clock: FakeClock):
    def factory(endpoint: RecordingEndpoint, rules: Optional[GameRules] = None) -> Game:
        game = Game(endpoint=endpoint, rules=rules, scheduler=scheduler, clock=clock)
        endpoint.game = game
        return game

    return factory


@pytest.fixture
def make_player():
    def factory(game: Game, player_id: str, *, board: Optional[Board] = None) -> Player:
        player = Player(game=game, id=player_id)
        game.add_player(player)
        if board is not None:
            player.change(PlayerChange(board=board), allow="all", announce=False)
        return player

    return factory


@pytest.fixture
def game(endpoint: RecordingEndpoint, make_game) -> Game:
    return make_game(endpoint)


@pytest.fixture
def board(game: Game, puzzle: Puzzle, make_player) -> Board:
    board = Board.from_puzzle(puzzle)
    make_player(game, "player-1", board=board)
    return board
