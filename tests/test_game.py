import asyncio

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from royale.board import Board
from royale.errors import GameStateError, NotAuthorityError
from royale.game import Game, GameRules, HealthDrainRule
from royale.player import Player, PlayerChange
from royale.schemas import GameState
from royale.types import CellChange, CellStatus, GameChange, GameStatus


@pytest.fixture
def authority_game(authority, make_game) -> Game:
    return make_game(authority)


def _fill(board: Board, rows) -> None:
    for y, row in enumerate(rows):
        for x, letter in enumerate(row):
            if letter != " ":
                board.cell_at(x, y).change(CellChange(letter=letter), announce=True)


def test_status_moves_forward_only(game) -> None:
    assert game.status is GameStatus.LOBBY
    game.change(GameChange(status=GameStatus.PLAYING), announce=False)
    game.change(GameChange(status=GameStatus.PLAYING), announce=False)
    assert game.status is GameStatus.PLAYING

    with pytest.raises(GameStateError):
        game.change(GameChange(status=GameStatus.LOBBY), announce=False)

    game.change(GameChange(status=GameStatus.ENDED), announce=False)
    assert game.status is GameStatus.ENDED


def test_game_change_is_announced(game, endpoint) -> None:
    game.change(GameChange(status=GameStatus.PLAYING), announce=True)
    assert endpoint.announcements == [
        ({"type": "gameChange", "gameChange": {"status": {"type": "playing"}}}, None)
    ]


def test_participant_cannot_start_game(endpoint) -> None:
    with pytest.raises(NotAuthorityError):
        endpoint.start_game()


def test_all_ready_starts_game(authority_game, authority, make_player) -> None:
    first = make_player(authority_game, "p1")
    second = make_player(authority_game, "p2")

    first.change(PlayerChange(ready=True), allow=("ready",), announce=False)
    assert authority.start_calls == 0

    second.change(PlayerChange(health=50), allow="all", announce=False)
    assert authority.start_calls == 0

    second.change(PlayerChange(ready=True), allow=("ready",), announce=False)
    assert authority.start_calls == 1


def test_ready_is_ignored_outside_lobby(authority_game, authority, make_player) -> None:
    player = make_player(authority_game, "p1")
    authority_game.change(GameChange(status=GameStatus.PLAYING), announce=False)

    player.change(PlayerChange(ready=True), allow="all", announce=False)

    assert authority.start_calls == 0


def test_ticker_runs_only_while_playing(authority_game, scheduler) -> None:
    authority_game.change(GameChange(status=GameStatus.PLAYING), announce=False)
    assert len(scheduler.active_jobs) == 1
    assert scheduler.active_jobs[0].kwargs["trigger"] == "interval"

    authority_game.change(GameChange(status=GameStatus.ENDED), announce=False)
    assert scheduler.active_jobs == []


def test_tick_job_runs_update(authority_game, scheduler, clock, make_player) -> None:
    player = make_player(authority_game, "p1")
    authority_game.change(GameChange(status=GameStatus.PLAYING), announce=False)

    clock.advance(3)
    asyncio.run(scheduler.active_jobs[0].func())

    assert player.health == 99


def test_participant_does_not_tick(game, scheduler) -> None:
    game.change(GameChange(status=GameStatus.PLAYING), announce=False)
    assert scheduler.jobs == []


def test_health_drains_once_per_period(authority_game, authority, clock, make_player) -> None:
    player = make_player(authority_game, "p1")
    authority_game.change(GameChange(status=GameStatus.PLAYING), announce=False)

    clock.advance(2.9)
    authority_game._playing_update()
    assert player.health == 100

    clock.advance(0.2)
    authority_game._playing_update()
    assert player.health == 99
    assert authority.announcements[-1] == (
        {"type": "playerChange", "playerId": "p1", "playerChange": {"health": 99}},
        None,
    )

    clock.advance(3.0)
    authority_game._playing_update()
    assert player.health == 98
    assert authority_game.time_playing == pytest.approx(6.1)


def test_health_drain_catches_up_one_period_per_tick(authority_game, clock, make_player) -> None:
    player = make_player(authority_game, "p1")
    authority_game.change(GameChange(status=GameStatus.PLAYING), announce=False)

    clock.advance(9.5)
    for _ in range(5):
        authority_game._playing_update()

    assert player.health == 97
    assert authority_game.last_health_drain_at == pytest.approx(clock.now - 0.5)


def test_health_drain_uses_rules(authority, make_game, clock, make_player) -> None:
    rules = GameRules(time_health_drain=HealthDrainRule(amount=10, period=1))
    game = make_game(authority, rules)
    player = make_player(game, "p1")
    game.change(GameChange(status=GameStatus.PLAYING), announce=False)

    clock.advance(1)
    game._playing_update()

    assert player.health == 90


def test_no_drain_in_lobby(authority_game, clock, make_player) -> None:
    player = make_player(authority_game, "p1")
    clock.advance(100)
    authority_game._playing_update()
    assert player.health == 100


def test_filled_word_is_marked_correct(authority_game, authority, puzzle, make_player) -> None:
    board = Board.from_puzzle(puzzle)
    make_player(authority_game, "p1", board=board)

    _fill(board, [" AB"])
    assert board.cell_at(1, 0).status is CellStatus.DEFAULT

    board.cell_at(3, 0).change(CellChange(letter="C"), announce=True)

    assert [board.cell_at(x, 0).status for x in (1, 2, 3)] == [CellStatus.KNOWN_CORRECT] * 3
    marks = [
        packet
        for packet in authority.packets("cellChange")
        if packet["cellChange"].get("status") == "knownCorrect"
    ]
    assert [packet["cellPosition"] for packet in marks] == [{"x": 1, "y": 0}, {"x": 2, "y": 0}, {"x": 3, "y": 0}]


def test_wrong_letters_are_not_marked(authority_game, puzzle, make_player) -> None:
    board = Board.from_puzzle(puzzle)
    make_player(authority_game, "p1", board=board)

    _fill(board, [" ABX"])

    assert board.cell_at(1, 0).status is CellStatus.DEFAULT


def test_marking_can_be_disabled(authority, make_game, puzzle, make_player) -> None:
    game = make_game(authority, GameRules(mark_correct_words_on_fill=False))
    board = Board.from_puzzle(puzzle)
    make_player(game, "p1", board=board)

    _fill(board, [" ABC"])

    assert board.cell_at(1, 0).status is CellStatus.DEFAULT


def test_solving_whole_board_marks_every_cell(authority_game, puzzle, make_player) -> None:
    board = Board.from_puzzle(puzzle)
    make_player(authority_game, "p1", board=board)

    _fill(board, puzzle.cell_letters)

    for cell in board.iter_cells():
        if not cell.is_void:
            assert cell.status is CellStatus.KNOWN_CORRECT
    assert board.is_known_solved()


def test_game_state_round_trip(authority_game, puzzle, make_player, endpoint) -> None:
    make_player(authority_game, "p1", board=Board.from_puzzle(puzzle))
    make_player(authority_game, "p2")
    authority_game.change(GameChange(status=GameStatus.PLAYING), announce=False)

    wire = authority_game.game_state(include_answers=False).to_wire()
    assert wire["status"] == {"type": "playing"}
    assert [player["id"] for player in wire["playerStates"]] == ["p1", "p2"]

    restored = Game.from_game_state(GameState.model_validate(wire), endpoint)

    assert restored.status is GameStatus.PLAYING
    assert set(restored.players) == {"p1", "p2"}
    board_id = authority_game.players["p1"].board.id
    assert restored.get_board_by_id(board_id) is restored.players["p1"].board
    assert restored.get_board_by_id("missing") is None


def test_remove_player(game, make_player) -> None:
    make_player(game, "p1")
    assert game.remove_player("p1").id == "p1"
    assert game.remove_player("p1") is None


def test_scheduler_drains_health_in_real_time(authority) -> None:
    async def scenario() -> float:
        scheduler = AsyncIOScheduler()
        scheduler.start()
        try:
            game = Game(
                endpoint=authority,
                rules=GameRules(time_health_drain=HealthDrainRule(amount=1, period=0.05)),
                scheduler=scheduler,
                tick_interval=0.01,
            )
            authority.game = game
            player = Player(game=game, id="p1")
            game.add_player(player)
            game.change(GameChange(status=GameStatus.PLAYING), announce=False)

            loop = asyncio.get_running_loop()
            deadline = loop.time() + 1.0
            while player.health >= 100 and loop.time() < deadline:
                await asyncio.sleep(0.02)

            game.change(GameChange(status=GameStatus.ENDED), announce=False)
            return player.health
        finally:
            scheduler.shutdown(wait=False)

    assert asyncio.run(scenario()) < 100


def test_require_game(endpoint, make_game) -> None:
    with pytest.raises(GameStateError):
        endpoint.require_game()

    game = make_game(endpoint)
    assert endpoint.require_game() is game
