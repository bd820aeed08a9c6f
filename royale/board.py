"""Crossword board: the cell grid, its words and the player's selection.

The board implements the crossword-specific state machine: selection moves,
word navigation, automatic labelling and the keyboard mapping used by clients.
Every mutation can be announced through the owning player's game endpoint.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Iterator, List, Optional, Sequence
from uuid import uuid4

from royale.cell import Cell
from royale.endpoint import Announce
from royale.errors import OutOfBoundsError, PuzzleStructureError, RoyaleError, SelectionError
from royale.schemas import BoardState, SelectionState
from royale.types import (
    BLANK,
    DIRECTION_ORDER,
    CellChange,
    CellStatus,
    Direction,
    KeyEvent,
    Position,
    Puzzle,
    SelectionChange,
    is_valid_cell_letter,
)
from royale.word import Word, known_letters
from utils.logging_config import get_logger

if TYPE_CHECKING:  # pragma: no cover - used only for typing
    from royale.player import Player

logger = get_logger("board")

ARROW_KEYS = {
    "ArrowUp": (Direction.DOWN, -1),
    "ArrowDown": (Direction.DOWN, 1),
    "ArrowLeft": (Direction.ACROSS, -1),
    "ArrowRight": (Direction.ACROSS, 1),
}


@dataclass(frozen=True, slots=True)
class Selection:
    """Currently focused cell and typing direction."""

    cell: Cell
    direction: Direction


def _label_number(word: Word) -> int:
    return int(word.label) if word.label.isdigit() else 0


def _link_word(word: Word, cells: Sequence[Sequence[Cell]]) -> None:
    for cell in word.cells(lambda x, y: cells[y][x]):
        cell.words[word.direction] = word


class Board:
    """One player's crossword grid."""

    def __init__(self, *, id: str, cells: Sequence[Sequence[Cell]], words: Iterable[Word]) -> None:
        self.id = id
        self._cells: tuple[tuple[Cell, ...], ...] = tuple(tuple(row) for row in cells)
        self._words: tuple[Word, ...] = ()
        self._selection: Optional[Selection] = None
        self._player: Optional["Player"] = None
        self.editing = False

        for cell in self.iter_cells():
            cell.board = self

        self.words = list(words)

    def __repr__(self) -> str:
        return f"Board(id={self.id!r}, width={self.width}, height={self.height}, words={len(self._words)})"

    # Construction ----------------------------------------------------------------
    @classmethod
    def from_puzzle(cls, puzzle: Puzzle) -> "Board":
        """Build a board with known answers from a solved puzzle."""

        width, height = puzzle.width, puzzle.height
        for row_index, row in enumerate(puzzle.cell_letters):
            if len(row) != width:
                raise PuzzleStructureError(
                    f"Row {row_index} has {len(row)} cells, expected {width}"
                )

        cells = [[Cell(x, y) for x in range(width)] for y in range(height)]
        words: List[Word] = []

        for clue in puzzle.clues:
            x, y = clue.start.x, clue.start.y
            if not (0 <= x < width and 0 <= y < height):
                raise PuzzleStructureError(f"Clue {clue.text!r} starts outside the grid at ({x}, {y})")

            letters = ""
            while True:
                letter = puzzle.letter_at(x, y)
                if not is_valid_cell_letter(letter):
                    raise PuzzleStructureError(
                        f"Invalid clue {clue.text!r}: invalid letter {letter!r} at ({x}, {y})"
                    )
                letters += letter
                if clue.direction is Direction.ACROSS:
                    x += 1
                else:
                    y += 1
                if not (x < width and y < height and puzzle.letter_at(x, y) != BLANK):
                    break

            word = Word(
                id=len(words),
                direction=clue.direction,
                start_cell=cells[clue.start.y][clue.start.x],
                letters=known_letters(letters),
                clue_text=clue.text,
            )
            _link_word(word, cells)
            words.append(word)

        board = cls(id=str(uuid4()), cells=cells, words=words)

        if board.words:
            first = board.words[0]
            board.change_selection(
                SelectionChange(cell=first.start_cell.position, direction=first.direction),
                announce=False,
            )

        logger.debug("Built board %s (%dx%d) with %d words", board.id, width, height, len(words))
        return board

    @classmethod
    def from_board_state(cls, state: BoardState) -> "Board":
        """Rebuild a board from its serialized state."""

        rows = state.cell_states
        width = len(rows[0]) if rows else 0
        cells: List[List[Cell]] = []
        for y, row in enumerate(rows):
            if len(row) != width:
                raise PuzzleStructureError(f"Row {y} has {len(row)} cells, expected {width}")
            cell_row = []
            for x, cell_state in enumerate(row):
                cell = Cell(x, y)
                cell.change(
                    CellChange(letter=cell_state.letter, status=cell_state.status),
                    announce=False,
                    call_handlers=False,
                )
                cell_row.append(cell)
            cells.append(cell_row)

        def lookup(x: int, y: int) -> Cell:
            if not (0 <= x < width and 0 <= y < len(cells)):
                raise OutOfBoundsError(f"Word runs outside the grid at ({x}, {y})")
            return cells[y][x]

        words = []
        for index, word_state in enumerate(state.words):
            start = word_state.start_cell
            word = Word(
                id=index,
                label=word_state.label,
                letters=word_state.letters,
                direction=word_state.direction,
                start_cell=lookup(start.x, start.y),
                clue_text=word_state.clue_text,
            )
            for cell in word.cells(lookup):
                cell.words[word.direction] = word
            words.append(word)

        board = cls(id=state.id, cells=cells, words=words)

        if state.selection is not None:
            board.change_selection(
                SelectionChange(cell=state.selection.cell, direction=state.selection.direction),
                announce=False,
            )

        return board

    @classmethod
    def create_empty(cls, width: int, height: int) -> "Board":
        return cls.from_puzzle(Puzzle(cell_letters=[BLANK * width for _ in range(height)]))

    # Grid access -----------------------------------------------------------------
    @property
    def cells(self) -> tuple[tuple[Cell, ...], ...]:
        return self._cells

    @property
    def width(self) -> int:
        return len(self._cells[0]) if self._cells else 0

    @property
    def height(self) -> int:
        return len(self._cells)

    @property
    def player(self) -> Optional["Player"]:
        return self._player

    def iter_cells(self) -> Iterator[Cell]:
        """Yield every cell in row-major order."""

        for row in self._cells:
            yield from row

    def try_cell_at(self, x: int, y: int) -> Optional[Cell]:
        if 0 <= y < self.height and 0 <= x < self.width:
            return self._cells[y][x]
        return None

    def cell_at(self, x: int, y: int) -> Cell:
        cell = self.try_cell_at(x, y)
        if cell is None:
            raise OutOfBoundsError(f"No cell at ({x}, {y})")
        return cell

    # Words -----------------------------------------------------------------------
    @property
    def words(self) -> tuple[Word, ...]:
        return self._words

    @words.setter
    def words(self, new_words: Iterable[Word]) -> None:
        next_label = 1
        for y in range(self.height):
            for x in range(self.width):
                cell = self._cells[y][x]
                across = cell.words[Direction.ACROSS]
                down = cell.words[Direction.DOWN]
                starts_across = across is not None and across.start_cell.x == x
                starts_down = down is not None and down.start_cell.y == y

                if starts_across or starts_down:
                    if starts_across:
                        across.label = str(next_label)
                    if starts_down:
                        down.label = str(next_label)
                    next_label += 1

        self._words = tuple(
            sorted(
                new_words,
                key=lambda word: (DIRECTION_ORDER.index(word.direction), _label_number(word)),
            )
        )

    # Selection -------------------------------------------------------------------
    @property
    def selection(self) -> Optional[Selection]:
        return self._selection

    def change_selection(
        self,
        change: Optional[SelectionChange],
        *,
        announce: Announce,
        throw_on_failure: bool = True,
    ) -> bool:
        """Move the selection; returns whether the change was applied."""

        succeeded = self._apply_selection_change(change)

        if not succeeded:
            if throw_on_failure:
                raise SelectionError("Failed to apply selection change", change=change)
            return False

        if announce and self._player is not None:
            self._player.game.endpoint.dispatch(
                {
                    "type": "selectionChange",
                    "boardId": self.id,
                    "selectionChange": change.to_dict() if change is not None else None,
                },
                announce,
            )

        return True

    def _apply_selection_change(self, change: Optional[SelectionChange]) -> bool:
        if change is None:
            self._selection = None
            return True

        position = change.cell
        if position is None and self._selection is not None:
            position = self._selection.cell.position
        if position is None:
            return False

        direction = change.direction
        if direction is None:
            direction = self._selection.direction if self._selection is not None else Direction.ACROSS

        cell = self.try_cell_at(position.x, position.y)
        if cell is not None and (not cell.is_void or self.editing):
            self._selection = Selection(cell=cell, direction=Direction(direction))
            return True
        return False

    def selection_state(self) -> Optional[SelectionState]:
        if self._selection is None:
            return None
        return SelectionState(cell=self._selection.cell.position, direction=self._selection.direction)

    def advance_selected_cell(self, delta: int) -> bool:
        """Move the selected cell along the selected direction."""

        if self._selection is None:
            return False
        target = self._selection.cell.position.step(self._selection.direction, delta)
        return self.change_selection(
            SelectionChange(cell=target),
            announce=True,
            throw_on_failure=False,
        )

    def advance_selected_word(self, delta: int) -> None:
        """Select the next (or previous) unfilled word, wrapping around."""

        selected = self.selected_word
        if selected is None:
            return

        current_index = next(
            (
                index
                for index, word in enumerate(self._words)
                if word.direction is selected.direction and word.start_cell is selected.start_cell
            ),
            None,
        )
        if current_index is None:
            raise RoyaleError("Current word not found")

        count = len(self._words)
        new_index = current_index
        while True:
            new_index = (new_index + delta) % count
            if not (self._words[new_index].is_filled() and new_index != current_index):
                break

        if new_index == current_index:
            new_index = (current_index + 1) % count

        self.selected_word = self._words[new_index]

    @property
    def selected_word(self) -> Optional[Word]:
        if self._selection is None:
            return None
        return self._selection.cell.words[self._selection.direction]

    @selected_word.setter
    def selected_word(self, word: Optional[Word]) -> None:
        if word is None:
            self._selection = None
            return

        current = self.selected_word
        if current is not None and current.id == word.id:
            self.change_selection(
                SelectionChange(cell=word.start_cell.position, direction=word.direction),
                announce=True,
            )
            return

        position = word.start_cell.position
        while True:
            cell = self.try_cell_at(position.x, position.y)
            if cell is None or cell.words[word.direction] is not word:
                position = word.start_cell.position
                break
            if not cell.letter:
                break
            position = position.step(word.direction)

        self.change_selection(
            SelectionChange(cell=position, direction=word.direction),
            announce=True,
        )

    # Whole-board operations ------------------------------------------------------
    def check_puzzle(self) -> None:
        for cell in self.iter_cells():
            cell.check()

    def reset(self) -> None:
        for cell in self.iter_cells():
            cell.change(CellChange(letter=""), announce=True)

    def is_known_solved(self) -> bool:
        return all(word.is_known_solved() for word in self._words)

    def board_state(self, *, include_answers: bool) -> BoardState:
        return BoardState(
            id=self.id,
            cell_states=[[cell.cell_state() for cell in row] for row in self._cells],
            selection=self.selection_state(),
            words=[word.word_state(include_answers=include_answers) for word in self._words],
        )

    # Handlers --------------------------------------------------------------------
    def on_cell_change(self, cell: Cell, change: CellChange) -> None:
        if self.editing:
            self._rebuild_words()
        if self._player is not None:
            self._player.game.on_cell_change(cell)

    def _rebuild_words(self) -> None:
        """Derive the word list from maximal runs of filled cells."""

        words: List[Word] = []

        def flush(run: List[Cell], direction: Direction) -> None:
            if not run:
                return
            words.append(
                Word(
                    id=len(words),
                    direction=direction,
                    start_cell=run[0],
                    letters=known_letters("".join(cell.letter for cell in run)),
                )
            )
            run.clear()

        for y in range(self.height):
            run: List[Cell] = []
            for x in range(self.width):
                cell = self._cells[y][x]
                cell.words[Direction.ACROSS] = None
                if cell.letter:
                    run.append(cell)
                else:
                    flush(run, Direction.ACROSS)
            flush(run, Direction.ACROSS)

        for x in range(self.width):
            run = []
            for y in range(self.height):
                cell = self._cells[y][x]
                cell.words[Direction.DOWN] = None
                if cell.letter:
                    run.append(cell)
                else:
                    flush(run, Direction.DOWN)
            flush(run, Direction.DOWN)

        for word in words:
            _link_word(word, self._cells)

        self.words = words
        logger.debug("Rebuilt %d words on board %s", len(words), self.id)

    def handle_key_down(self, event: KeyEvent) -> bool:
        """Apply a key press to the board; returns whether it was consumed."""

        selection = self._selection
        if selection is None:
            return False

        pressed_letter: Optional[str] = None
        if len(event.key) == 1 and not (event.alt_key or event.ctrl_key or event.meta_key):
            pressed_letter = event.key.upper()

        if event.key == " ":
            self.change_selection(SelectionChange(direction=selection.direction.other), announce=True)
        elif event.key == "Backspace":
            was_in_empty_cell = selection.cell.letter == ""
            if was_in_empty_cell:
                self.advance_selected_cell(-1)
            self._clear_selected_letter()
            if not was_in_empty_cell:
                self.advance_selected_cell(-1)
        elif event.key == "Delete":
            self._clear_selected_letter()
        elif event.key in ARROW_KEYS:
            axis, delta = ARROW_KEYS[event.key]
            if selection.direction is not axis:
                self.change_selection(SelectionChange(direction=axis), announce=True)
            else:
                self.advance_selected_cell(delta)
        elif event.key in ("Enter", "Tab"):
            self.advance_selected_word(-1 if event.shift_key else 1)
        elif pressed_letter and is_valid_cell_letter(pressed_letter):
            self._type_letter(pressed_letter)
        else:
            return False

        return True

    def _clear_selected_letter(self) -> None:
        cell = self._selection.cell
        if cell.status is not CellStatus.KNOWN_CORRECT:
            cell.change(CellChange(letter=""), announce=True)

    def _type_letter(self, letter: str) -> None:
        original_cell = self._selection.cell
        original_letter = original_cell.letter

        if original_cell.status is not CellStatus.KNOWN_CORRECT:
            original_cell.change(CellChange(letter=letter), announce=True)

        while True:
            selected_next_empty = self.advance_selected_cell(1)
            if not (selected_next_empty and self._selection.cell.letter != ""):
                break

        if not selected_next_empty:
            self.change_selection(SelectionChange(cell=original_cell.position), announce=True)
            if original_letter != "":
                self.advance_selected_cell(1)


__all__ = ["Board", "Selection"]
