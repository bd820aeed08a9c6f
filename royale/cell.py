"""Single square of a crossword board."""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Optional

from royale.endpoint import Announce
from royale.errors import BoardBindingError, InvalidLetterError
from royale.schemas import CellState, KnownLetter, UnknownLetter
from royale.types import CellChange, CellStatus, Direction, Position, is_valid_cell_letter

if TYPE_CHECKING:  # pragma: no cover - used only for typing
    from royale.board import Board
    from royale.word import Word


class Cell:
    """A grid square holding a letter, its correctness status and crossing words."""

    __slots__ = ("x", "y", "words", "_board", "_letter", "_status")

    def __init__(self, x: int, y: int) -> None:
        self.x = x
        self.y = y
        self.words: Dict[Direction, Optional["Word"]] = {
            Direction.ACROSS: None,
            Direction.DOWN: None,
        }
        self._board: Optional["Board"] = None
        self._letter = ""
        self._status = CellStatus.DEFAULT

    def __repr__(self) -> str:
        return f"Cell(x={self.x}, y={self.y}, letter={self._letter!r}, status={self._status.value})"

    @property
    def board(self) -> "Board":
        if self._board is None:
            raise BoardBindingError(f"Cell ({self.x}, {self.y}) has no board")
        return self._board

    @board.setter
    def board(self, board: "Board") -> None:
        if self._board is not None:
            raise BoardBindingError(f"Cell ({self.x}, {self.y}) already has a board")
        self._board = board

    @property
    def letter(self) -> str:
        return self._letter

    @property
    def status(self) -> CellStatus:
        return self._status

    @property
    def position(self) -> Position:
        return Position(x=self.x, y=self.y)

    @property
    def is_void(self) -> bool:
        return self.words[Direction.ACROSS] is None and self.words[Direction.DOWN] is None

    @property
    def correct_letter(self) -> Optional[KnownLetter | UnknownLetter]:
        """Expected letter at this cell, taken from the across word if present."""

        word = self.words[Direction.ACROSS] or self.words[Direction.DOWN]
        if word is None:
            return None
        if word.direction is Direction.ACROSS:
            index = self.x - word.start_cell.x
        else:
            index = self.y - word.start_cell.y
        return word.letters[index]

    def check(self) -> None:
        """Mark the cell correct or incorrect against its known answer."""

        if self._letter == "" or self.is_void:
            return
        correct = self.correct_letter
        if correct is None:
            return
        if isinstance(correct, UnknownLetter):
            status = CellStatus.DEFAULT
        elif correct.letter == self._letter:
            status = CellStatus.KNOWN_CORRECT
        else:
            status = CellStatus.KNOWN_INCORRECT
        self.change(CellChange(status=status), announce=True)

    def cell_state(self) -> CellState:
        return CellState(letter=self._letter, status=self._status)

    def change(self, change: CellChange, *, announce: Announce, call_handlers: bool = True) -> None:
        """Apply ``change``, optionally announce it and notify the board."""

        old_letter = self._letter

        if change.letter is not None and change.letter != old_letter:
            if not is_valid_cell_letter(change.letter):
                raise InvalidLetterError(f"Invalid letter: {change.letter!r}")
            self._letter = change.letter

        if change.status is not None:
            self._status = CellStatus(change.status)
        elif self._letter != old_letter:
            self._status = CellStatus.DEFAULT

        if announce and self.board.player is not None:
            self.board.player.game.endpoint.dispatch(
                {
                    "type": "cellChange",
                    "boardId": self.board.id,
                    "cellPosition": {"x": self.x, "y": self.y},
                    "cellChange": change.to_dict(),
                },
                announce,
            )

        if call_handlers:
            self.board.on_cell_change(self, change)


__all__ = ["Cell"]
