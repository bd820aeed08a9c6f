"""Crossword words: ordered spans of cells with a clue and expected letters."""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Iterator, Optional, Sequence

from royale.schemas import KnownLetter, UnknownLetter, WordLetter, WordState
from royale.types import CellStatus, Direction

if TYPE_CHECKING:  # pragma: no cover - used only for typing
    from royale.cell import Cell

CellLookup = Callable[[int, int], "Cell"]


def known_letters(text: str) -> list[KnownLetter]:
    """Convert an answer string into a list of known letters."""

    return [KnownLetter(letter=letter) for letter in text]


class Word:
    """A run of cells in one direction.

    The word does not own its cells; it walks the grid from ``start_cell`` on
    demand, so the span always reflects the board's current cells.
    """

    def __init__(
        self,
        *,
        id: int,
        direction: Direction,
        start_cell: "Cell",
        letters: Sequence[WordLetter],
        clue_text: str = "",
        label: str = "",
    ) -> None:
        self.id = id
        self.direction = Direction(direction)
        self.start_cell = start_cell
        self.letters: tuple[WordLetter, ...] = tuple(letters)
        self.clue_text = clue_text
        self.label = label

    def __repr__(self) -> str:
        return (
            f"Word(id={self.id}, label={self.label!r}, direction={self.direction.value}, "
            f"start=({self.start_cell.x}, {self.start_cell.y}), length={len(self.letters)})"
        )

    def __len__(self) -> int:
        return len(self.letters)

    def cells(self, lookup: Optional[CellLookup] = None) -> Iterator["Cell"]:
        """Yield the cells spanned by the word."""

        if lookup is None:
            lookup = self.start_cell.board.cell_at
        x, y = self.start_cell.x, self.start_cell.y
        for _ in range(len(self.letters)):
            yield lookup(x, y)
            if self.direction is Direction.ACROSS:
                x += 1
            else:
                y += 1

    def is_filled(self) -> bool:
        return all(cell.letter for cell in self.cells())

    def is_known_solved(self) -> bool:
        for cell in self.cells():
            if cell.status is CellStatus.KNOWN_CORRECT:
                continue
            correct = cell.correct_letter
            if not isinstance(correct, KnownLetter) or correct.letter != cell.letter:
                return False
        return True

    def word_state(self, *, include_answers: bool) -> WordState:
        letters = self.letters if include_answers else [UnknownLetter() for _ in self.letters]
        return WordState(
            label=self.label,
            letters=list(letters),
            direction=self.direction,
            start_cell=self.start_cell.position,
            clue_text=self.clue_text,
        )


__all__ = ["CellLookup", "Word", "known_letters"]
