"""Value types shared by the crossword royale model and protocol."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, StrictInt

CELL_LETTER_PATTERN = re.compile(r"[A-Z]?")
BLANK = " "


def is_valid_cell_letter(letter: object) -> bool:
    """Return ``True`` for ``""`` or a single upper-case A-Z letter."""

    return isinstance(letter, str) and CELL_LETTER_PATTERN.fullmatch(letter) is not None


class Direction(str, Enum):
    """Enumeration of crossword word directions."""

    ACROSS = "across"
    DOWN = "down"

    @property
    def other(self) -> "Direction":
        return Direction.DOWN if self is Direction.ACROSS else Direction.ACROSS


DIRECTION_ORDER = (Direction.ACROSS, Direction.DOWN)


class CellStatus(str, Enum):
    """Correctness marking of a single cell."""

    DEFAULT = "default"
    KNOWN_CORRECT = "knownCorrect"
    KNOWN_INCORRECT = "knownIncorrect"


class GameStatus(str, Enum):
    """Lifecycle of a game session."""

    LOBBY = "lobby"
    PLAYING = "playing"
    ENDED = "ended"


GAME_STATUS_ORDER = (GameStatus.LOBBY, GameStatus.PLAYING, GameStatus.ENDED)


class Position(BaseModel):
    """Immutable grid coordinate used as a value."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    x: StrictInt
    y: StrictInt

    def step(self, direction: Direction, delta: int = 1) -> "Position":
        if direction is Direction.ACROSS:
            return Position(x=self.x + delta, y=self.y)
        return Position(x=self.x, y=self.y + delta)


@dataclass(slots=True)
class Clue:
    """Clue of a puzzle anchored at the first cell of its answer."""

    start: Position
    direction: Direction
    text: str


@dataclass
class Puzzle:
    """Solved grid plus clues, as handed to :meth:`Board.from_puzzle`.

    ``cell_letters`` holds one string per row; a space marks a blank cell.
    """

    cell_letters: List[str]
    clues: List[Clue] = field(default_factory=list)

    @property
    def width(self) -> int:
        return len(self.cell_letters[0]) if self.cell_letters else 0

    @property
    def height(self) -> int:
        return len(self.cell_letters)

    def letter_at(self, x: int, y: int) -> str:
        return self.cell_letters[y][x]


@dataclass(frozen=True, slots=True)
class CellChange:
    """Partial change of a cell; ``None`` means the field is left untouched."""

    letter: Optional[str] = None
    status: Optional[CellStatus] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        if self.letter is not None:
            payload["letter"] = self.letter
        if self.status is not None:
            payload["status"] = CellStatus(self.status).value
        return payload


@dataclass(frozen=True, slots=True)
class SelectionChange:
    """Partial change of a board selection.

    A missing cell keeps the selected cell, a missing direction keeps the
    selected direction. Clearing the selection is expressed by passing ``None``
    instead of a ``SelectionChange``.
    """

    cell: Optional[Position] = None
    direction: Optional[Direction] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        if self.cell is not None:
            payload["cell"] = {"x": self.cell.x, "y": self.cell.y}
        if self.direction is not None:
            payload["direction"] = Direction(self.direction).value
        return payload


@dataclass(frozen=True, slots=True)
class GameChange:
    """Partial change of the game-wide state."""

    status: Optional[GameStatus] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        if self.status is not None:
            payload["status"] = {"type": GameStatus(self.status).value}
        return payload


@dataclass(frozen=True, slots=True)
class KeyEvent:
    """Keyboard input forwarded to :meth:`Board.handle_key_down`."""

    key: str
    alt_key: bool = False
    ctrl_key: bool = False
    meta_key: bool = False
    shift_key: bool = False


__all__ = [
    "BLANK",
    "CELL_LETTER_PATTERN",
    "CellChange",
    "CellStatus",
    "Clue",
    "DIRECTION_ORDER",
    "Direction",
    "GAME_STATUS_ORDER",
    "GameChange",
    "GameStatus",
    "KeyEvent",
    "Position",
    "Puzzle",
    "SelectionChange",
    "is_valid_cell_letter",
]
