"""Static puzzles handed out by the server."""

from __future__ import annotations

import random
from typing import Iterable, List, Optional, Sequence, Tuple

from royale.types import Clue, Direction, Position, Puzzle
from utils.logging_config import get_logger

logger = get_logger("puzzle_bank")

__all__ = ["DEFAULT_PUZZLES", "PuzzleBank", "mini_puzzle"]

# Clue starts shared by every 5x5 mini below, in clue order.
_MINI_STARTS: Tuple[Tuple[Direction, int, int], ...] = (
    (Direction.ACROSS, 1, 0),
    (Direction.ACROSS, 0, 1),
    (Direction.ACROSS, 0, 2),
    (Direction.ACROSS, 0, 3),
    (Direction.ACROSS, 1, 4),
    (Direction.DOWN, 1, 0),
    (Direction.DOWN, 2, 0),
    (Direction.DOWN, 3, 0),
    (Direction.DOWN, 0, 1),
    (Direction.DOWN, 4, 1),
)


def mini_puzzle(rows: Sequence[str], clue_texts: Sequence[str]) -> Puzzle:
    """Build a 5x5 mini with the corner cells of the first and last rows blank."""

    if len(clue_texts) != len(_MINI_STARTS):
        raise ValueError(f"A mini needs {len(_MINI_STARTS)} clues, got {len(clue_texts)}")

    clues = [
        Clue(start=Position(x=x, y=y), direction=direction, text=text)
        for (direction, x, y), text in zip(_MINI_STARTS, clue_texts)
    ]
    return Puzzle(cell_letters=list(rows), clues=clues)


DEFAULT_PUZZLES: Tuple[Puzzle, ...] = (
    mini_puzzle(
        [" APR ", "TRIAL", "ARENA", "RACKS", " YES "],
        [
            "Loan statistic, or month",
            "Evaluation",
            "Venue for various big events",
            "Things that store things",
            "Simple answer",
            "Data type that stores many",
            "Portion",
            "Standings",
            "Viscous organic material",
            "___ Vegas",
        ],
    ),
    mini_puzzle(
        [" AUS ", "ALLOY", "TITLE", "MARIA", " SAD "],
        [
            "Abbreviation for the largest Oceanic country",
            "Mixture of metals",
            "Name",
            "2024 film about opera singer Callas",
            "Lacking in joy",
            "Another name",
            "MK_____",
            "Familiar state of matter",
            "Source of funds",
            "Agreement",
        ],
    ),
    mini_puzzle(
        [" ALL ", "CHEAP", "DEATH", "SAVED", " DER "],
        [
            "Every",
            'With "out", to skimp',
            "Our end",
            "Rescued",
            "Common German article",
            "In front",
            "Exit",
            '"Not now"',
            "Musical discs",
            "High degree",
        ],
    ),
)


class PuzzleBank:
    """Ordered collection of puzzles with random selection."""

    def __init__(self, puzzles: Iterable[Puzzle] = DEFAULT_PUZZLES, *, rng: Optional[random.Random] = None) -> None:
        self._puzzles: List[Puzzle] = list(puzzles)
        self._rng = rng or random.Random()

    def __len__(self) -> int:
        return len(self._puzzles)

    def __getitem__(self, index: int) -> Puzzle:
        return self._puzzles[index]

    def add(self, puzzle: Puzzle) -> int:
        """Append ``puzzle`` and return its index."""

        self._puzzles.append(puzzle)
        logger.info("Added %dx%d puzzle to the bank", puzzle.width, puzzle.height)
        return len(self._puzzles) - 1

    def random_puzzle(self, except_index: Optional[int] = None) -> Tuple[int, Puzzle]:
        """Pick a random puzzle, never the one at ``except_index``.

        With a single puzzle in the bank there is nothing else to offer, so it
        is returned even when excluded.
        """

        if not self._puzzles:
            raise LookupError("Puzzle bank is empty")

        candidates = [index for index in range(len(self._puzzles)) if index != except_index]
        if not candidates:
            logger.warning("Only one puzzle available, handing out the excluded one again")
            candidates = [0]

        index = self._rng.choice(candidates)
        return index, self._puzzles[index]
