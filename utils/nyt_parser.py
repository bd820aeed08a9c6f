"""Convert NYT crossword JSON into :class:`Puzzle` objects."""

from __future__ import annotations

from pathlib import Path
from typing import Any, List, Literal, Optional, Union

import orjson
from pydantic import BaseModel, ConfigDict, StrictInt, StrictStr, ValidationError

from royale.errors import PuzzleStructureError
from royale.types import BLANK, Clue, Direction, Position, Puzzle
from utils.logging_config import get_logger

logger = get_logger("nyt_parser")

__all__ = ["load_nyt_file", "parse_nyt"]


class _NytModel(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class NytCell(_NytModel):
    answer: Optional[StrictStr] = None


class NytClueText(_NytModel):
    plain: StrictStr


class NytClue(_NytModel):
    cells: List[StrictInt]
    direction: Literal["Across", "Down"]
    label: StrictStr
    text: List[NytClueText]


class NytDimensions(_NytModel):
    width: StrictInt
    height: StrictInt


class NytBody(_NytModel):
    cells: List[NytCell]
    clues: List[NytClue]
    dimensions: NytDimensions


class NytDocument(_NytModel):
    body: List[NytBody]


def parse_nyt(data: Union[str, bytes, dict[str, Any]]) -> Puzzle:
    """Parse the first puzzle body of an NYT crossword document."""

    if isinstance(data, (str, bytes)):
        try:
            data = orjson.loads(data)
        except orjson.JSONDecodeError as exc:
            raise PuzzleStructureError(f"Puzzle file is not valid JSON: {exc}") from exc

    try:
        document = NytDocument.model_validate(data)
    except ValidationError as exc:
        raise PuzzleStructureError(f"Unexpected puzzle document shape: {exc}") from exc

    if not document.body:
        raise PuzzleStructureError("Puzzle document has no body")

    body = document.body[0]
    width, height = body.dimensions.width, body.dimensions.height
    if width <= 0 or height <= 0:
        raise PuzzleStructureError(f"Invalid puzzle dimensions {width}x{height}")
    if len(body.cells) != width * height:
        raise PuzzleStructureError(
            f"Expected {width * height} cells for a {width}x{height} puzzle, got {len(body.cells)}"
        )

    cell_letters: List[str] = []
    for y in range(height):
        row = body.cells[y * width : (y + 1) * width]
        letters = []
        for x, cell in enumerate(row):
            if cell.answer is None:
                letters.append(BLANK)
            elif len(cell.answer) == 1:
                letters.append(cell.answer)
            else:
                raise PuzzleStructureError(f"Multi-letter answer {cell.answer!r} at ({x}, {y}) is not supported")
        cell_letters.append("".join(letters))

    clues = []
    for clue in body.clues:
        if not clue.cells:
            raise PuzzleStructureError(f"Clue {clue.label} {clue.direction} covers no cells")
        start = clue.cells[0]
        clues.append(
            Clue(
                start=Position(x=start % width, y=start // width),
                direction=Direction.ACROSS if clue.direction == "Across" else Direction.DOWN,
                text="\n".join(part.plain for part in clue.text),
            )
        )

    logger.debug("Parsed %dx%d NYT puzzle with %d clues", width, height, len(clues))
    return Puzzle(cell_letters=cell_letters, clues=clues)


def load_nyt_file(path: Union[str, Path]) -> Puzzle:
    """Read and parse an NYT crossword JSON file."""

    return parse_nyt(Path(path).read_bytes())
