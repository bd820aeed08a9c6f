"""Pydantic models describing serialized board, player and game state.

These are the shapes exchanged on the wire (camelCase keys) and the input of
the ``from_*_state`` constructors of the model classes.
"""

from __future__ import annotations

from typing import Annotated, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    StringConstraints,
)
from pydantic.alias_generators import to_camel

from royale.types import CellStatus, Direction, GameStatus, Position

CellLetter = Annotated[StrictStr, StringConstraints(pattern=r"^[A-Z]?$")]
Number = Union[StrictInt, StrictFloat]


class WireModel(BaseModel):
    """Base model: camelCase aliases, unknown keys rejected, immutable."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        frozen=True,
    )

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class CellState(WireModel):
    letter: CellLetter
    status: CellStatus


class KnownLetter(WireModel):
    """Answer letter visible to the receiving party."""

    type: Literal["known"] = "known"
    letter: CellLetter


class UnknownLetter(WireModel):
    """Answer letter hidden from the receiving party."""

    type: Literal["unknown"] = "unknown"


WordLetter = Annotated[Union[KnownLetter, UnknownLetter], Field(discriminator="type")]


class WordState(WireModel):
    label: StrictStr
    letters: List[WordLetter]
    direction: Direction
    start_cell: Position
    clue_text: StrictStr


class SelectionState(WireModel):
    cell: Position
    direction: Direction


class BoardState(WireModel):
    id: StrictStr
    cell_states: List[List[CellState]]
    selection: Optional[SelectionState]
    words: List[WordState]


class PlayerState(WireModel):
    id: StrictStr
    board_state: Optional[BoardState]
    health: Number
    max_health: Number
    ready: StrictBool


class GameStatusState(WireModel):
    type: GameStatus


class GameState(WireModel):
    status: GameStatusState
    player_states: List[PlayerState]


__all__ = [
    "BoardState",
    "CellLetter",
    "CellState",
    "GameState",
    "GameStatusState",
    "KnownLetter",
    "Number",
    "PlayerState",
    "SelectionState",
    "UnknownLetter",
    "WireModel",
    "WordLetter",
    "WordState",
]
