"""Exception hierarchy shared by the model, protocol and endpoints."""

from __future__ import annotations

from typing import Any

__all__ = [
    "BoardBindingError",
    "BoardOwnershipError",
    "GameStateError",
    "InvalidLetterError",
    "NotAuthorityError",
    "OutOfBoundsError",
    "PacketValidationError",
    "ParserReentryError",
    "PermissionDeniedError",
    "ProtocolError",
    "PuzzleStructureError",
    "RoyaleError",
    "SelectionError",
    "UnresolvedReferenceError",
]


class RoyaleError(Exception):
    """Base class for every error raised by the crossword royale core."""

    code = "error"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code


class InvalidLetterError(RoyaleError, ValueError):
    """Raised when a cell letter is not empty or a single A-Z letter."""

    code = "invalid_letter"


class PuzzleStructureError(RoyaleError, ValueError):
    """Raised when a puzzle cannot be turned into a board."""

    code = "invalid_puzzle"


class PacketValidationError(RoyaleError):
    """Raised when an inbound packet is malformed or matches no known shape."""

    code = "invalid_packet"


class UnresolvedReferenceError(PacketValidationError, LookupError):
    """Raised when a packet names a board, cell or player that cannot be used."""

    code = "unresolved_reference"


class PermissionDeniedError(RoyaleError):
    """Raised when a change touches a field outside its ``allow`` list."""

    code = "permission_denied"


class SelectionError(RoyaleError):
    """Raised when a selection change cannot be applied."""

    code = "invalid_selection"

    def __init__(self, message: str, *, change: Any = None) -> None:
        super().__init__(message)
        self.change = change


class OutOfBoundsError(RoyaleError, IndexError):
    """Raised when a grid coordinate lies outside the board."""

    code = "out_of_bounds"


class BoardBindingError(RoyaleError):
    """Raised when a cell's board reference is missing or assigned twice."""

    code = "board_binding"


class BoardOwnershipError(RoyaleError):
    """Raised when a board is handed to a player while owned by another one."""

    code = "board_ownership"


class GameStateError(RoyaleError):
    """Raised on an illegal game status transition."""

    code = "game_state"


class NotAuthorityError(RoyaleError):
    """Raised when an authority-only operation is invoked on a participant."""

    code = "not_authority"


class ProtocolError(RoyaleError):
    """Raised when an endpoint is used against the sync protocol contract."""

    code = "protocol"


class ParserReentryError(RoyaleError, RuntimeError):
    """Raised when a packet parse starts while another one is in progress."""

    code = "parser_reentry"
