"""Abstract synchronisation boundary shared by the client and the server."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional, Union

from royale.errors import GameStateError, NotAuthorityError

if TYPE_CHECKING:  # pragma: no cover - used only for typing
    from royale.game import Game


class EndpointRole(str, Enum):
    """Role tag deciding which operations an endpoint may perform."""

    AUTHORITY = "authority"
    PARTICIPANT = "participant"


@dataclass(frozen=True, slots=True)
class AnnounceOptions:
    """Options for a single announcement.

    ``except_player_id`` names the peer that must not receive the packet,
    usually the originator of the change being re-broadcast.
    """

    except_player_id: Optional[str] = None


Announce = Union[bool, AnnounceOptions]


def announce_options(announce: Announce) -> AnnounceOptions:
    """Return the options carried by an ``announce`` argument."""

    if isinstance(announce, AnnounceOptions):
        return announce
    return AnnounceOptions()


class Endpoint(ABC):
    """One side of the sync protocol.

    Model objects call :meth:`announce` after a local mutation; the concrete
    endpoint decides who receives it. Only an endpoint tagged
    :attr:`EndpointRole.AUTHORITY` may drive game-wide transitions.
    """

    role: EndpointRole = EndpointRole.PARTICIPANT

    @abstractmethod
    def announce(self, packet: Dict[str, Any], *, except_player_id: Optional[str] = None) -> None:
        """Propagate ``packet`` to the other session participants."""

    @property
    @abstractmethod
    def game(self) -> Optional["Game"]:
        """Game this endpoint synchronises, if any."""

    def is_authority(self) -> bool:
        return self.role is EndpointRole.AUTHORITY

    def require_game(self) -> "Game":
        game = self.game
        if game is None:
            raise GameStateError(f"{type(self).__name__} has no game")
        return game

    def start_game(self) -> None:
        """Assign boards and move the game to ``playing`` (authority only)."""

        raise NotAuthorityError(f"{type(self).__name__} cannot start the game")

    def dispatch(self, packet: Dict[str, Any], announce: Announce) -> None:
        """Announce ``packet`` using the options carried by ``announce``."""

        options = announce_options(announce)
        self.announce(packet, except_player_id=options.except_player_id)


__all__ = ["Announce", "AnnounceOptions", "Endpoint", "EndpointRole", "announce_options"]
