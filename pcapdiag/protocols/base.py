"""
Protocol handler base classes and types.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import IntEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pcapdiag.core.packet import DecodedPacket


class Layer(IntEnum):
    """Protocol layer enumeration."""
    DATA_LINK = 2
    NETWORK = 3
    TRANSPORT = 4
    APPLICATION = 7


@dataclass
class ProtocolContext:
    """Context passed to protocol handlers."""
    packet: DecodedPacket
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def timestamp(self) -> float:
        return self.packet.timestamp

    @property
    def ports(self) -> set[int]:
        trans = self.packet.transport
        if trans is None:
            return set()
        return {trans.sport, trans.dport}


@dataclass
class ParseResult:
    """Result returned by protocol handler.

    A failed result means the layer was recognized but could not be
    decoded. ``next_protocol`` of ``None`` ends the layered walk.
    """
    success: bool
    data: bytes = b""  # Remaining data after parsing
    next_protocol: str | None = None
    attributes: dict[str, Any] = field(default_factory=dict)


class BaseProtocolHandler(ABC):
    """
    Abstract base class for protocol handlers.

    A handler decodes one layer from its payload, stores an info object
    on ``context.packet`` and names the protocol carried inside it.
    Handlers never raise on bad input; they return a failed ParseResult.
    """

    # Protocol name/identifier
    name: str = ""

    # Layer this handler operates on
    layer: Layer = Layer.APPLICATION

    # Transport this handler peeks into (application handlers only)
    encapsulates: str | None = None

    # Default port(s) this protocol uses (for auto-detection)
    default_ports: list[int] = []

    # Priority for handler selection (higher = preferred)
    priority: int = 0

    # Whether to attempt parsing even if default ports don't match
    force_parse: bool = False

    @abstractmethod
    def parse(self, payload: bytes, context: ProtocolContext) -> ParseResult:
        """
        Parse protocol from payload.

        Args:
            payload: Raw payload bytes to parse
            context: Protocol parsing context

        Returns:
            ParseResult with remaining data and the next protocol name
        """

    def can_parse(self, payload: bytes, context: ProtocolContext) -> bool:
        """
        Check if this handler applies to the given payload.

        Default implementation checks for non-empty payload and port matching.
        """
        if not self.force_parse and self.default_ports:
            if not context.ports & set(self.default_ports):
                return False

        return len(payload) > 0

    @classmethod
    def handler_id(cls) -> str:
        """Get unique handler identifier."""
        return f"{cls.layer.name.lower()}.{cls.name}"
