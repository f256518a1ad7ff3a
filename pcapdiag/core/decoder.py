"""
HeaderDecoder - walks a frame through the registered layer handlers.
"""

from __future__ import annotations

import logging

from pcapdiag.core.packet import DecodedPacket
from pcapdiag.core.reader import LinkLayerType, get_link_layer_type
from pcapdiag.protocols import get_protocol_registry
from pcapdiag.protocols.base import BaseProtocolHandler, Layer, ParseResult, ProtocolContext
from pcapdiag.protocols.registry import ProtocolHandlerRegistry

logger = logging.getLogger(__name__)


# link layer name -> first handler
_LINK_HANDLERS = {
    LinkLayerType.ETHERNET: 'ethernet',
    LinkLayerType.LINUX_SLL: 'linux_sll',
    LinkLayerType.RAW_IP: 'raw_ip',
    LinkLayerType.NULL: 'null',
}


class HeaderDecoder:
    """
    Decode link, network and transport headers of one frame.

    Each layer handler returns a ParseResult naming the next protocol;
    the first failed result stops the walk and its handler name is
    recorded as ``malformed_layer``. Once a transport header decodes, the
    application peeks registered for that transport are run on its
    payload. ``decode`` never raises on frame contents.

    Examples:
        >>> decoder = HeaderDecoder(LinkLayerType.ETHERNET)
        >>> pkt = decoder.decode(frame.data, frame.timestamp)
        >>> pkt.protocol_stack
        ['ethernet', 'ipv4', 'tcp']
    """

    def __init__(self, link_type: str | int = LinkLayerType.ETHERNET,
                 registry: ProtocolHandlerRegistry | None = None):
        if isinstance(link_type, int):
            link_type = get_link_layer_type(link_type)
        self.link_type = link_type
        self._registry = registry or get_protocol_registry()
        self._link_protocol = _LINK_HANDLERS.get(link_type)
        self._handlers: dict[str, BaseProtocolHandler | None] = {}

        if self._link_protocol is None:
            logger.warning("Unsupported link layer type %r: frames will not be decoded", link_type)

    def _get_handler(self, name: str) -> BaseProtocolHandler | None:
        if name not in self._handlers:
            self._handlers[name] = self._registry.create_instance(name)
        return self._handlers[name]

    def decode(self, data: bytes, timestamp: float = 0.0, wirelen: int | None = None) -> DecodedPacket:
        """Decode one frame into a DecodedPacket."""
        packet = DecodedPacket(timestamp=timestamp, length=len(data), wirelen=wirelen)

        if self._link_protocol is None:
            packet.malformed_layer = self.link_type
            return packet

        context = ProtocolContext(packet)
        payload = data
        proto = self._link_protocol
        last_handler = None

        while proto is not None:
            handler = self._get_handler(proto)
            if handler is None:
                logger.debug("No handler registered for %s", proto)
                break

            result = self._run(handler, payload, context)
            if not result.success:
                packet.malformed_layer = handler.name
                logger.debug("Malformed %s layer in frame at %.6f (%d bytes)",
                             handler.name, timestamp, len(data))
                return packet

            last_handler = handler
            payload = result.data
            proto = result.next_protocol

        if last_handler is not None and last_handler.layer == Layer.TRANSPORT:
            packet.payload = payload
            self._peek(last_handler.name, payload, context)

        return packet

    def _peek(self, transport: str, payload: bytes, context: ProtocolContext) -> None:
        """Run the application handlers registered for a transport."""
        for handler_cls in self._registry.get_by_encapsulation(transport):
            handler = self._get_handler(handler_cls.name)
            if handler is None or not handler.can_parse(payload, context):
                continue
            result = self._run(handler, payload, context)
            if not result.success:
                logger.debug("%s peek did not match", handler.name)

    @staticmethod
    def _run(handler: BaseProtocolHandler, payload: bytes, context: ProtocolContext) -> ParseResult:
        try:
            return handler.parse(payload, context)
        except Exception:
            logger.debug("Handler %s raised while parsing", handler.name, exc_info=True)
            return ParseResult(success=False)
