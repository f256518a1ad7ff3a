"""
Transport layer protocol handlers (TCP, UDP, ICMP, ICMPv6).
"""

from __future__ import annotations

import dpkt

from pcapdiag.core.packet import ICMPInfo, TCPInfo, UDPInfo
from pcapdiag.protocols.base import BaseProtocolHandler, ProtocolContext, ParseResult, Layer
from pcapdiag.protocols.registry import register_protocol


@register_protocol('tcp', Layer.TRANSPORT, priority=100)
class TCPHandler(BaseProtocolHandler):
    """TCP transport layer handler."""

    MIN_HDR_LEN = 20

    def parse(self, payload: bytes, context: ProtocolContext) -> ParseResult:
        """Parse TCP segment."""
        if len(payload) < self.MIN_HDR_LEN:
            return ParseResult(success=False)

        # data offset must cover the fixed header and fit in the capture
        hdr_len = (payload[12] >> 4) * 4
        if hdr_len < self.MIN_HDR_LEN or len(payload) < hdr_len:
            return ParseResult(success=False)

        try:
            tcp = dpkt.tcp.TCP(payload)
            data = bytes(tcp.data)
        except Exception:
            return ParseResult(success=False)

        context.packet.tcp = TCPInfo.from_dpkt(tcp)

        return ParseResult(
            success=True,
            data=data,
            attributes={
                'seq': tcp.seq,
                'flags': tcp.flags,
                'window': tcp.win,
            }
        )


@register_protocol('udp', Layer.TRANSPORT, priority=100)
class UDPHandler(BaseProtocolHandler):
    """UDP transport layer handler."""

    HDR_LEN = 8

    def parse(self, payload: bytes, context: ProtocolContext) -> ParseResult:
        """Parse UDP datagram."""
        if len(payload) < self.HDR_LEN:
            return ParseResult(success=False)

        try:
            udp = dpkt.udp.UDP(payload)
            data = bytes(udp.data)
        except Exception:
            return ParseResult(success=False)

        context.packet.udp = UDPInfo.from_dpkt(udp)

        return ParseResult(success=True, data=data)


@register_protocol('icmp', Layer.TRANSPORT, priority=50)
class ICMPHandler(BaseProtocolHandler):
    """ICMP protocol handler."""

    HDR_LEN = 4

    def parse(self, payload: bytes, context: ProtocolContext) -> ParseResult:
        """Parse ICMP message header."""
        if len(payload) < self.HDR_LEN:
            return ParseResult(success=False)

        context.packet.icmp = ICMPInfo(type=payload[0], code=payload[1])
        return ParseResult(success=True, data=payload[self.HDR_LEN:])


@register_protocol('icmpv6', Layer.TRANSPORT, priority=50)
class ICMPv6Handler(BaseProtocolHandler):
    """ICMPv6 protocol handler."""

    HDR_LEN = 4

    def parse(self, payload: bytes, context: ProtocolContext) -> ParseResult:
        """Parse ICMPv6 message header."""
        if len(payload) < self.HDR_LEN:
            return ParseResult(success=False)

        # reuse ICMPInfo for v6
        context.packet.icmp = ICMPInfo(type=payload[0], code=payload[1], v6=True)
        return ParseResult(success=True, data=payload[self.HDR_LEN:])
