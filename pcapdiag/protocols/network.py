"""
Network layer protocol handlers (IPv4, IPv6, ARP).
"""

from __future__ import annotations

import dpkt

from pcapdiag.core.packet import ARPInfo, IPInfo, IP6Info
from pcapdiag.protocols.base import BaseProtocolHandler, ProtocolContext, ParseResult, Layer
from pcapdiag.protocols.registry import register_protocol

# IP protocol numbers
IP_PROTO_ICMP = 1
IP_PROTO_TCP = 6
IP_PROTO_UDP = 17
IP_PROTO_ICMPV6 = 58

_IP_PROTO_NEXT = {
    IP_PROTO_TCP: 'tcp',
    IP_PROTO_UDP: 'udp',
    IP_PROTO_ICMP: 'icmp',
    IP_PROTO_ICMPV6: 'icmpv6',
}


@register_protocol('ipv4', Layer.NETWORK, priority=100)
class IPv4Handler(BaseProtocolHandler):
    """IPv4 network layer handler.

    Non-first fragments carry no transport header, so their payload is
    handed back without a next protocol.
    """

    MIN_HDR_LEN = 20

    def parse(self, payload: bytes, context: ProtocolContext) -> ParseResult:
        """Parse IPv4 packet."""
        if len(payload) < self.MIN_HDR_LEN or payload[0] >> 4 != 4:
            return ParseResult(success=False)

        hdr_len = (payload[0] & 0x0F) * 4
        if hdr_len < self.MIN_HDR_LEN or len(payload) < hdr_len:
            return ParseResult(success=False)

        try:
            ip = dpkt.ip.IP(payload)
            data = bytes(ip.data)
        except Exception:
            return ParseResult(success=False)

        info = IPInfo.from_dpkt(ip)
        context.packet.ip = info

        if info.offset != 0:
            return ParseResult(success=True, data=data, attributes={'fragment': True})

        return ParseResult(
            success=True,
            data=data,
            next_protocol=_IP_PROTO_NEXT.get(ip.p),
            attributes={'fragment': info.is_fragment}
        )


@register_protocol('ipv6', Layer.NETWORK, priority=100)
class IPv6Handler(BaseProtocolHandler):
    """IPv6 network layer handler."""

    HDR_LEN = 40

    def parse(self, payload: bytes, context: ProtocolContext) -> ParseResult:
        """Parse IPv6 packet."""
        if len(payload) < self.HDR_LEN or payload[0] >> 4 != 6:
            return ParseResult(success=False)

        try:
            ip6 = dpkt.ip6.IP6(payload)
            data = bytes(ip6.data)
        except Exception:
            return ParseResult(success=False)

        info = IP6Info.from_dpkt(ip6)
        context.packet.ip6 = info

        next_proto = _IP_PROTO_NEXT.get(info.next_header)
        if next_proto == 'icmp':
            next_proto = None

        return ParseResult(
            success=True,
            data=data,
            next_protocol=next_proto
        )


@register_protocol('arp', Layer.NETWORK, priority=50)
class ARPHandler(BaseProtocolHandler):
    """ARP protocol handler."""

    HDR_LEN = 28

    def parse(self, payload: bytes, context: ProtocolContext) -> ParseResult:
        """Parse ARP packet."""
        if len(payload) < self.HDR_LEN:
            return ParseResult(success=False)

        try:
            arp = dpkt.arp.ARP(payload)
        except Exception:
            return ParseResult(success=False)

        context.packet.arp = ARPInfo.from_dpkt(arp)
        return ParseResult(success=True, data=b"")
