"""
Link layer protocol handlers (Ethernet, Linux SLL, Raw IP, BSD loopback).
"""

from __future__ import annotations

import struct

import dpkt

from pcapdiag.core.packet import EthernetInfo
from pcapdiag.protocols.base import BaseProtocolHandler, ProtocolContext, ParseResult, Layer
from pcapdiag.protocols.registry import register_protocol

ETHERTYPE_IP = 0x0800
ETHERTYPE_ARP = 0x0806
ETHERTYPE_IP6 = 0x86DD

# 802.1Q, 802.1ad and the legacy QinQ tag
ETHERTYPE_VLAN = (0x8100, 0x88A8, 0x9100)

_ETHERTYPE_NEXT = {
    ETHERTYPE_IP: 'ipv4',
    ETHERTYPE_IP6: 'ipv6',
    ETHERTYPE_ARP: 'arp',
}


@register_protocol('ethernet', Layer.DATA_LINK, priority=100)
class EthernetHandler(BaseProtocolHandler):
    """Ethernet II link layer handler.

    802.1Q and 802.1ad tags are walked on the raw header, so ``type`` on
    the stored info is the inner EtherType and ``vlan`` the outer VLAN id.
    A frame whose EtherType is neither IPv4, IPv6 nor ARP keeps its
    Ethernet info but is reported as a failed parse.
    """

    HDR_LEN = 14
    TAG_LEN = 4

    def parse(self, payload: bytes, context: ProtocolContext) -> ParseResult:
        """Parse Ethernet frame."""
        if len(payload) < self.HDR_LEN:
            return ParseResult(success=False)

        try:
            eth = dpkt.ethernet.Ethernet(payload)
        except Exception:
            return ParseResult(success=False)

        info = EthernetInfo.from_dpkt(eth)
        context.packet.eth = info

        # dpkt releases disagree on tagged frames, so tags are read here
        type_offset = 12
        ethertype = struct.unpack_from('>H', payload, type_offset)[0]
        while ethertype in ETHERTYPE_VLAN:
            if len(payload) < type_offset + 2 + self.TAG_LEN:
                return ParseResult(success=False, attributes={'ethertype': ethertype})
            tci, ethertype = struct.unpack_from('>HH', payload, type_offset + 2)
            if info.vlan is None:
                info.vlan = tci & 0x0FFF
            type_offset += self.TAG_LEN
        info.type = ethertype

        next_proto = _ETHERTYPE_NEXT.get(ethertype)
        if next_proto is None:
            return ParseResult(success=False, attributes={'ethertype': ethertype})

        return ParseResult(
            success=True,
            data=payload[type_offset + 2:],
            next_protocol=next_proto,
            attributes={'vlan': info.vlan}
        )


@register_protocol('linux_sll', Layer.DATA_LINK, priority=100)
class LinuxSLLHandler(BaseProtocolHandler):
    """Linux cooked capture (SLL) link layer handler."""

    SLL_HDR_LEN = 16

    def parse(self, payload: bytes, context: ProtocolContext) -> ParseResult:
        """Parse Linux SLL header."""
        if len(payload) < self.SLL_HDR_LEN:
            return ParseResult(success=False)

        pkt_type, arphrd_type, addr_len, addr, proto = struct.unpack('>HHH8sH', payload[:self.SLL_HDR_LEN])

        next_proto = _ETHERTYPE_NEXT.get(proto)
        if next_proto is None:
            return ParseResult(success=False, attributes={'ethertype': proto})

        return ParseResult(
            success=True,
            data=payload[self.SLL_HDR_LEN:],
            next_protocol=next_proto,
            attributes={'pkt_type': pkt_type, 'arphrd_type': arphrd_type, 'addr': addr[:addr_len]}
        )


@register_protocol('raw_ip', Layer.DATA_LINK, priority=50)
class RawIPHandler(BaseProtocolHandler):
    """Raw IP handler (no link layer)."""

    def parse(self, payload: bytes, context: ProtocolContext) -> ParseResult:
        """Dispatch on the IP version nibble."""
        if len(payload) < 1:
            return ParseResult(success=False)

        version = (payload[0] >> 4) & 0x0F
        if version == 4:
            return ParseResult(success=True, data=payload, next_protocol='ipv4')
        if version == 6:
            return ParseResult(success=True, data=payload, next_protocol='ipv6')
        return ParseResult(success=False)


@register_protocol('null', Layer.DATA_LINK, priority=50)
class NullHandler(BaseProtocolHandler):
    """BSD loopback (DLT_NULL / DLT_LOOP) handler.

    The 4-byte address family is written in the capturing host's byte
    order, so both orders are accepted.
    """

    HDR_LEN = 4

    # AF_INET6 differs across BSD flavours and Linux
    AF_INET = 2
    AF_INET6 = (10, 24, 28, 30)

    def parse(self, payload: bytes, context: ProtocolContext) -> ParseResult:
        """Parse loopback header."""
        if len(payload) < self.HDR_LEN:
            return ParseResult(success=False)

        family = struct.unpack('<I', payload[:4])[0]
        if family > 0xFFFF:
            family = struct.unpack('>I', payload[:4])[0]

        if family == self.AF_INET:
            next_proto = 'ipv4'
        elif family in self.AF_INET6:
            next_proto = 'ipv6'
        else:
            return ParseResult(success=False, attributes={'family': family})

        return ParseResult(success=True, data=payload[self.HDR_LEN:], next_protocol=next_proto)
