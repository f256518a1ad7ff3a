"""
Decoded packet model.

Each protocol layer is a small slotted info object. A ``DecodedPacket``
holds only the layers that actually decoded; a missing layer is ``None``
and never a zero-filled placeholder.
"""

from __future__ import annotations

import socket
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import dpkt


class _SlottedInfoBase:
    """Base for __slots__-based info classes.

    Subclasses must define _SLOT_NAMES (tuple of field names).
    """
    __slots__ = ()
    _SLOT_NAMES: tuple[str, ...] = ()

    def get(self, key: str, default=None):
        try:
            return getattr(self, key)
        except AttributeError:
            return default

    def to_dict(self) -> dict:
        return {k: getattr(self, k) for k in self._SLOT_NAMES}

    def __eq__(self, other) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        fields = ', '.join(f"{k}={getattr(self, k)!r}" for k in self._SLOT_NAMES)
        return f"{type(self).__name__}({fields})"


def format_mac(raw: bytes) -> str:
    return ':'.join(f"{b:02x}" for b in raw)


class EthernetInfo(_SlottedInfoBase):
    """Ethernet layer information.

    ``type`` is the EtherType after any 802.1Q/802.1ad tags; ``vlan`` is the
    outermost VLAN id, or None for an untagged frame.
    """
    __slots__ = ('src', 'dst', 'type', 'vlan')
    _SLOT_NAMES = ('src', 'dst', 'type', 'vlan')

    def __init__(self, src="", dst="", type=0, vlan=None):
        self.src = src
        self.dst = dst
        self.type = type
        self.vlan = vlan

    @property
    def is_broadcast(self) -> bool:
        return self.dst == "ff:ff:ff:ff:ff:ff"

    @property
    def is_multicast(self) -> bool:
        # group bit of the first octet, broadcast excluded
        if not self.dst or self.is_broadcast:
            return False
        return int(self.dst[:2], 16) & 0x01 == 1

    @classmethod
    def from_dpkt(cls, eth: dpkt.ethernet.Ethernet) -> EthernetInfo:
        return cls(src=format_mac(eth.src), dst=format_mac(eth.dst), type=eth.type)


class ARPInfo(_SlottedInfoBase):
    """ARP message information."""
    __slots__ = ('opcode', 'sender_mac', 'sender_ip', 'target_mac', 'target_ip')
    _SLOT_NAMES = ('opcode', 'sender_mac', 'sender_ip', 'target_mac', 'target_ip')

    def __init__(self, opcode=0, sender_mac="", sender_ip="", target_mac="", target_ip=""):
        self.opcode = opcode
        self.sender_mac = sender_mac
        self.sender_ip = sender_ip
        self.target_mac = target_mac
        self.target_ip = target_ip

    @classmethod
    def from_dpkt(cls, arp: dpkt.arp.ARP) -> ARPInfo:
        def _ip(raw: bytes) -> str:
            return socket.inet_ntop(socket.AF_INET, raw) if len(raw) == 4 else raw.hex()

        return cls(
            opcode=arp.op,
            sender_mac=format_mac(arp.sha),
            sender_ip=_ip(arp.spa),
            target_mac=format_mac(arp.tha),
            target_ip=_ip(arp.tpa),
        )


class IPInfo(_SlottedInfoBase):
    """IPv4 layer information."""
    __slots__ = ('src', 'dst', 'proto', 'ttl', 'len', 'id', 'flags', 'offset')
    _SLOT_NAMES = ('src', 'dst', 'proto', 'ttl', 'len', 'id', 'flags', 'offset')

    version = 4

    def __init__(self, src="", dst="", proto=0, ttl=0, len=0, id=0, flags=0, offset=0):
        self.src = src
        self.dst = dst
        self.proto = proto
        self.ttl = ttl
        self.len = len
        self.id = id
        self.flags = flags
        self.offset = offset

    @property
    def more_fragments(self) -> bool:
        return (self.flags & 0x1) != 0

    @property
    def is_fragment(self) -> bool:
        return self.more_fragments or self.offset != 0

    @classmethod
    def from_dpkt(cls, ip: dpkt.ip.IP) -> IPInfo:
        return cls(
            src=socket.inet_ntop(socket.AF_INET, ip.src),
            dst=socket.inet_ntop(socket.AF_INET, ip.dst),
            proto=ip.p,
            ttl=ip.ttl,
            len=ip.len,
            id=ip.id,
            flags=(ip._flags_offset & 0xe000) >> 13,
            offset=ip._flags_offset & 0x1fff,
        )


class IP6Info(_SlottedInfoBase):
    """IPv6 layer information."""
    __slots__ = ('src', 'dst', 'next_header', 'hop_limit', 'len')
    _SLOT_NAMES = ('src', 'dst', 'next_header', 'hop_limit', 'len')

    version = 6

    def __init__(self, src="", dst="", next_header=0, hop_limit=0, len=0):
        self.src = src
        self.dst = dst
        self.next_header = next_header
        self.hop_limit = hop_limit
        self.len = len

    # extension-header fragmentation is not inspected
    is_fragment = False

    @property
    def proto(self) -> int:
        return self.next_header

    @classmethod
    def from_dpkt(cls, ip6: dpkt.ip6.IP6) -> IP6Info:
        return cls(
            src=socket.inet_ntop(socket.AF_INET6, ip6.src),
            dst=socket.inet_ntop(socket.AF_INET6, ip6.dst),
            # upper-layer protocol after any extension headers
            next_header=getattr(ip6, 'p', ip6.nxt),
            hop_limit=ip6.hlim,
            len=ip6.plen,
        )


class TCPInfo(_SlottedInfoBase):
    """TCP segment information."""
    __slots__ = ('sport', 'dport', 'seq', 'ack_num', 'flags', 'win')
    _SLOT_NAMES = ('sport', 'dport', 'seq', 'ack_num', 'flags', 'win')

    def __init__(self, sport=0, dport=0, seq=0, ack_num=0, flags=0, win=0):
        self.sport = sport
        self.dport = dport
        self.seq = seq
        self.ack_num = ack_num
        self.flags = flags
        self.win = win

    @property
    def syn(self) -> bool: return bool(self.flags & 0x02)
    @property
    def fin(self) -> bool: return bool(self.flags & 0x01)
    @property
    def rst(self) -> bool: return bool(self.flags & 0x04)
    @property
    def psh(self) -> bool: return bool(self.flags & 0x08)
    @property
    def ack(self) -> bool: return bool(self.flags & 0x10)

    @property
    def is_handshake(self) -> bool: return self.syn and not self.ack
    @property
    def is_handshake_ack(self) -> bool: return self.syn and self.ack

    @classmethod
    def from_dpkt(cls, tcp: dpkt.tcp.TCP) -> TCPInfo:
        return cls(
            sport=tcp.sport,
            dport=tcp.dport,
            seq=tcp.seq,
            ack_num=tcp.ack if tcp.flags & 0x10 else 0,
            flags=tcp.flags,
            win=tcp.win,
        )


class UDPInfo(_SlottedInfoBase):
    """UDP datagram information."""
    __slots__ = ('sport', 'dport', 'len')
    _SLOT_NAMES = ('sport', 'dport', 'len')

    def __init__(self, sport=0, dport=0, len=0):
        self.sport = sport
        self.dport = dport
        self.len = len

    @classmethod
    def from_dpkt(cls, udp: dpkt.udp.UDP) -> UDPInfo:
        return cls(sport=udp.sport, dport=udp.dport, len=udp.ulen)


class ICMPInfo(_SlottedInfoBase):
    """ICMP / ICMPv6 message information."""
    __slots__ = ('type', 'code', 'v6')
    _SLOT_NAMES = ('type', 'code', 'v6')

    def __init__(self, type=0, code=0, v6=False):
        self.type = type
        self.code = code
        self.v6 = v6


class DNSInfo(_SlottedInfoBase):
    """DNS message summary."""
    __slots__ = ('queries', 'is_response', 'response_code', 'answer_count')
    _SLOT_NAMES = ('queries', 'is_response', 'response_code', 'answer_count')

    def __init__(self, queries=None, is_response=False, response_code=0, answer_count=0):
        self.queries = queries if queries is not None else []
        self.is_response = is_response
        self.response_code = response_code
        self.answer_count = answer_count


class TLSInfo(_SlottedInfoBase):
    """First TLS record header of a segment."""
    __slots__ = ('content_type', 'major', 'minor', 'record_length', 'handshake_type')
    _SLOT_NAMES = ('content_type', 'major', 'minor', 'record_length', 'handshake_type')

    def __init__(self, content_type=0, major=0, minor=0, record_length=0, handshake_type=None):
        self.content_type = content_type
        self.major = major
        self.minor = minor
        self.record_length = record_length
        self.handshake_type = handshake_type

    @property
    def version(self) -> str:
        return f"{self.major}.{self.minor}"

    @property
    def version_name(self) -> str:
        names = {(3, 0): "SSL 3.0", (3, 1): "TLS 1.0", (3, 2): "TLS 1.1",
                 (3, 3): "TLS 1.2", (3, 4): "TLS 1.3"}
        return names.get((self.major, self.minor), self.version)

    @property
    def is_handshake(self) -> bool:
        return self.content_type == 22

    @property
    def is_deprecated(self) -> bool:
        """Handshake advertising SSL 3.0 or TLS 1.0."""
        return self.is_handshake and self.major == 3 and self.minor in (0, 1)


class HTTPInfo(_SlottedInfoBase):
    """HTTP request peek."""
    __slots__ = ('method', 'path', 'host', 'basic_auth')
    _SLOT_NAMES = ('method', 'path', 'host', 'basic_auth')

    def __init__(self, method=None, path=None, host=None, basic_auth=False):
        self.method = method
        self.path = path
        self.host = host
        self.basic_auth = basic_auth


# Map from short property names to layer registry names
_PROTO_KEY_TO_LAYER = {
    'eth': 'ethernet', 'arp': 'arp', 'ip': 'ipv4', 'ip6': 'ipv6',
    'tcp': 'tcp', 'udp': 'udp', 'icmp': 'icmp',
    'dns': 'dns', 'tls': 'tls', 'http': 'http',
}


def _layer_property(key: str) -> property:
    name = _PROTO_KEY_TO_LAYER[key]

    def getter(self):
        return self.layers.get(name)

    def setter(self, v):
        if v is not None:
            self.layers[name] = v
        else:
            self.layers.pop(name, None)

    return property(getter, setter)


class DecodedPacket:
    """A frame decoded as far as its headers allow.

    ``layers`` maps layer names to info objects in decode order. When a
    recognized layer fails to decode, decoding stops there and
    ``malformed_layer`` records which layer it was.
    """
    __slots__ = ('timestamp', 'length', 'wirelen', 'layers', 'payload', 'malformed_layer')

    def __init__(self, timestamp=0.0, length=0, wirelen=None, payload=b"", malformed_layer=None,
                 **layers):
        self.timestamp = timestamp
        self.length = length
        self.wirelen = length if wirelen is None else wirelen
        self.payload = payload
        self.malformed_layer = malformed_layer
        self.layers = {}
        for key, val in layers.items():
            if key not in _PROTO_KEY_TO_LAYER:
                raise TypeError(f"Unknown layer {key!r}")
            if val is not None:
                self.layers[_PROTO_KEY_TO_LAYER[key]] = val

    eth = _layer_property('eth')
    arp = _layer_property('arp')
    ip = _layer_property('ip')
    ip6 = _layer_property('ip6')
    tcp = _layer_property('tcp')
    udp = _layer_property('udp')
    icmp = _layer_property('icmp')
    dns = _layer_property('dns')
    tls = _layer_property('tls')
    http = _layer_property('http')

    @property
    def protocol_stack(self) -> list[str]:
        """Ordered list of layer names present in this packet."""
        return list(self.layers.keys())

    @property
    def is_unparsed(self) -> bool:
        return not self.layers

    @property
    def is_malformed(self) -> bool:
        return self.malformed_layer is not None or not self.layers

    @property
    def network(self) -> IPInfo | IP6Info | None:
        return self.ip or self.ip6

    @property
    def transport(self) -> TCPInfo | UDPInfo | None:
        return self.tcp or self.udp

    @property
    def src(self) -> str | None:
        net = self.network
        return net.src if net else None

    @property
    def dst(self) -> str | None:
        net = self.network
        return net.dst if net else None

    @property
    def sport(self) -> int | None:
        trans = self.transport
        return trans.sport if trans else None

    @property
    def dport(self) -> int | None:
        trans = self.transport
        return trans.dport if trans else None

    @property
    def is_fragment(self) -> bool:
        net = self.network
        return bool(net and net.is_fragment)

    def to_dict(self) -> dict:
        result = {
            'timestamp': self.timestamp,
            'length': self.length,
            'malformed_layer': self.malformed_layer,
        }
        for name, info in self.layers.items():
            result[name] = info.to_dict()
        return result

    def __repr__(self) -> str:
        stack = '/'.join(self.protocol_stack) or 'unparsed'
        return f"DecodedPacket({stack}, len={self.length}, ts={self.timestamp})"
