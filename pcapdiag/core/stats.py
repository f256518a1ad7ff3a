"""
Statistics aggregation: protocol distribution, conversations, talkers and
the heuristic counters read by the rule engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from pcapdiag.core.packet import DecodedPacket

ETHERTYPE_ARP = 0x0806

DEFAULT_SUSPICIOUS_PORTS = frozenset({21, 23, 4444, 6667, 1337, 31337})
DEFAULT_LARGE_DNS_THRESHOLD = 100

DNS_PORT = 53
DHCP_PORTS = (67, 68)

MALFORMED_LABEL = 'Malformed/Unknown'

# Well-known ports used to label conversations
SERVICE_PORTS = {
    20: 'FTP-DATA',
    21: 'FTP',
    22: 'SSH',
    23: 'Telnet',
    25: 'SMTP',
    53: 'DNS',
    67: 'DHCP',
    68: 'DHCP',
    80: 'HTTP',
    110: 'POP3',
    123: 'NTP',
    143: 'IMAP',
    161: 'SNMP',
    443: 'HTTPS',
    445: 'SMB',
    465: 'SMTPS',
    587: 'SMTP',
    993: 'IMAPS',
    995: 'POP3S',
    3389: 'RDP',
    5353: 'mDNS',
    8080: 'HTTP',
}


def service_label(pkt: DecodedPacket) -> str | None:
    """Service name from the lower well-known port, else the transport name."""
    if pkt.tcp is not None:
        trans, name = pkt.tcp, 'TCP'
    elif pkt.udp is not None:
        trans, name = pkt.udp, 'UDP'
    else:
        return None
    for port in sorted((trans.sport, trans.dport)):
        if port in SERVICE_PORTS:
            return SERVICE_PORTS[port]
    return name


class HeuristicCounters:
    """
    Named event counters shared by the aggregator and the flow tracker.

    Each counter also remembers the timestamp of the first event that
    incremented it.
    """

    NAMES = (
        'suspicious_ports', 'cleartext_auth', 'retransmissions', 'resets',
        'zero_window', 'deprecated_tls', 'fragments', 'large_dns',
        'dns_queries', 'dhcp', 'arp', 'broadcast', 'multicast',
    )

    def __init__(self):
        self._counts: dict[str, int] = {name: 0 for name in self.NAMES}
        self._first_seen: dict[str, float] = {}

    def hit(self, name: str, timestamp: float | None = None, count: int = 1) -> None:
        if name not in self._counts:
            raise KeyError(f"Unknown heuristic counter: {name!r}")
        self._counts[name] += count
        if timestamp is not None and name not in self._first_seen:
            self._first_seen[name] = timestamp

    def __getitem__(self, name: str) -> int:
        try:
            return self._counts[name]
        except KeyError:
            raise KeyError(f"Unknown heuristic counter: {name!r}") from None

    def get(self, name: str, default: int = 0) -> int:
        return self._counts.get(name, default)

    def first_seen(self, name: str) -> float | None:
        return self._first_seen.get(name)

    def to_dict(self) -> dict[str, int]:
        return dict(self._counts)

    def __repr__(self) -> str:
        nonzero = {k: v for k, v in self._counts.items() if v}
        return f"HeuristicCounters({nonzero})"


@dataclass(frozen=True)
class ConversationKey:
    """Unordered address pair, stored sorted."""
    address_a: str
    address_b: str

    @classmethod
    def of(cls, src: str, dst: str) -> ConversationKey:
        a, b = sorted((src, dst))
        return cls(a, b)


@dataclass
class Conversation:
    """Traffic between two addresses in either direction."""
    src: str
    dst: str
    bytes: int = 0
    packets: int = 0
    labels: dict[str, int] = field(default_factory=dict)

    @property
    def protocol(self) -> str:
        """Most frequent service label; ties go to the label seen first."""
        if not self.labels:
            return 'Unknown'
        return max(self.labels, key=self.labels.get)

    def add(self, length: int, label: str | None) -> None:
        self.packets += 1
        self.bytes += length
        if label:
            self.labels[label] = self.labels.get(label, 0) + 1


@dataclass
class Talker:
    """Traffic sent by one source address."""
    address: str
    packets: int = 0
    bytes: int = 0


class StatisticsAggregator:
    """
    Accumulate per-packet statistics over one pass.

    Examples:
        >>> counters = HeuristicCounters()
        >>> agg = StatisticsAggregator(counters)
        >>> for pkt in packets:
        ...     agg.update(pkt)
        >>> agg.protocol_distribution
        {'IPv4': 10, 'TCP': 8, 'UDP': 2, 'DNS': 2}
    """

    def __init__(
        self,
        counters: HeuristicCounters | None = None,
        suspicious_ports: Iterable[int] = DEFAULT_SUSPICIOUS_PORTS,
        large_dns_threshold: int = DEFAULT_LARGE_DNS_THRESHOLD,
    ):
        self.counters = counters if counters is not None else HeuristicCounters()
        self.suspicious_ports = frozenset(suspicious_ports)
        self.large_dns_threshold = large_dns_threshold
        self.protocol_distribution: dict[str, int] = {}
        self.conversations: dict[ConversationKey, Conversation] = {}
        self.talkers: dict[str, Talker] = {}

    def _count_label(self, label: str) -> None:
        self.protocol_distribution[label] = self.protocol_distribution.get(label, 0) + 1

    def update(self, pkt: DecodedPacket) -> None:
        """Account one decoded packet."""
        self._update_distribution(pkt)
        self._update_heuristics(pkt)

        net = pkt.network
        if net is None:
            return

        talker = self.talkers.get(net.src)
        if talker is None:
            talker = self.talkers[net.src] = Talker(net.src)
        talker.packets += 1
        talker.bytes += pkt.length

        if pkt.transport is not None:
            key = ConversationKey.of(net.src, net.dst)
            conv = self.conversations.get(key)
            if conv is None:
                conv = self.conversations[key] = Conversation(src=net.src, dst=net.dst)
            conv.add(pkt.length, service_label(pkt))

    def _update_distribution(self, pkt: DecodedPacket) -> None:
        if pkt.ip is not None:
            self._count_label('IPv4')
        if pkt.ip6 is not None:
            self._count_label('IPv6')
        if pkt.arp is not None:
            self._count_label('ARP')
        if pkt.tcp is not None:
            self._count_label('TCP')
        if pkt.udp is not None:
            self._count_label('UDP')
            if DNS_PORT in (pkt.udp.sport, pkt.udp.dport):
                self._count_label('DNS')
        if pkt.icmp is not None:
            self._count_label('ICMPv6' if pkt.icmp.v6 else 'ICMP')
        if pkt.is_malformed:
            self._count_label(MALFORMED_LABEL)

    def _update_heuristics(self, pkt: DecodedPacket) -> None:
        ts = pkt.timestamp
        counters = self.counters

        eth = pkt.eth
        if eth is not None:
            if eth.type == ETHERTYPE_ARP:
                counters.hit('arp', ts)
            if eth.is_broadcast:
                counters.hit('broadcast', ts)
            elif eth.is_multicast:
                counters.hit('multicast', ts)

        if pkt.is_fragment:
            counters.hit('fragments', ts)

        trans = pkt.transport
        if trans is not None and trans.dport in self.suspicious_ports:
            counters.hit('suspicious_ports', ts)

        udp = pkt.udp
        if udp is not None:
            if udp.dport == DNS_PORT:
                counters.hit('dns_queries', ts)
                if udp.len > self.large_dns_threshold:
                    counters.hit('large_dns', ts)
            if udp.dport in DHCP_PORTS:
                counters.hit('dhcp', ts)

        if pkt.http is not None and pkt.http.basic_auth:
            counters.hit('cleartext_auth', ts)

        if pkt.tls is not None and pkt.tls.is_deprecated:
            counters.hit('deprecated_tls', ts)
