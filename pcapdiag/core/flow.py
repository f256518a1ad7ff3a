"""
Per-direction TCP flow state: retransmissions, resets, zero window, handshake RTT.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pcapdiag.core.packet import DecodedPacket
    from pcapdiag.core.stats import HeuristicCounters

logger = logging.getLogger(__name__)

DEFAULT_MAX_HANDSHAKE_RTT = 10.0


@dataclass(frozen=True)
class FlowKey:
    """
    Immutable hashable key for one direction of a flow.

    Unlike a conversation key, a FlowKey is not canonicalized: the two
    directions of a TCP connection have distinct keys, related by
    ``reverse()``.

    Examples:
        >>> key = FlowKey('192.168.1.1', 1234, '10.0.0.1', 80, 6)
        >>> print(key)
        192.168.1.1:1234 -> 10.0.0.1:80 (TCP)
        >>> key.reverse()
        FlowKey(src_ip='10.0.0.1', src_port=80, dst_ip='192.168.1.1', dst_port=1234, protocol=6)
    """
    src_ip: str
    src_port: int
    dst_ip: str
    dst_port: int
    protocol: int

    def __str__(self) -> str:
        return f"{self.src_ip}:{self.src_port} -> {self.dst_ip}:{self.dst_port} ({self.protocol_name})"

    @property
    def protocol_name(self) -> str:
        names = {1: 'ICMP', 6: 'TCP', 17: 'UDP', 58: 'ICMPv6'}
        return names.get(self.protocol, f'PROTO({self.protocol})')

    def reverse(self) -> FlowKey:
        """Create the key of the opposite direction."""
        return FlowKey(
            src_ip=self.dst_ip,
            src_port=self.dst_port,
            dst_ip=self.src_ip,
            dst_port=self.src_port,
            protocol=self.protocol
        )

    @classmethod
    def from_packet(cls, pkt: DecodedPacket) -> FlowKey | None:
        """Forward key of a packet, or None without network and transport layers."""
        net = pkt.network
        trans = pkt.transport
        if net is None or trans is None:
            return None
        return cls(net.src, trans.sport, net.dst, trans.dport, net.proto)


@dataclass
class FlowState:
    """Mutable state of one flow direction."""
    last_seq: int | None = None
    syn_seen: bool = False
    syn_timestamp: float | None = None
    rtt_samples: list[float] = field(default_factory=list)
    packets: int = 0


class FlowStateTracker:
    """
    Tracks TCP flow state across a single pass.

    Every TCP segment updates exactly one FlowState, keyed by the segment's
    forward FlowKey. Counts go to the shared HeuristicCounters, tagged with
    the timestamp of the segment that raised them.

    A segment repeating the previous sequence number on the same key is
    counted as a retransmission. Payloads are not compared, so keepalives
    and pure ACKs that do not advance the sequence number are counted too.
    """

    def __init__(self, counters: HeuristicCounters, max_handshake_rtt: float = DEFAULT_MAX_HANDSHAKE_RTT):
        self.counters = counters
        self.max_handshake_rtt = max_handshake_rtt
        self._states: dict[FlowKey, FlowState] = {}

    def __len__(self) -> int:
        return len(self._states)

    def __contains__(self, key: FlowKey) -> bool:
        return key in self._states

    def get(self, key: FlowKey) -> FlowState | None:
        return self._states.get(key)

    def _get_or_create(self, key: FlowKey) -> FlowState:
        state = self._states.get(key)
        if state is None:
            state = FlowState()
            self._states[key] = state
        return state

    def observe(self, pkt: DecodedPacket, timestamp: float | None = None) -> FlowState | None:
        """
        Update flow state with one packet.

        Non-TCP packets are ignored and return None.
        """
        tcp = pkt.tcp
        if tcp is None:
            return None
        key = FlowKey.from_packet(pkt)
        if key is None:
            return None
        if timestamp is None:
            timestamp = pkt.timestamp

        state = self._get_or_create(key)
        state.packets += 1

        if tcp.rst:
            self.counters.hit('resets', timestamp)

        if not tcp.syn and not tcp.rst:
            if state.last_seq is not None and tcp.seq == state.last_seq:
                self.counters.hit('retransmissions', timestamp)
            if tcp.win == 0:
                self.counters.hit('zero_window', timestamp)

        state.last_seq = tcp.seq

        if tcp.is_handshake:
            state.syn_seen = True
            state.syn_timestamp = timestamp
        elif tcp.is_handshake_ack:
            self._pair_handshake(key, timestamp)

        return state

    def _pair_handshake(self, key: FlowKey, timestamp: float) -> None:
        reverse = self._states.get(key.reverse())
        if reverse is None or not reverse.syn_seen or reverse.syn_timestamp is None:
            return

        rtt = timestamp - reverse.syn_timestamp
        if 0 < rtt <= self.max_handshake_rtt:
            reverse.rtt_samples.append(rtt)
        else:
            logger.debug("Discarded handshake RTT %.6fs for %s", rtt, key.reverse())
        reverse.syn_seen = False

    @property
    def rtt_samples(self) -> list[float]:
        """All RTT samples, flows in first-seen order."""
        samples = []
        for state in self._states.values():
            samples.extend(state.rtt_samples)
        return samples

    def items(self):
        return self._states.items()
