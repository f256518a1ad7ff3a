"""
Report assembly: the immutable result of one analysis pass.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Mapping

import numpy as np

if TYPE_CHECKING:
    from pcapdiag.core.flow import FlowStateTracker
    from pcapdiag.core.rules import Issue
    from pcapdiag.core.stats import StatisticsAggregator

DEFAULT_TOP_N = 5


@dataclass(frozen=True)
class TcpStats:
    """TCP summary of a capture."""
    retransmissions: int = 0
    resets: int = 0
    zero_window: int = 0
    avg_rtt_ms: float | None = None
    rtt_samples: int = 0

    def to_dict(self) -> dict:
        return {
            'retransmissions': self.retransmissions,
            'resets': self.resets,
            'zero_window': self.zero_window,
            'avg_rtt_ms': self.avg_rtt_ms,
            'rtt_samples': self.rtt_samples,
        }


@dataclass(frozen=True)
class ConversationSummary:
    """One row of the top conversations table."""
    src: str
    dst: str
    protocol: str
    bytes: int
    packets: int

    def to_dict(self) -> dict:
        return {
            'src': self.src,
            'dst': self.dst,
            'protocol': self.protocol,
            'bytes': self.bytes,
            'packets': self.packets,
        }


@dataclass(frozen=True)
class TalkerSummary:
    """One row of the top talkers table."""
    address: str
    packets: int
    bytes: int

    def __str__(self) -> str:
        return f"{self.address}: {self.packets} pkts"

    def to_dict(self) -> dict:
        return {'address': self.address, 'packets': self.packets, 'bytes': self.bytes}


@dataclass(frozen=True)
class AnalysisReport:
    """
    Result of analyzing one capture.

    Attributes:
        packet_count: Number of frames read
        duration_sec: Last minus first capture timestamp, never negative
        issues: Fired heuristics in rule order
        top_conversations: Busiest address pairs by bytes, descending
        protocol_distribution: Read-only packet count per protocol label
        tcp_stats: Retransmission, reset, zero window and RTT summary
        top_talkers: Busiest source addresses by bytes, descending
    """
    packet_count: int = 0
    duration_sec: float = 0.0
    issues: tuple[Issue, ...] = ()
    top_conversations: tuple[ConversationSummary, ...] = ()
    protocol_distribution: Mapping[str, int] = field(default_factory=dict)
    tcp_stats: TcpStats = field(default_factory=TcpStats)
    top_talkers: tuple[TalkerSummary, ...] = ()
    first_timestamp: float | None = None
    last_timestamp: float | None = None
    link_type: str | None = None

    def __post_init__(self):
        # frozen only guards attributes, so the mapping gets a read-only view
        object.__setattr__(self, 'issues', tuple(self.issues))
        object.__setattr__(self, 'top_conversations', tuple(self.top_conversations))
        object.__setattr__(self, 'top_talkers', tuple(self.top_talkers))
        object.__setattr__(
            self, 'protocol_distribution', MappingProxyType(dict(self.protocol_distribution))
        )

    @property
    def has_issues(self) -> bool:
        return bool(self.issues)

    def issues_by_severity(self, severity) -> list[Issue]:
        return [issue for issue in self.issues if issue.severity == severity]

    def __repr__(self) -> str:
        return (f"AnalysisReport(packets={self.packet_count}, duration={self.duration_sec:.3f}s, "
                f"issues={len(self.issues)}, conversations={len(self.top_conversations)})")


class ReportBuilder:
    """Build an AnalysisReport from the state of a finished pass."""

    def __init__(self, top_n: int = DEFAULT_TOP_N):
        self.top_n = top_n

    def build(
        self,
        packet_count: int,
        first_timestamp: float | None,
        last_timestamp: float | None,
        issues: tuple[Issue, ...],
        stats: StatisticsAggregator,
        flows: FlowStateTracker,
        link_type: str | None = None,
    ) -> AnalysisReport:
        duration = 0.0
        if first_timestamp is not None and last_timestamp is not None:
            duration = max(0.0, last_timestamp - first_timestamp)

        # sorted() is stable, so equal byte counts keep first-seen order
        conversations = sorted(stats.conversations.values(), key=lambda c: c.bytes, reverse=True)
        top_conversations = tuple(
            ConversationSummary(c.src, c.dst, c.protocol, c.bytes, c.packets)
            for c in conversations[:self.top_n]
        )

        talkers = sorted(stats.talkers.values(), key=lambda t: t.bytes, reverse=True)
        top_talkers = tuple(
            TalkerSummary(t.address, t.packets, t.bytes) for t in talkers[:self.top_n]
        )

        return AnalysisReport(
            packet_count=packet_count,
            duration_sec=duration,
            issues=tuple(issues),
            top_conversations=top_conversations,
            protocol_distribution=dict(stats.protocol_distribution),
            tcp_stats=self._tcp_stats(stats, flows),
            top_talkers=top_talkers,
            first_timestamp=first_timestamp,
            last_timestamp=last_timestamp,
            link_type=link_type,
        )

    @staticmethod
    def _tcp_stats(stats: StatisticsAggregator, flows: FlowStateTracker) -> TcpStats:
        samples = flows.rtt_samples
        avg_rtt_ms = float(np.mean(samples) * 1000.0) if samples else None
        counters = stats.counters
        return TcpStats(
            retransmissions=counters['retransmissions'],
            resets=counters['resets'],
            zero_window=counters['zero_window'],
            avg_rtt_ms=avg_rtt_ms,
            rtt_samples=len(samples),
        )
