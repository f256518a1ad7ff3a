"""
Main PcapAnalyzer class - entry point for capture analysis.

Wires the reader, decoder, flow tracker, statistics aggregator, rule engine
and report builder into one sequential pass per call.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, BinaryIO, Iterable

from pcapdiag.core.decoder import HeaderDecoder
from pcapdiag.core.flow import DEFAULT_MAX_HANDSHAKE_RTT, FlowStateTracker
from pcapdiag.core.packet import DecodedPacket
from pcapdiag.core.reader import DEFAULT_BUFFER_SIZE, LinkLayerType, PcapReader, get_link_layer_type
from pcapdiag.core.report import DEFAULT_TOP_N, AnalysisReport, ReportBuilder
from pcapdiag.core.rules import (
    DEFAULT_RETRANSMISSION_CRITICAL_THRESHOLD,
    DEFAULT_RETRANSMISSION_THRESHOLD,
    HeuristicRule,
    RuleEngine,
    core_rules,
    extended_rules,
)
from pcapdiag.core.stats import (
    DEFAULT_LARGE_DNS_THRESHOLD,
    DEFAULT_SUSPICIOUS_PORTS,
    HeuristicCounters,
    StatisticsAggregator,
)
from pcapdiag.errors import AnalysisCancelled, PcapDiagError

logger = logging.getLogger(__name__)


@dataclass
class AnalyzerConfig:
    """Configuration for an analysis run."""
    top_n: int = DEFAULT_TOP_N
    suspicious_ports: frozenset[int] = DEFAULT_SUSPICIOUS_PORTS
    retransmission_threshold: int = DEFAULT_RETRANSMISSION_THRESHOLD
    retransmission_critical_threshold: int = DEFAULT_RETRANSMISSION_CRITICAL_THRESHOLD
    max_handshake_rtt: float = DEFAULT_MAX_HANDSHAKE_RTT
    large_dns_threshold: int = DEFAULT_LARGE_DNS_THRESHOLD
    extended_rules: bool = False
    rules: list[HeuristicRule] | None = None
    buffer_size: int = DEFAULT_BUFFER_SIZE

    def __post_init__(self):
        self.suspicious_ports = frozenset(self.suspicious_ports)
        if self.top_n < 1:
            raise ValueError(f"top_n must be positive, got {self.top_n}")
        if self.buffer_size < 1:
            raise ValueError(f"buffer_size must be positive, got {self.buffer_size}")
        if self.max_handshake_rtt <= 0:
            raise ValueError(f"max_handshake_rtt must be positive, got {self.max_handshake_rtt}")
        if self.retransmission_threshold < 0 or self.large_dns_threshold < 0:
            raise ValueError("Thresholds must not be negative")
        if self.retransmission_critical_threshold < self.retransmission_threshold:
            raise ValueError(
                f"retransmission_critical_threshold ({self.retransmission_critical_threshold}) "
                f"must not be below retransmission_threshold ({self.retransmission_threshold})"
            )
        if any(not 0 <= p <= 0xFFFF for p in self.suspicious_ports):
            raise ValueError("suspicious_ports must be in range 0-65535")

    def build_rules(self) -> list[HeuristicRule]:
        """Rule table for this configuration."""
        if self.rules is not None:
            return list(self.rules)
        rules = core_rules(
            suspicious_ports=self.suspicious_ports,
            retransmission_threshold=self.retransmission_threshold,
            retransmission_critical_threshold=self.retransmission_critical_threshold,
        )
        if self.extended_rules:
            rules.extend(extended_rules())
        return rules


@dataclass
class AnalysisSession:
    """
    All mutable state of one analysis pass.

    A session is created per call and dropped when the report is built,
    so nothing carries over between captures.
    """
    config: AnalyzerConfig
    link_type: str = LinkLayerType.ETHERNET
    counters: HeuristicCounters = field(default_factory=HeuristicCounters)
    packet_count: int = 0
    malformed_count: int = 0
    first_timestamp: float | None = None
    last_timestamp: float | None = None

    def __post_init__(self):
        self.decoder = HeaderDecoder(self.link_type)
        self.flows = FlowStateTracker(self.counters, max_handshake_rtt=self.config.max_handshake_rtt)
        self.stats = StatisticsAggregator(
            self.counters,
            suspicious_ports=self.config.suspicious_ports,
            large_dns_threshold=self.config.large_dns_threshold,
        )

    def process(self, data: bytes, timestamp: float, wirelen: int | None = None) -> DecodedPacket:
        """Decode one frame and feed it to the tracker and aggregator."""
        self.packet_count += 1
        if self.first_timestamp is None:
            self.first_timestamp = timestamp
        self.last_timestamp = timestamp

        pkt = self.decoder.decode(data, timestamp, wirelen)
        if pkt.is_malformed:
            self.malformed_count += 1

        self.flows.observe(pkt, timestamp)
        self.stats.update(pkt)
        return pkt

    def finish(self) -> AnalysisReport:
        """Run the rules and assemble the report."""
        issues = RuleEngine(self.config.build_rules()).evaluate(self.counters, self.packet_count)
        return ReportBuilder(self.config.top_n).build(
            packet_count=self.packet_count,
            first_timestamp=self.first_timestamp,
            last_timestamp=self.last_timestamp,
            issues=issues,
            stats=self.stats,
            flows=self.flows,
            link_type=self.link_type,
        )


class PcapAnalyzer:
    """
    Main entry point for capture analysis.

    Each ``analyze_*`` call makes one forward pass over a legacy pcap
    capture and returns an immutable AnalysisReport. Every call owns its
    own session, so one analyzer may serve concurrent threads or
    ``analyze_file_async`` tasks. Only the run statistics are shared, and
    they are updated under a lock.

    Examples:
        Basic usage:
            >>> from pcapdiag import PcapAnalyzer
            >>> analyzer = PcapAnalyzer()
            >>> report = analyzer.analyze_file('traffic.pcap')
            >>> for issue in report.issues:
            ...     print(f"[{issue.severity}] {issue.title}: {issue.description}")

        With the volume/ratio heuristics enabled:
            >>> analyzer = PcapAnalyzer(extended_rules=True, top_n=10)
            >>> report = analyzer.analyze_file('traffic.pcap')

        From a thread that may need to stop early:
            >>> stop = threading.Event()
            >>> report = analyzer.analyze_file('big.pcap', cancel_event=stop)

    Args:
        top_n: Number of conversations and talkers kept in the report (default: 5)
        suspicious_ports: Destination ports flagged as high risk
            (default: 21, 23, 1337, 4444, 6667, 31337)
        retransmission_threshold: Retransmissions above this raise a warning (default: 10)
        retransmission_critical_threshold: Retransmissions above this are critical (default: 100)
        max_handshake_rtt: Largest SYN to SYN+ACK delay kept as an RTT sample,
            in seconds (default: 10.0)
        large_dns_threshold: UDP length above which a DNS query counts as
            large (default: 100)
        extended_rules: Also evaluate the volume and ratio heuristics (default: False)
        rules: Explicit ordered rule list, replacing the built-in tables
        buffer_size: Reader buffer size in bytes (default: 65536)
    """

    def __init__(
        self,
        top_n: int = DEFAULT_TOP_N,
        suspicious_ports: Iterable[int] = DEFAULT_SUSPICIOUS_PORTS,
        retransmission_threshold: int = DEFAULT_RETRANSMISSION_THRESHOLD,
        retransmission_critical_threshold: int = DEFAULT_RETRANSMISSION_CRITICAL_THRESHOLD,
        max_handshake_rtt: float = DEFAULT_MAX_HANDSHAKE_RTT,
        large_dns_threshold: int = DEFAULT_LARGE_DNS_THRESHOLD,
        extended_rules: bool = False,
        rules: Iterable[HeuristicRule] | None = None,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
    ):
        self.config = AnalyzerConfig(
            top_n=top_n,
            suspicious_ports=frozenset(suspicious_ports),
            retransmission_threshold=retransmission_threshold,
            retransmission_critical_threshold=retransmission_critical_threshold,
            max_handshake_rtt=max_handshake_rtt,
            large_dns_threshold=large_dns_threshold,
            extended_rules=extended_rules,
            rules=list(rules) if rules is not None else None,
            buffer_size=buffer_size,
        )

        # Statistics, shared by concurrent analyze_file_async calls
        self._stats_lock = threading.Lock()
        self._stats = self._empty_stats()

    def analyze_file(self, pcap_path: str | Path,
                     cancel_event: threading.Event | None = None) -> AnalysisReport:
        """
        Analyze a single legacy pcap file.

        Args:
            pcap_path: Path to the capture
            cancel_event: Set from another thread to stop the pass early

        Returns:
            AnalysisReport for the whole capture

        Raises:
            CaptureOpenError: The file cannot be opened
            InvalidCaptureError: The global header is not a legacy pcap header
            CaptureReadError: The stream failed or is corrupt mid-pass
            AnalysisCancelled: ``cancel_event`` was set
        """
        pcap_path = Path(pcap_path)
        return self._run(PcapReader(pcap_path, buffer_size=self.config.buffer_size),
                         str(pcap_path), cancel_event)

    def analyze_stream(self, stream: BinaryIO,
                       cancel_event: threading.Event | None = None) -> AnalysisReport:
        """Analyze a capture from a readable binary stream. The stream is not closed."""
        name = getattr(stream, 'name', '<stream>')
        return self._run(PcapReader(stream, buffer_size=self.config.buffer_size),
                         str(name), cancel_event)

    def analyze_frames(
        self,
        frames: Iterable[tuple[float, bytes]],
        link_type: str | int = LinkLayerType.ETHERNET,
        cancel_event: threading.Event | None = None,
    ) -> AnalysisReport:
        """
        Analyze already-captured frames.

        Args:
            frames: ``(timestamp, data)`` pairs or reader ``Frame`` objects
            link_type: Link layer name or DLT number of the frames
            cancel_event: Set from another thread to stop the pass early
        """
        if isinstance(link_type, int):
            link_type = get_link_layer_type(link_type)
        session = AnalysisSession(self.config, link_type)
        return self._drive(session, frames, '<frames>', cancel_event)

    async def analyze_file_async(self, pcap_path: str | Path,
                                 cancel_event: threading.Event | None = None) -> AnalysisReport:
        """Run ``analyze_file`` in a worker thread."""
        return await asyncio.to_thread(self.analyze_file, pcap_path, cancel_event)

    def analyze_directory(self, directory: str | Path,
                          pattern: str = "*.pcap") -> dict[str, AnalysisReport]:
        """
        Analyze all legacy pcap files in a directory.

        Files that fail are recorded in ``stats['errors']`` and skipped.

        Returns:
            Dict mapping file name to report
        """
        directory = Path(directory)
        results = {}

        for pcap_file in sorted(directory.glob(pattern)):
            if not PcapReader.is_pcap_file(pcap_file):
                continue

            try:
                results[pcap_file.name] = self.analyze_file(pcap_file)
            except PcapDiagError as e:
                self._record_error(f"{pcap_file}: {e}")

        return results

    def _run(self, reader: PcapReader, name: str,
             cancel_event: threading.Event | None) -> AnalysisReport:
        with reader:
            session = AnalysisSession(self.config, reader.link_layer_name)
            return self._drive(session, reader, name, cancel_event)

    def _drive(self, session: AnalysisSession, frames: Iterable, name: str,
               cancel_event: threading.Event | None) -> AnalysisReport:
        self._count(files_processed=1)

        try:
            for frame in frames:
                if cancel_event is not None and cancel_event.is_set():
                    logger.info("Analysis of %s cancelled after %d packets", name, session.packet_count)
                    raise AnalysisCancelled(session.packet_count)

                ts, data = frame[0], frame[1]
                wirelen = frame[2] if len(frame) > 2 else None
                try:
                    session.process(bytes(data), ts, wirelen)
                except Exception as e:
                    self._record_error(f"{name}: Packet processing error: {e}")
                    logger.debug("Packet %d of %s failed", session.packet_count, name, exc_info=True)
        finally:
            self._count(packets_processed=session.packet_count,
                        malformed_packets=session.malformed_count)

        report = session.finish()
        logger.info(
            "Analyzed %s: %d packets, %d malformed, %d issues, %.3fs",
            name, report.packet_count, session.malformed_count, len(report.issues), report.duration_sec,
        )
        return report

    @staticmethod
    def _empty_stats() -> dict[str, Any]:
        return {
            'files_processed': 0,
            'packets_processed': 0,
            'malformed_packets': 0,
            'errors': []
        }

    def _count(self, **deltas: int) -> None:
        with self._stats_lock:
            for key, delta in deltas.items():
                self._stats[key] += delta

    def _record_error(self, message: str) -> None:
        with self._stats_lock:
            self._stats['errors'].append(message)

    @property
    def stats(self) -> dict[str, Any]:
        """Get a snapshot of analysis statistics."""
        with self._stats_lock:
            stats = self._stats.copy()
            stats['errors'] = list(stats['errors'])
        return stats

    def reset_stats(self) -> None:
        """Reset statistics."""
        with self._stats_lock:
            self._stats = self._empty_stats()


def analyze_file(pcap_path: str | Path, **kwargs) -> AnalysisReport:
    """Analyze one capture with a throwaway PcapAnalyzer."""
    return PcapAnalyzer(**kwargs).analyze_file(pcap_path)


__all__ = ['PcapAnalyzer', 'AnalyzerConfig', 'AnalysisSession', 'analyze_file']
