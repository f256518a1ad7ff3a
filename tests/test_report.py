"""Test report assembly."""

import pytest

from pcapdiag.core.flow import FlowStateTracker
from pcapdiag.core.packet import DecodedPacket, IPInfo, TCPInfo
from pcapdiag.core.report import AnalysisReport, ReportBuilder, TalkerSummary, TcpStats
from pcapdiag.core.rules import Issue, Severity
from pcapdiag.core.stats import HeuristicCounters, StatisticsAggregator


def pkt(src, dst, length, flags=0x10, seq=1, sport=40000, dport=80, ts=0.0, win=8192):
    return DecodedPacket(
        timestamp=ts,
        length=length,
        ip=IPInfo(src=src, dst=dst, proto=6),
        tcp=TCPInfo(sport=sport, dport=dport, seq=seq, flags=flags, win=win),
    )


def build(packets, top_n=5, first=None, last=None, issues=()):
    counters = HeuristicCounters()
    stats = StatisticsAggregator(counters)
    flows = FlowStateTracker(counters)
    for p in packets:
        flows.observe(p, p.timestamp)
        stats.update(p)
    return ReportBuilder(top_n).build(
        packet_count=len(packets),
        first_timestamp=first,
        last_timestamp=last,
        issues=issues,
        stats=stats,
        flows=flows,
        link_type='ethernet',
    )


def test_empty_report():
    report = build([])
    assert report.packet_count == 0
    assert report.duration_sec == 0
    assert report.issues == ()
    assert report.top_conversations == ()
    assert report.top_talkers == ()
    assert report.protocol_distribution == {}
    assert report.tcp_stats == TcpStats()
    assert report.tcp_stats.avg_rtt_ms is None
    assert not report.has_issues


def test_duration():
    assert build([], first=10.0, last=12.5).duration_sec == pytest.approx(2.5)
    assert build([], first=10.0, last=10.0).duration_sec == 0
    # out-of-order timestamps never give a negative duration
    assert build([], first=12.0, last=10.0).duration_sec == 0


def test_top_conversations_sorted_and_truncated():
    packets = [pkt('10.0.0.1', f'10.0.1.{i}', length=100 * (i + 1)) for i in range(8)]
    report = build(packets)

    assert len(report.top_conversations) == 5
    sizes = [c.bytes for c in report.top_conversations]
    assert sizes == [800, 700, 600, 500, 400]
    assert report.top_conversations[0].dst == '10.0.1.7'
    assert report.top_conversations[0].protocol == 'HTTP'


def test_top_conversations_ties_keep_first_seen_order():
    packets = [
        pkt('10.0.0.1', '10.0.0.3', 100),
        pkt('10.0.0.1', '10.0.0.2', 100),
        pkt('10.0.0.1', '10.0.0.4', 100),
    ]
    report = build(packets, top_n=2)
    assert [c.dst for c in report.top_conversations] == ['10.0.0.3', '10.0.0.2']


def test_top_talkers():
    packets = []
    for i in range(7):
        packets.extend(pkt(f'10.0.0.{i}', '10.0.9.9', 60) for _ in range(i + 1))
    report = build(packets)

    assert len(report.top_talkers) == 5
    byte_counts = [t.bytes for t in report.top_talkers]
    assert byte_counts == sorted(byte_counts, reverse=True)
    assert report.top_talkers[0] == TalkerSummary('10.0.0.6', 7, 420)
    assert str(report.top_talkers[0]) == '10.0.0.6: 7 pkts'


def test_tcp_stats_rtt_average():
    packets = [
        pkt('10.0.0.1', '10.0.0.2', 60, flags=0x02, sport=1, dport=80, ts=0.0),
        pkt('10.0.0.2', '10.0.0.1', 60, flags=0x12, sport=80, dport=1, ts=0.010),
        pkt('10.0.0.1', '10.0.0.3', 60, flags=0x02, sport=2, dport=80, ts=1.0),
        pkt('10.0.0.3', '10.0.0.1', 60, flags=0x12, sport=80, dport=2, ts=1.030),
    ]
    stats = build(packets).tcp_stats
    assert stats.rtt_samples == 2
    assert stats.avg_rtt_ms == pytest.approx(20.0)
    assert isinstance(stats.avg_rtt_ms, float)


def test_tcp_stats_counters():
    packets = [
        pkt('10.0.0.1', '10.0.0.2', 60, seq=5),
        pkt('10.0.0.1', '10.0.0.2', 60, seq=5),
        pkt('10.0.0.2', '10.0.0.1', 60, flags=0x04, sport=80, dport=40000),
    ]
    stats = build(packets).tcp_stats
    assert stats.retransmissions == 1
    assert stats.resets == 1
    assert stats.zero_window == 0


def test_report_is_frozen():
    issue = Issue(Severity.WARN, 'title', 'desc')
    report = build([], issues=(issue,))
    assert report.issues == (issue,)
    assert report.issues_by_severity(Severity.WARN) == [issue]
    assert report.issues_by_severity(Severity.CRITICAL) == []
    with pytest.raises(AttributeError):
        report.packet_count = 5


def test_protocol_distribution_is_read_only():
    report = build([pkt('10.0.0.1', '10.0.0.2', 60)])
    assert report.protocol_distribution == {'IPv4': 1, 'TCP': 1}
    with pytest.raises(TypeError):
        report.protocol_distribution['TCP'] = 999
    with pytest.raises(TypeError):
        del report.protocol_distribution['IPv4']
    assert report.protocol_distribution['TCP'] == 1


def test_report_copies_caller_mapping():
    counts = {'IPv4': 3}
    report = AnalysisReport(packet_count=3, protocol_distribution=counts, issues=[])
    counts['IPv4'] = 100
    assert report.protocol_distribution['IPv4'] == 3
    assert report.issues == ()


def test_report_defaults():
    report = AnalysisReport()
    assert report.packet_count == 0
    assert report.issues == ()
    assert 'packets=0' in repr(report)
