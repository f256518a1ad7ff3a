"""
Basic pcapdiag usage example.

Demonstrates:
- Analyzing a pcap file
- Printing issues with severity and first-seen time
- Printing top conversations, talkers and protocol distribution
- Reading TCP health numbers
"""

import logging
import sys

from pcapdiag import PcapAnalyzer, PcapDiagError

logging.basicConfig(level=logging.INFO, format='%(levelname)s %(name)s: %(message)s')

pcap_path = sys.argv[1] if len(sys.argv) > 1 else 'test/single.pcap'

# Create analyzer
analyzer = PcapAnalyzer(
    top_n=5,                     # Conversations and talkers kept
    extended_rules=True,         # Volume and ratio heuristics too
)

try:
    report = analyzer.analyze_file(pcap_path)
except PcapDiagError as e:
    print(f"Cannot analyze {pcap_path}: {e}")
    sys.exit(1)

print(f"Packets: {report.packet_count}")
print(f"Duration: {report.duration_sec:.3f}s")
print()

print("Issues:")
if not report.has_issues:
    print("  none")
for issue in report.issues:
    when = f" (first at {issue.timestamp:.6f})" if issue.timestamp is not None else ""
    print(f"  [{issue.severity}] {issue.title}{when}")
    print(f"      {issue.description}")
print()

print("Top conversations:")
for conv in report.top_conversations:
    print(f"  {conv.src} <-> {conv.dst}  {conv.protocol:<8} {conv.bytes:>10} bytes  {conv.packets} pkts")
print()

print("Top talkers:")
for talker in report.top_talkers:
    print(f"  {talker}")
print()

print("Protocol distribution:")
for name, count in sorted(report.protocol_distribution.items(), key=lambda kv: -kv[1]):
    print(f"  {name:<20} {count}")
print()

tcp = report.tcp_stats
print("TCP:")
print(f"  Retransmissions: {tcp.retransmissions}")
print(f"  Resets: {tcp.resets}")
print(f"  Zero window: {tcp.zero_window}")
if tcp.avg_rtt_ms is not None:
    print(f"  Handshake RTT: {tcp.avg_rtt_ms:.2f} ms over {tcp.rtt_samples} handshakes")
