"""
Custom rules and protocol peeks.

Two parts:
1. Register an application peek that counts SSH banners
2. Evaluate a custom rule table over the heuristic counters

A peek stores its result on the packet it decodes. Rules read only the
heuristic counters, so the banners are collected with the decoder directly.
"""

from pcapdiag import (
    BaseProtocolHandler,
    HeaderDecoder,
    HeuristicRule,
    ParseResult,
    PcapAnalyzer,
    PcapReader,
    Severity,
    core_rules,
    register_protocol,
)
from pcapdiag.protocols.base import Layer


# ============================================================================
# Part 1: Application peek
# ============================================================================

@register_protocol('ssh_banner', Layer.APPLICATION, encapsulates='tcp', default_ports=[22])
class SSHBannerHandler(BaseProtocolHandler):
    """Recognize the SSH identification string."""

    def parse(self, payload, context):
        if not payload.startswith(b'SSH-'):
            return ParseResult(success=False)
        banner = payload.split(b'\r\n', 1)[0].decode('ascii', 'replace')
        context.packet.layers['ssh'] = banner
        return ParseResult(success=True, attributes={'banner': banner})


banners = set()
with PcapReader('test/multi.pcap') as reader:
    decoder = HeaderDecoder(reader.link_layer_name)
    for frame in reader:
        pkt = decoder.decode(frame.data, frame.timestamp, frame.wirelen)
        if 'ssh' in pkt.layers:
            banners.add(pkt.layers['ssh'])

print("SSH banners seen:")
for banner in sorted(banners):
    print(f"  {banner}")
print()


# ============================================================================
# Part 2: Custom rule table
# ============================================================================

rules = core_rules(suspicious_ports=[21, 23, 3389]) + [
    HeuristicRule(
        title='Any Zero Window',
        counter='zero_window',
        severity=Severity.WARN,
        description='{count} zero window segments in {packets} packets ({percent:.2f}%)',
    ),
    HeuristicRule(
        title='Chatty DNS',
        counter='dns_queries',
        severity=Severity.INFO,
        share_divisor=4,
        min_packets=100,
        description='DNS queries are {percent:.1f}% of all packets',
    ),
]

report = PcapAnalyzer(rules=rules).analyze_file('test/multi.pcap')
for issue in report.issues:
    print(f"[{issue.severity}] {issue.title}: {issue.description}")
