"""Analyze captures written by scapy."""

import pytest

from pcapdiag import PcapAnalyzer
from pcapdiag.core.rules import Severity

scapy_all = pytest.importorskip('scapy.all')
Ether, IP, IPv6, TCP, UDP, ARP, ICMP, DNS, DNSQR, Raw, wrpcap = (
    scapy_all.Ether, scapy_all.IP, scapy_all.IPv6, scapy_all.TCP, scapy_all.UDP,
    scapy_all.ARP, scapy_all.ICMP, scapy_all.DNS, scapy_all.DNSQR, scapy_all.Raw,
    scapy_all.wrpcap,
)


def eth(dst='66:77:88:99:aa:bb'):
    # explicit addresses keep scapy from resolving MACs on the host
    return Ether(src='00:11:22:33:44:55', dst=dst)


def write(tmp_path, name, packets, start=1000.0, step=0.01):
    for i, pkt in enumerate(packets):
        pkt.time = start + i * step
    path = tmp_path / name
    wrpcap(str(path), packets)
    return path


def test_mixed_traffic(tmp_path):
    client, server = '192.168.1.1', '192.168.1.2'
    packets = [
        eth() / IP(src=client, dst=server) / TCP(sport=1234, dport=443, flags='S', seq=1000),
        eth() / IP(src=server, dst=client) / TCP(sport=443, dport=1234, flags='SA', seq=2000, ack=1001),
        eth() / IP(src=client, dst=server) / TCP(sport=1234, dport=443, flags='A', seq=1001, ack=2001),
        eth() / IP(src=client, dst='8.8.8.8') / UDP(sport=5353, dport=53) / DNS(rd=1, qd=DNSQR(qname='example.com')),
        eth(dst='ff:ff:ff:ff:ff:ff') / ARP(psrc=client, pdst=server),
        eth() / IP(src=client, dst=server) / ICMP(),
        eth() / IPv6(src='2001:db8::1', dst='2001:db8::2') / UDP(sport=1000, dport=2000) / Raw(b'hi'),
    ]
    report = PcapAnalyzer().analyze_file(write(tmp_path, 'mixed.pcap', packets))

    assert report.packet_count == 7
    dist = report.protocol_distribution
    assert dist['IPv4'] == 5
    assert dist['TCP'] == 3
    assert dist['UDP'] == 2
    assert dist['DNS'] == 1
    assert dist['ARP'] == 1
    assert dist['ICMP'] == 1
    assert dist['IPv6'] == 1
    assert 'Malformed/Unknown' not in dist

    assert report.tcp_stats.rtt_samples == 1
    assert report.tcp_stats.avg_rtt_ms == pytest.approx(10.0, abs=0.01)
    assert report.issues == ()


def test_insecure_session(tmp_path):
    src, dst = '10.0.0.5', '10.0.0.80'
    packets = [
        eth() / IP(src=src, dst=dst) / TCP(sport=50000, dport=23, flags='PA', seq=1) / Raw(b'login\r\n'),
        eth() / IP(src=src, dst=dst) / TCP(sport=50001, dport=80, flags='PA', seq=1) / Raw(
            b'GET / HTTP/1.1\r\nHost: router\r\nAuthorization: Basic YWRtaW46YWRtaW4=\r\n\r\n'),
        eth() / IP(src=src, dst=dst) / TCP(sport=50002, dport=443, flags='PA', seq=1) / Raw(
            b'\x16\x03\x00\x00\x05\x01\x00\x00\x01\x00'),
    ]
    report = PcapAnalyzer().analyze_file(write(tmp_path, 'insecure.pcap', packets))

    assert [i.title for i in report.issues] == [
        'Suspicious Port Activity',
        'Cleartext Credentials Leaked',
        'Deprecated TLS Usage',
    ]
    assert report.issues[0].severity == Severity.CRITICAL
    assert report.issues[0].timestamp == pytest.approx(1000.0)
    assert report.issues[2].timestamp == pytest.approx(1000.02)


def test_retransmission_storm(tmp_path):
    packets = [
        eth() / IP(src='10.0.0.1', dst='10.0.0.2') / TCP(sport=4000, dport=8080, flags='A', seq=77)
        for _ in range(120)
    ]
    report = PcapAnalyzer().analyze_file(write(tmp_path, 'retx.pcap', packets))

    assert report.tcp_stats.retransmissions == 119
    assert report.issues[0].title == 'TCP Retransmissions'
    assert report.issues[0].severity == Severity.CRITICAL
