"""Configuration and fixtures for pytest tests."""

import os
import sys

import pytest

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
# Capture builders live next to the tests
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from pcapgen import (  # noqa: E402
    ACK, PSH, SYN, dns_query, tcp_frame, udp_frame, write_pcap,
)


@pytest.fixture
def sample_flow_key():
    """Provide a sample FlowKey for testing."""
    from pcapdiag.core.flow import FlowKey
    return FlowKey(
        src_ip="192.168.1.1",
        src_port=12345,
        dst_ip="10.0.0.1",
        dst_port=443,
        protocol=6  # TCP
    )


@pytest.fixture
def decoder():
    """Ethernet HeaderDecoder."""
    from pcapdiag.core.decoder import HeaderDecoder
    return HeaderDecoder()


@pytest.fixture
def handshake_frames():
    """SYN, SYN+ACK, ACK and one data segment between client and server."""
    client, server = '192.168.1.10', '93.184.216.34'
    return [
        (100.000, tcp_frame(client, server, 50000, 80, seq=1000, flags=SYN)),
        (100.050, tcp_frame(server, client, 80, 50000, seq=5000, ack=1001, flags=SYN | ACK)),
        (100.051, tcp_frame(client, server, 50000, 80, seq=1001, ack=5001, flags=ACK)),
        (100.052, tcp_frame(client, server, 50000, 80, seq=1001, ack=5001, flags=PSH | ACK,
                            payload=b'GET / HTTP/1.1\r\nHost: example.com\r\n\r\n')),
    ]


@pytest.fixture
def sample_pcap(tmp_path, handshake_frames):
    """Small capture with a TCP handshake and a DNS query."""
    frames = list(handshake_frames)
    frames.append((100.100, udp_frame('192.168.1.10', '8.8.8.8', 53000, 53, dns_query())))
    return write_pcap(tmp_path / 'sample.pcap', frames)
