"""Test decoded packet model."""

import pytest

from pcapdiag.core.packet import (
    DecodedPacket,
    EthernetInfo,
    IPInfo,
    IP6Info,
    TCPInfo,
    UDPInfo,
    TLSInfo,
    HTTPInfo,
    format_mac,
)


def test_empty_packet_is_unparsed():
    pkt = DecodedPacket(timestamp=1.0, length=10)
    assert pkt.is_unparsed
    assert pkt.is_malformed
    assert pkt.protocol_stack == []
    assert pkt.eth is None
    assert pkt.ip is None
    assert pkt.tcp is None
    assert pkt.network is None
    assert pkt.src is None
    assert pkt.sport is None
    assert pkt.wirelen == 10


def test_layers_in_decode_order():
    pkt = DecodedPacket(
        timestamp=1.0,
        length=60,
        eth=EthernetInfo(src='00:11:22:33:44:55', dst='66:77:88:99:aa:bb', type=0x0800),
        ip=IPInfo(src='10.0.0.1', dst='10.0.0.2', proto=6),
        tcp=TCPInfo(sport=1234, dport=80, flags=0x18),
    )
    assert pkt.protocol_stack == ['ethernet', 'ipv4', 'tcp']
    assert not pkt.is_malformed
    assert pkt.src == '10.0.0.1'
    assert pkt.dst == '10.0.0.2'
    assert pkt.sport == 1234
    assert pkt.dport == 80
    assert pkt.transport is pkt.tcp


def test_unknown_layer_keyword():
    with pytest.raises(TypeError):
        DecodedPacket(ppp=object())


def test_layer_setter_removes_none():
    pkt = DecodedPacket(udp=UDPInfo(sport=1, dport=2, len=8))
    assert pkt.udp is not None
    pkt.udp = None
    assert 'udp' not in pkt.layers


def test_malformed_layer_marks_packet():
    pkt = DecodedPacket(eth=EthernetInfo(type=0x0800), malformed_layer='ipv4')
    assert not pkt.is_unparsed
    assert pkt.is_malformed


def test_tcp_flags():
    syn = TCPInfo(flags=0x02)
    assert syn.syn and not syn.ack and syn.is_handshake and not syn.is_handshake_ack

    synack = TCPInfo(flags=0x12)
    assert synack.is_handshake_ack and not synack.is_handshake

    rst = TCPInfo(flags=0x14)
    assert rst.rst and rst.ack


def test_ip_fragment_flags():
    assert not IPInfo(flags=0, offset=0).is_fragment
    assert IPInfo(flags=1, offset=0).is_fragment
    assert IPInfo(flags=1, offset=0).more_fragments
    assert IPInfo(flags=0, offset=185).is_fragment
    assert not IPInfo(flags=2, offset=0).is_fragment  # DF only


def test_ip6_info():
    info = IP6Info(src='2001:db8::1', dst='2001:db8::2', next_header=17)
    assert info.proto == 17
    assert info.version == 6
    assert not info.is_fragment


def test_ethernet_address_classes():
    assert EthernetInfo(dst='ff:ff:ff:ff:ff:ff').is_broadcast
    assert not EthernetInfo(dst='ff:ff:ff:ff:ff:ff').is_multicast
    assert EthernetInfo(dst='01:00:5e:00:00:fb').is_multicast
    assert not EthernetInfo(dst='00:11:22:33:44:55').is_multicast


def test_tls_versions():
    assert TLSInfo(content_type=22, major=3, minor=0).is_deprecated
    assert TLSInfo(content_type=22, major=3, minor=1).is_deprecated
    assert not TLSInfo(content_type=22, major=3, minor=3).is_deprecated
    # application data is not a handshake
    assert not TLSInfo(content_type=23, major=3, minor=1).is_deprecated
    assert TLSInfo(major=3, minor=1).version_name == 'TLS 1.0'
    assert TLSInfo(major=3, minor=9).version_name == '3.9'


def test_info_equality_and_dict():
    a = HTTPInfo(method='GET', path='/', basic_auth=True)
    b = HTTPInfo(method='GET', path='/', basic_auth=True)
    assert a == b
    assert a.to_dict() == {'method': 'GET', 'path': '/', 'host': None, 'basic_auth': True}
    assert a.get('missing', 'x') == 'x'
    assert 'HTTPInfo(' in repr(a)


def test_packet_to_dict():
    pkt = DecodedPacket(timestamp=2.0, length=42, udp=UDPInfo(sport=5, dport=53, len=20))
    d = pkt.to_dict()
    assert d['timestamp'] == 2.0
    assert d['length'] == 42
    assert d['udp'] == {'sport': 5, 'dport': 53, 'len': 20}


def test_format_mac():
    assert format_mac(b'\x00\x1a\x2b\x3c\x4d\x5e') == '00:1a:2b:3c:4d:5e'
