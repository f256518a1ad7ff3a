"""
Application layer peeks (DNS, TLS record header, HTTP Basic auth).

These handlers look at the transport payload only far enough to feed the
heuristics. A failed peek leaves the packet untouched and never marks it
malformed.
"""

from __future__ import annotations

import struct

import dpkt

from pcapdiag.core.packet import DNSInfo, HTTPInfo, TLSInfo
from pcapdiag.protocols.base import BaseProtocolHandler, ProtocolContext, ParseResult, Layer
from pcapdiag.protocols.registry import register_protocol

BASIC_AUTH_MARKER = b"Authorization: Basic"

HTTP_METHODS = (b'GET', b'POST', b'HEAD', b'PUT', b'DELETE', b'OPTIONS', b'PATCH',
                b'TRACE', b'CONNECT')

# TLS record content types
TLS_CHANGE_CIPHER_SPEC = 20
TLS_ALERT = 21
TLS_HANDSHAKE = 22
TLS_APPLICATION_DATA = 23
TLS_HEARTBEAT = 24


@register_protocol('dns', Layer.APPLICATION, encapsulates='udp', default_ports=[53], priority=100)
class DNSHandler(BaseProtocolHandler):
    """DNS protocol handler."""

    HDR_LEN = 12

    def parse(self, payload: bytes, context: ProtocolContext) -> ParseResult:
        """Parse DNS message."""
        if len(payload) < self.HDR_LEN:
            return ParseResult(success=False)

        try:
            dns = dpkt.dns.DNS(payload)
            queries = [q.name for q in dns.qd] if dns.qd else []
            context.packet.dns = DNSInfo(
                queries=queries,
                is_response=bool(dns.qr),
                response_code=dns.rcode,
                answer_count=len(dns.an) if dns.an else 0,
            )
        except Exception:
            return ParseResult(success=False)

        return ParseResult(success=True)


@register_protocol('tls', Layer.APPLICATION, encapsulates='tcp',
                   default_ports=[443, 465, 993, 995], priority=100)
class TLSHandler(BaseProtocolHandler):
    """TLS record header peek.

    Only the first record of the segment is examined; records split
    across segments are not reassembled.
    """

    RECORD_HDR_LEN = 5

    def parse(self, payload: bytes, context: ProtocolContext) -> ParseResult:
        """Parse the first TLS record header."""
        if len(payload) < self.RECORD_HDR_LEN:
            return ParseResult(success=False)

        content_type, major, minor, record_length = struct.unpack('>BBBH', payload[:5])
        if not TLS_CHANGE_CIPHER_SPEC <= content_type <= TLS_HEARTBEAT or major != 3:
            return ParseResult(success=False)

        handshake_type = None
        if content_type == TLS_HANDSHAKE and len(payload) > self.RECORD_HDR_LEN:
            handshake_type = payload[self.RECORD_HDR_LEN]

        context.packet.tls = TLSInfo(
            content_type=content_type,
            major=major,
            minor=minor,
            record_length=record_length,
            handshake_type=handshake_type,
        )
        return ParseResult(success=True, data=payload[self.RECORD_HDR_LEN:])


@register_protocol('http', Layer.APPLICATION, encapsulates='tcp', priority=10, force_parse=True)
class HTTPAuthHandler(BaseProtocolHandler):
    """HTTP request and Basic credential peek.

    Runs on every TCP payload regardless of port, since cleartext
    credentials on non-standard ports are exactly what it looks for.
    """

    def parse(self, payload: bytes, context: ProtocolContext) -> ParseResult:
        """Look for a request line and an ``Authorization: Basic`` header."""
        basic_auth = BASIC_AUTH_MARKER in payload

        method = path = host = None
        if payload.startswith(HTTP_METHODS):
            method, path, host = self._parse_request(payload)

        if method is None and not basic_auth:
            return ParseResult(success=False)

        context.packet.http = HTTPInfo(method=method, path=path, host=host, basic_auth=basic_auth)
        return ParseResult(success=True)

    def _parse_request(self, payload: bytes) -> tuple[str | None, str | None, str | None]:
        head = payload.split(b'\r\n\r\n', 1)[0].decode('latin-1')
        lines = head.split('\r\n')

        parts = lines[0].split(' ')
        if len(parts) < 3 or not parts[2].startswith('HTTP/'):
            return None, None, None

        host = None
        for line in lines[1:]:
            if ':' in line:
                key, value = line.split(':', 1)
                if key.strip().lower() == 'host':
                    host = value.strip()
                    break

        return parts[0], parts[1], host
