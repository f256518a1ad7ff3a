"""Protocol handler modules."""

from pcapdiag.protocols.base import (
    BaseProtocolHandler,
    ProtocolContext,
    ParseResult,
    Layer
)
from pcapdiag.protocols.registry import (
    register_protocol,
    unregister_protocol,
    get_global_registry as get_protocol_registry,
    ProtocolHandlerRegistry
)

# Importing the handler modules registers the built-in handlers.
from pcapdiag.protocols.link import EthernetHandler, LinuxSLLHandler, RawIPHandler, NullHandler
from pcapdiag.protocols.network import IPv4Handler, IPv6Handler, ARPHandler
from pcapdiag.protocols.transport import TCPHandler, UDPHandler, ICMPHandler, ICMPv6Handler
from pcapdiag.protocols.application import DNSHandler, TLSHandler, HTTPAuthHandler

__all__ = [
    'BaseProtocolHandler',
    'ProtocolContext',
    'ParseResult',
    'Layer',
    'register_protocol',
    'unregister_protocol',
    'get_protocol_registry',
    'ProtocolHandlerRegistry',
    'EthernetHandler',
    'LinuxSLLHandler',
    'RawIPHandler',
    'NullHandler',
    'IPv4Handler',
    'IPv6Handler',
    'ARPHandler',
    'TCPHandler',
    'UDPHandler',
    'ICMPHandler',
    'ICMPv6Handler',
    'DNSHandler',
    'TLSHandler',
    'HTTPAuthHandler',
]
