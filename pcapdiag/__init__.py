"""
pcapdiag - Python capture diagnostics library

Reads a legacy pcap capture in one pass, decodes its headers with dpkt,
tracks TCP flow state and traffic statistics, and reports operational and
security findings such as retransmissions, zero windows, cleartext
credentials, deprecated TLS and traffic to high-risk ports.

Example usage:
    from pcapdiag import PcapAnalyzer

    analyzer = PcapAnalyzer(extended_rules=True)
    report = analyzer.analyze_file('traffic.pcap')

    print(f"{report.packet_count} packets over {report.duration_sec:.1f}s")
    for issue in report.issues:
        print(f"  [{issue.severity}] {issue.title}: {issue.description}")

    for conv in report.top_conversations:
        print(f"  {conv.src} <-> {conv.dst} {conv.protocol} {conv.bytes} bytes")
"""

import logging

from pcapdiag.core.analyzer import PcapAnalyzer, AnalyzerConfig, AnalysisSession, analyze_file
from pcapdiag.core.decoder import HeaderDecoder
from pcapdiag.core.flow import FlowKey, FlowState, FlowStateTracker
from pcapdiag.core.packet import DecodedPacket
from pcapdiag.core.reader import PcapReader, Frame, LinkLayerType
from pcapdiag.core.report import AnalysisReport, ConversationSummary, TalkerSummary, TcpStats
from pcapdiag.core.rules import Severity, Issue, HeuristicRule, RuleEngine, core_rules, extended_rules
from pcapdiag.core.stats import HeuristicCounters, StatisticsAggregator
from pcapdiag.errors import (
    PcapDiagError,
    CaptureOpenError,
    InvalidCaptureError,
    UnsupportedCaptureFormatError,
    CaptureReadError,
    AnalysisCancelled,
)
from pcapdiag.protocols.base import BaseProtocolHandler, ProtocolContext, ParseResult
from pcapdiag.protocols.registry import register_protocol, get_global_registry
from pcapdiag.exporters import (
    report_to_dict,
    to_dataframe,
    to_json,
    to_csv,
    ReportExporter
)

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    # Main class
    'PcapAnalyzer',
    'AnalyzerConfig',
    'AnalysisSession',
    'analyze_file',

    # Pipeline stages
    'PcapReader',
    'Frame',
    'LinkLayerType',
    'HeaderDecoder',
    'DecodedPacket',
    'FlowKey',
    'FlowState',
    'FlowStateTracker',
    'HeuristicCounters',
    'StatisticsAggregator',
    'Severity',
    'Issue',
    'HeuristicRule',
    'RuleEngine',
    'core_rules',
    'extended_rules',

    # Report
    'AnalysisReport',
    'ConversationSummary',
    'TalkerSummary',
    'TcpStats',

    # Errors
    'PcapDiagError',
    'CaptureOpenError',
    'InvalidCaptureError',
    'UnsupportedCaptureFormatError',
    'CaptureReadError',
    'AnalysisCancelled',

    # Protocol handlers
    'BaseProtocolHandler',
    'ProtocolContext',
    'ParseResult',
    'register_protocol',
    'get_global_registry',

    # Exporters
    'report_to_dict',
    'to_dataframe',
    'to_json',
    'to_csv',
    'ReportExporter',
]
