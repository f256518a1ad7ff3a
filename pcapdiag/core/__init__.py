"""Core pcapdiag modules."""

from pcapdiag.core.analyzer import PcapAnalyzer, AnalyzerConfig, AnalysisSession, analyze_file
from pcapdiag.core.decoder import HeaderDecoder
from pcapdiag.core.flow import FlowKey, FlowState, FlowStateTracker
from pcapdiag.core.packet import (
    DecodedPacket,
    EthernetInfo,
    ARPInfo,
    IPInfo,
    IP6Info,
    TCPInfo,
    UDPInfo,
    ICMPInfo,
    DNSInfo,
    TLSInfo,
    HTTPInfo
)
from pcapdiag.core.reader import PcapReader, Frame, LinkLayerType
from pcapdiag.core.report import AnalysisReport, ConversationSummary, ReportBuilder, TalkerSummary, TcpStats
from pcapdiag.core.rules import Severity, Issue, HeuristicRule, RuleEngine, core_rules, extended_rules
from pcapdiag.core.stats import ConversationKey, Conversation, HeuristicCounters, StatisticsAggregator

__all__ = [
    'PcapAnalyzer',
    'AnalyzerConfig',
    'AnalysisSession',
    'analyze_file',
    'HeaderDecoder',
    'FlowKey',
    'FlowState',
    'FlowStateTracker',
    'DecodedPacket',
    'EthernetInfo',
    'ARPInfo',
    'IPInfo',
    'IP6Info',
    'TCPInfo',
    'UDPInfo',
    'ICMPInfo',
    'DNSInfo',
    'TLSInfo',
    'HTTPInfo',
    'PcapReader',
    'Frame',
    'LinkLayerType',
    'AnalysisReport',
    'ConversationSummary',
    'ReportBuilder',
    'TalkerSummary',
    'TcpStats',
    'Severity',
    'Issue',
    'HeuristicRule',
    'RuleEngine',
    'core_rules',
    'extended_rules',
    'ConversationKey',
    'Conversation',
    'HeuristicCounters',
    'StatisticsAggregator',
]
