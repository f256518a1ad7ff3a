"""
Heuristic rules evaluated once over the aggregate counters of a pass.

Rules are plain data: which counter to read, when it fires, how severe the
finding is and how to describe it. ``RuleEngine`` evaluates them in list
order, so the issue list always follows rule order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from pcapdiag.core.stats import DEFAULT_SUSPICIOUS_PORTS, HeuristicCounters

logger = logging.getLogger(__name__)

DEFAULT_RETRANSMISSION_THRESHOLD = 10
DEFAULT_RETRANSMISSION_CRITICAL_THRESHOLD = 100


class Severity(str, Enum):
    """Issue severity."""
    CRITICAL = 'critical'
    WARN = 'warn'
    INFO = 'info'

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Issue:
    """One finding of the rule engine."""
    severity: Severity
    title: str
    description: str
    timestamp: float | None = None

    def to_dict(self) -> dict:
        return {
            'severity': self.severity.value,
            'title': self.title,
            'description': self.description,
            'timestamp': self.timestamp,
        }


@dataclass(frozen=True)
class HeuristicRule:
    """
    Threshold rule over one heuristic counter.

    The rule fires when the counter exceeds ``threshold``. With
    ``share_divisor`` set, the counter must also exceed
    ``packet_count // share_divisor`` and the capture must hold more than
    ``min_packets`` packets. ``escalate_above`` raises the severity to
    ``escalated_severity`` for large counts.

    ``description`` is formatted with ``count``, ``packets`` and
    ``percent`` (the counter as a percentage of all packets).
    """
    title: str
    counter: str
    severity: Severity
    description: str
    threshold: int = 0
    escalate_above: int | None = None
    escalated_severity: Severity = Severity.CRITICAL
    share_divisor: int | None = None
    min_packets: int = 0

    def __post_init__(self):
        if self.counter not in HeuristicCounters.NAMES:
            raise ValueError(
                f"Unknown counter {self.counter!r} in rule {self.title!r}, "
                f"must be one of: {', '.join(HeuristicCounters.NAMES)}"
            )
        if self.share_divisor is not None and self.share_divisor < 1:
            raise ValueError(f"share_divisor must be positive, got {self.share_divisor}")

    def evaluate(self, counters: HeuristicCounters, packet_count: int) -> Issue | None:
        """Return an Issue if the rule fires, else None."""
        count = counters[self.counter]
        if count <= self.threshold:
            return None

        if self.share_divisor is not None:
            if packet_count <= self.min_packets or count <= packet_count // self.share_divisor:
                return None

        severity = self.severity
        if self.escalate_above is not None and count > self.escalate_above:
            severity = self.escalated_severity

        percent = (count / packet_count * 100.0) if packet_count else 0.0
        return Issue(
            severity=severity,
            title=self.title,
            description=self.description.format(count=count, packets=packet_count, percent=percent),
            timestamp=counters.first_seen(self.counter),
        )


def core_rules(
    suspicious_ports: Iterable[int] = DEFAULT_SUSPICIOUS_PORTS,
    retransmission_threshold: int = DEFAULT_RETRANSMISSION_THRESHOLD,
    retransmission_critical_threshold: int = DEFAULT_RETRANSMISSION_CRITICAL_THRESHOLD,
) -> list[HeuristicRule]:
    """The default rule table."""
    ports = ', '.join(str(p) for p in sorted(suspicious_ports))
    return [
        HeuristicRule(
            title='Suspicious Port Activity',
            counter='suspicious_ports',
            severity=Severity.CRITICAL,
            description=(
                f"Detected {{count}} packets to known malware/insecure ports ({ports}). "
                "Check for C2 or unauthorized access."
            ),
        ),
        HeuristicRule(
            title='Cleartext Credentials Leaked',
            counter='cleartext_auth',
            severity=Severity.CRITICAL,
            description=(
                "Intercepted {count} packets containing 'Authorization: Basic'. "
                "Passwords are being sent in plain text!"
            ),
        ),
        HeuristicRule(
            title='TCP Retransmissions',
            counter='retransmissions',
            severity=Severity.WARN,
            threshold=retransmission_threshold,
            escalate_above=retransmission_critical_threshold,
            description=(
                "Congestion detected. {count} retransmissions found. "
                "Expect application lag/stalls."
            ),
        ),
        HeuristicRule(
            title='TCP Zero Window',
            counter='zero_window',
            severity=Severity.CRITICAL,
            description=(
                "Found {count} TCP segments advertising a zero receive window. "
                "A receiver cannot keep up with incoming data."
            ),
        ),
        HeuristicRule(
            title='Deprecated TLS Usage',
            counter='deprecated_tls',
            severity=Severity.WARN,
            description=(
                "Found {count} packets using legacy SSL 3.0 or TLS 1.0. "
                "This is a security risk (POODLE/BEAST)."
            ),
        ),
        HeuristicRule(
            title='IP Fragmentation Detected',
            counter='fragments',
            severity=Severity.WARN,
            description=(
                "Found {count} fragmented packets. "
                "Fragmentation causes audio dropouts and stalls in real-time traffic."
            ),
        ),
    ]


def extended_rules() -> list[HeuristicRule]:
    """Volume and ratio rules, off by default."""
    return [
        HeuristicRule(
            title='Potential DNS Tunneling',
            counter='large_dns',
            severity=Severity.CRITICAL,
            threshold=5,
            description=(
                "Found {count} unusually large DNS packets. "
                "This is a common indication of data exfiltration or tunneling."
            ),
        ),
        HeuristicRule(
            title='High TCP Reset Rate',
            counter='resets',
            severity=Severity.WARN,
            threshold=10,
            description=(
                "Found {count} TCP Resets (RST). "
                "Firewalls may be blocking traffic or services are crashing."
            ),
        ),
        HeuristicRule(
            title='Broadcast Storm',
            counter='broadcast',
            severity=Severity.CRITICAL,
            share_divisor=10,
            min_packets=500,
            description="Broadcast traffic is {percent:.1f}% of total. This kills network performance.",
        ),
        HeuristicRule(
            title='High DHCP Activity',
            counter='dhcp',
            severity=Severity.INFO,
            threshold=15,
            description=(
                "{count} DHCP packets seen. "
                "Check for rogue DHCP servers or boot loops."
            ),
        ),
        HeuristicRule(
            title='Excessive ARP Traffic',
            counter='arp',
            severity=Severity.WARN,
            share_divisor=5,
            min_packets=500,
            description=(
                "ARP is {percent:.1f}% of total traffic. "
                "Could indicate a scanning tool or misconfigured subnet mask."
            ),
        ),
        HeuristicRule(
            title='High Multicast Traffic',
            counter='multicast',
            severity=Severity.INFO,
            share_divisor=5,
            min_packets=500,
            description=(
                "Multicast is {percent:.1f}% of total traffic. "
                "Ensure IGMP snooping is enabled."
            ),
        ),
        HeuristicRule(
            title='High DNS Activity',
            counter='dns_queries',
            severity=Severity.INFO,
            share_divisor=10,
            min_packets=500,
            description=(
                "{count} DNS queries found. "
                "Possible malware beaconing or misconfiguration."
            ),
        ),
    ]


class RuleEngine:
    """Evaluate an ordered rule list against aggregate counters."""

    def __init__(self, rules: Iterable[HeuristicRule] | None = None):
        self.rules: list[HeuristicRule] = list(rules) if rules is not None else core_rules()

    def evaluate(self, counters: HeuristicCounters, packet_count: int) -> tuple[Issue, ...]:
        issues = []
        for rule in self.rules:
            issue = rule.evaluate(counters, packet_count)
            if issue is not None:
                logger.debug("Rule %r fired (%s): %s", rule.title, issue.severity, rule.counter)
                issues.append(issue)
        return tuple(issues)
