"""
Export functionality for analysis reports.

Provides methods to export a report to dict, JSON, pandas DataFrame and CSV.
A report holds several tables; DataFrame and CSV exports pick one of them
with ``table`` (``'conversations'``, ``'issues'``, ``'protocols'`` or
``'talkers'``).

Examples:
    Export to pandas DataFrame:
        >>> from pcapdiag import PcapAnalyzer, to_dataframe
        >>> report = PcapAnalyzer().analyze_file('traffic.pcap')
        >>> df = to_dataframe(report)
        >>> print(df[['src', 'dst', 'bytes']])

    Export to JSON:
        >>> from pcapdiag import to_json
        >>> to_json(report, 'report.json')

    Using ReportExporter class:
        >>> from pcapdiag import ReportExporter
        >>> exporter = ReportExporter(table='issues')
        >>> exporter.save(report, 'issues.csv')
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pcapdiag.core.report import AnalysisReport

TABLES = ('conversations', 'issues', 'protocols', 'talkers')


def report_to_dict(report: AnalysisReport) -> dict[str, Any]:
    """
    Convert a report to plain dictionaries and lists.

    Severity values become their strings, so the result is JSON-serializable.
    """
    return {
        'packet_count': report.packet_count,
        'duration_sec': report.duration_sec,
        'first_timestamp': report.first_timestamp,
        'last_timestamp': report.last_timestamp,
        'link_type': report.link_type,
        'issues': [issue.to_dict() for issue in report.issues],
        'top_conversations': [conv.to_dict() for conv in report.top_conversations],
        'protocol_distribution': dict(report.protocol_distribution),
        'tcp_stats': report.tcp_stats.to_dict(),
        'top_talkers': [talker.to_dict() for talker in report.top_talkers],
    }


def table_rows(report: AnalysisReport, table: str = 'conversations') -> list[dict[str, Any]]:
    """Rows of one report table as dictionaries."""
    if table == 'conversations':
        return [conv.to_dict() for conv in report.top_conversations]
    if table == 'issues':
        return [issue.to_dict() for issue in report.issues]
    if table == 'protocols':
        return [{'protocol': name, 'packets': count}
                for name, count in report.protocol_distribution.items()]
    if table == 'talkers':
        return [talker.to_dict() for talker in report.top_talkers]
    raise ValueError(f"Unknown table {table!r}, must be one of: {', '.join(TABLES)}")


_TABLE_COLUMNS = {
    'conversations': ['src', 'dst', 'protocol', 'bytes', 'packets'],
    'issues': ['severity', 'title', 'description', 'timestamp'],
    'protocols': ['protocol', 'packets'],
    'talkers': ['address', 'packets', 'bytes'],
}


def to_dataframe(report: AnalysisReport, table: str = 'conversations') -> object:
    """
    Convert one report table to a pandas DataFrame.

    Args:
        report: AnalysisReport to export
        table: Which table to export (default: 'conversations')

    Returns:
        pandas DataFrame, one row per table entry. An empty table still
        carries its columns.

    Raises:
        ImportError: If pandas is not installed
        ValueError: If ``table`` is unknown
    """
    try:
        import pandas as pd
    except ImportError:
        raise ImportError("pandas is required for DataFrame export. Install with: pip install pandas")

    rows = table_rows(report, table)
    return pd.DataFrame(rows, columns=_TABLE_COLUMNS[table])


def to_json(report: AnalysisReport, path: str | Path, indent: int = 2) -> None:
    """
    Export a report to a JSON file.

    Args:
        report: AnalysisReport to export
        path: Output JSON file path
        indent: JSON indentation level (default: 2)
    """
    path = Path(path)

    with open(path, 'w', encoding='utf-8') as f:
        json.dump(report_to_dict(report), f, indent=indent, default=str)


def to_csv(report: AnalysisReport, path: str | Path, table: str = 'conversations') -> None:
    """
    Export one report table to a CSV file.

    Raises:
        ImportError: If pandas is not installed
    """
    df = to_dataframe(report, table)
    df.to_csv(Path(path), index=False)


class ReportExporter:
    """
    Helper class for exporting reports in various formats.

    Attributes:
        table: Table written by tabular formats (CSV, DataFrame)
        indent: JSON indentation level

    Examples:
        >>> exporter = ReportExporter(table='talkers')
        >>> exporter.save(report, 'talkers.csv')   # CSV
        >>> exporter.save(report, 'report.json')   # JSON, whole report
    """

    def __init__(self, table: str = 'conversations', indent: int = 2):
        if table not in TABLES:
            raise ValueError(f"Unknown table {table!r}, must be one of: {', '.join(TABLES)}")
        self.table = table
        self.indent = indent

    def to_dict(self, report: AnalysisReport) -> dict[str, Any]:
        return report_to_dict(report)

    def to_dataframe(self, report: AnalysisReport) -> object:
        return to_dataframe(report, self.table)

    def to_json(self, report: AnalysisReport, path: str | Path) -> None:
        to_json(report, path, indent=self.indent)

    def to_csv(self, report: AnalysisReport, path: str | Path) -> None:
        to_csv(report, path, table=self.table)

    def save(self, report: AnalysisReport, path: str | Path) -> None:
        """
        Save a report to file based on extension.

        - .json: the whole report as JSON
        - .csv: the configured table as CSV (requires pandas)

        Raises:
            ValueError: If file extension is not supported
        """
        path = Path(path)
        suffix = path.suffix.lower()

        if suffix == '.json':
            self.to_json(report, path)
        elif suffix == '.csv':
            self.to_csv(report, path)
        else:
            raise ValueError(f"Unsupported file extension: {suffix}")
