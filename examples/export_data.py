"""
Export example.

Demonstrates exporting a report to different formats:
- dict / JSON (whole report)
- DataFrame (pandas, one table at a time)
- CSV
"""

from pcapdiag import PcapAnalyzer, ReportExporter, report_to_dict, to_dataframe, to_json

analyzer = PcapAnalyzer()
report = analyzer.analyze_file('test/multi.pcap')

print(f"Packets: {report.packet_count}")
print()

# === Export to dict / JSON ===
data = report_to_dict(report)
print("Report keys:")
print(list(data.keys()))
print()

to_json(report, 'report.json')
print("Saved report.json")

# === Export tables to DataFrame ===
conversations = to_dataframe(report)
print("Conversations:")
print(conversations)
print()

protocols = to_dataframe(report, 'protocols')
print("Protocols:")
print(protocols.sort_values('packets', ascending=False))
print()

issues = to_dataframe(report, 'issues')
if not issues.empty:
    print("Issues by severity:")
    print(issues['severity'].value_counts())
    print()

# === Export to CSV ===
for table in ('conversations', 'issues', 'talkers'):
    ReportExporter(table=table).save(report, f'{table}.csv')
    print(f"Saved {table}.csv")
