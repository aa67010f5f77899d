#!/usr/bin/env python3
"""
Run one revenue report locally and print the finished table as JSON.

Reads either a JSON export or the configured Postgres database:

    {
        "sources": {"Payment": [{"Deal ID": "...", "Amount": "...", ...}], ...},
        "sales_members": ["owner-1", ...],
        "cs_members": ["owner-2", ...],
        "exclusions": ["Internal Test Co", ...]
    }

Usage:
    python scripts/run_report.py sales --report-date 2024-09-15 --input export.json
    python scripts/run_report.py client_revenue --report-date 2024-09-15 --database
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from dotenv import load_dotenv
load_dotenv(Path(__file__).parent.parent / '.env')

from revenue_reports.clients.postgres_client import PostgresClient
from revenue_reports.config import ReportConfig, config
from revenue_reports.errors import DataQualityReport, RevenueReportError
from revenue_reports.logging import logging_context
from revenue_reports.models.report import ReportVariant
from revenue_reports.pipeline.classifier import TeamMembership
from revenue_reports.pipeline.ingest import ingest_dicts
from revenue_reports.pipeline.pipeline import RecordSnapshot, ReportPipeline
from revenue_reports.repository import ReportRepository


# =============================================================================
# Snapshot Loading
# =============================================================================


def load_export(path: Path) -> RecordSnapshot:
    """Build a snapshot from a JSON export file."""
    with open(path) as f:
        data = json.load(f)

    quality = DataQualityReport()
    records_by_source = {}
    for source, rows in data.get('sources', {}).items():
        with logging_context(source=source):
            records_by_source[source] = ingest_dicts(rows, source, quality)
    has_membership = 'sales_members' in data or 'cs_members' in data
    membership = (
        TeamMembership.from_lists(data.get('sales_members', []), data.get('cs_members', []))
        if has_membership
        else None
    )
    return RecordSnapshot(
        records_by_source=records_by_source,
        membership=membership,
        exclusions=data.get('exclusions'),
        quality=quality,
    )


async def load_database(variant: ReportVariant) -> RecordSnapshot:
    pg = PostgresClient(config.DATABASE_URL)
    await pg.connect()
    try:
        return await ReportRepository(pg).load_snapshot(variant)
    finally:
        await pg.close()


# =============================================================================
# Main
# =============================================================================


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='Run one revenue report.')
    parser.add_argument('variant', choices=[v.value for v in ReportVariant])
    parser.add_argument('--report-date', required=True, help='Report date (YYYY-MM-DD)')
    parser.add_argument('--report-start', help='First day of the report window')
    parser.add_argument('--report-end', help='Last day of the report window')
    parser.add_argument('--granularity', choices=['month', 'quarter'])
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument('--input', type=Path, help='JSON export to read')
    source.add_argument('--database', action='store_true', help='Read from DATABASE_URL')
    parser.add_argument('--rows', action='store_true', help='Print pivot rows instead of the table')
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    variant = ReportVariant(args.variant)

    parameters = {
        'report_date': args.report_date,
        'report_start': args.report_start,
        'report_end': args.report_end,
        'granularity': args.granularity,
    }
    try:
        report_config = ReportConfig.from_mapping({k: v for k, v in parameters.items() if v})
        snapshot = (
            load_export(args.input) if args.input is not None else asyncio.run(load_database(variant))
        )
        result = ReportPipeline().run(snapshot, report_config, variant)
    except RevenueReportError as e:
        print(f'ERROR: {e}', file=sys.stderr)
        return 1

    if args.rows:
        output = [row.to_dict() for row in result.rows]
    else:
        output = result.table.to_dict()
    print(json.dumps(output, indent=2, default=str))
    return 0


if __name__ == '__main__':
    sys.exit(main())
