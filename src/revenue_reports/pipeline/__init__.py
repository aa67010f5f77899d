"""
Pipeline components for deal ingestion, enrichment, pivoting and forecasting.
"""

from .classifier import Classifier, TeamMembership, classify_client_age, classify_revenue_type
from .dedup import deduplicate, deduplicate_sources
from .enrichment import EnrichmentBuilder, EnrichmentCache
from .forecast import ForecastEngine, ForecastPolicy, find_baseline
from .identity import EntityIndex, EntityResolver
from .ingest import ColumnMap, build_record, ingest_dicts, ingest_table
from .pipeline import RecordSnapshot, ReportPipeline, ReportRunResult
from .pivot import PivotEngine, sort_rows
from .poc_team import POC_TEAM_TIERS, PocContext, build_poc_context, resolve_poc_team
from .reports import REPORT_DEFINITIONS, ReportBuilder, ReportDefinition

__all__ = [
    # Main Pipeline
    'ReportPipeline',
    'RecordSnapshot',
    'ReportRunResult',
    # Ingestion
    'ColumnMap',
    'build_record',
    'ingest_dicts',
    'ingest_table',
    # Dedup and identity
    'deduplicate',
    'deduplicate_sources',
    'EntityIndex',
    'EntityResolver',
    # Classification
    'Classifier',
    'TeamMembership',
    'classify_client_age',
    'classify_revenue_type',
    # Enrichment
    'EnrichmentBuilder',
    'EnrichmentCache',
    # Pivot and POC team
    'PivotEngine',
    'sort_rows',
    'POC_TEAM_TIERS',
    'PocContext',
    'build_poc_context',
    'resolve_poc_team',
    # Forecast
    'ForecastEngine',
    'ForecastPolicy',
    'find_baseline',
    # Reports
    'REPORT_DEFINITIONS',
    'ReportBuilder',
    'ReportDefinition',
]
