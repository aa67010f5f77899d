"""
Revenue Reports Pipeline

Builds revenue pivot and forecast reports from CRM deal snapshots: resolves
deals to client entities, classifies revenue type, client age and POC team,
and carries recurring revenue forward to the end of the reporting window.
"""

__version__ = '0.1.0'

# Re-export key classes for convenience
from .config import ReportConfig
from .pipeline import (
    EnrichmentBuilder,
    EnrichmentCache,
    ForecastEngine,
    ForecastPolicy,
    PivotEngine,
    RecordSnapshot,
    ReportBuilder,
    ReportPipeline,
    ReportRunResult,
    TeamMembership,
)
from .models import DealRecord, MonthlyPivotRow, ReportTable, ReportVariant
from .repository import ReportRepository
from .logging import (
    configure_logging,
    get_logger,
    logging_context,
    PipelineTimer,
)
from .errors import (
    RevenueReportError,
    ConfigurationError,
    MissingParameterError,
    MissingTableError,
    MissingColumnError,
    PipelineError,
    ReportBuildError,
    StorageError,
    DataQualityReport,
)

__all__ = [
    # Version
    '__version__',
    # Main Pipeline
    'ReportPipeline',
    'RecordSnapshot',
    'ReportRunResult',
    'ReportConfig',
    # Components
    'EnrichmentBuilder',
    'EnrichmentCache',
    'ForecastEngine',
    'ForecastPolicy',
    'PivotEngine',
    'ReportBuilder',
    'TeamMembership',
    # Models
    'DealRecord',
    'MonthlyPivotRow',
    'ReportTable',
    'ReportVariant',
    # Repository
    'ReportRepository',
    # Logging
    'configure_logging',
    'get_logger',
    'logging_context',
    'PipelineTimer',
    # Errors
    'RevenueReportError',
    'ConfigurationError',
    'MissingParameterError',
    'MissingTableError',
    'MissingColumnError',
    'PipelineError',
    'ReportBuildError',
    'StorageError',
    'DataQualityReport',
]
