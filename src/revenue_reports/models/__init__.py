"""
Data models for the revenue reporting pipeline.

Provides the input model (DealRecord), the derived classification models
(EntityStats, ClassificationResult, EntityFlags, EnrichedRecord) and the
report output structures (MonthlyPivotRow, ReportTable).
"""

from .deal import DealRecord
from .classification import (
    ClassificationResult,
    ClientAge,
    EnrichedRecord,
    EntityFlags,
    EntityStats,
    PocTeam,
    RevenueType,
)
from .report import MonthlyPivotRow, ReportTable, ReportVariant

__all__ = [
    # Input
    'DealRecord',
    # Derived
    'ClassificationResult',
    'ClientAge',
    'EnrichedRecord',
    'EntityFlags',
    'EntityStats',
    'PocTeam',
    'RevenueType',
    # Output
    'MonthlyPivotRow',
    'ReportTable',
    'ReportVariant',
]
