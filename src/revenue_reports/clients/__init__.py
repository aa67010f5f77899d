"""
External service clients for the revenue reporting pipeline.
"""

from .postgres_client import PostgresClient

__all__ = [
    'PostgresClient',
]
