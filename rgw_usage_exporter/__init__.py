"""
RGW Usage Exporter

Prometheus exporter for Ceph RGW usage, quota and bucket statistics.
"""

from .models import ExporterConfig, Snapshot, UsageKey, UsageCounters, UserRecord, BucketRecord
from .rgw_client import RGWAdminClient, RGWAdminError
from .aggregator import aggregate_usage
from .walker import EntityWalker
from .collector import RGWUsageCollector

__version__ = "1.0.0"
__all__ = [
    'ExporterConfig', 'Snapshot', 'UsageKey', 'UsageCounters', 'UserRecord', 'BucketRecord',
    'RGWAdminClient', 'RGWAdminError', 'aggregate_usage', 'EntityWalker', 'RGWUsageCollector',
]
