"""
Metric names, label schema and projections from collected records to
prometheus_client metric families.

Names and labels are part of the exporter's public interface; dashboards
and alerts depend on them.
"""

from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple

from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily, Metric

from .models import (
    BUCKET_TOTAL_CATEGORY,
    BucketRecord,
    Quota,
    Snapshot,
    UsageCounters,
    UsageKey,
    UserRecord,
    UserResult,
)

BUCKET_LABELS = ("bucket", "owner", "category", "store")
USER_LABELS = ("user", "store")

COUNTER = "counter"
GAUGE = "gauge"


class MetricDef(NamedTuple):
    name: str
    documentation: str
    kind: str
    labels: Tuple[str, ...] = ()


# Usage
USAGE_OPS = MetricDef("radosgw_usage_ops_total", "Number of operations", COUNTER, BUCKET_LABELS)
USAGE_SUCCESSFUL_OPS = MetricDef(
    "radosgw_usage_successful_ops_total", "Number of successful operations", COUNTER, BUCKET_LABELS)
USAGE_SENT_BYTES = MetricDef("radosgw_usage_sent_bytes_total", "Bytes sent by the RADOSGW", COUNTER, BUCKET_LABELS)
USAGE_RECEIVED_BYTES = MetricDef(
    "radosgw_usage_received_bytes_total", "Bytes received by the RADOSGW", COUNTER, BUCKET_LABELS)

# Bucket
BUCKET_BYTES = MetricDef("radosgw_usage_bucket_bytes", "Bucket used bytes", GAUGE, BUCKET_LABELS)
BUCKET_OBJECTS = MetricDef("radosgw_usage_bucket_objects", "Number of objects in bucket", GAUGE, BUCKET_LABELS)

# User
USER_TOTAL_BYTES = MetricDef("radosgw_usage_user_total_bytes", "Usage of bytes by user", GAUGE, USER_LABELS)
USER_TOTAL_OBJECTS = MetricDef("radosgw_usage_user_total_objects", "Usage of objects by user", GAUGE, USER_LABELS)

# User quota
USER_QUOTA_ENABLED = MetricDef("radosgw_usage_user_quota_enabled", "User quota enabled", GAUGE, USER_LABELS)
USER_QUOTA_SIZE_BYTES = MetricDef(
    "radosgw_usage_user_quota_size_bytes", "Maximum allowed size in bytes for user", GAUGE, USER_LABELS)
USER_QUOTA_SIZE_OBJECTS = MetricDef(
    "radosgw_usage_user_quota_size_objects",
    "Maximum allowed number of objects across all user buckets", GAUGE, USER_LABELS)

# Bucket quota (per user)
USER_BUCKET_QUOTA_ENABLED = MetricDef(
    "radosgw_usage_user_bucket_quota_enabled", "User per-bucket-quota enabled", GAUGE, USER_LABELS)
USER_BUCKET_QUOTA_SIZE_BYTES = MetricDef(
    "radosgw_usage_user_bucket_quota_size_bytes",
    "Maximum allowed size in bytes for each bucket of user", GAUGE, USER_LABELS)
USER_BUCKET_QUOTA_SIZE_OBJECTS = MetricDef(
    "radosgw_usage_user_bucket_quota_size_objects",
    "Maximum allowed number of objects in each user bucket", GAUGE, USER_LABELS)

# Exporter
SCRAPE_DURATION = MetricDef(
    "radosgw_usage_scrape_duration_seconds", "Amount of time each scrape takes", GAUGE)
UP = MetricDef("radosgw_up", "Whether the RADOSGW exporter is able to communicate with RADOSGW.", GAUGE)

USAGE_METRICS = (USAGE_OPS, USAGE_SUCCESSFUL_OPS, USAGE_SENT_BYTES, USAGE_RECEIVED_BYTES)
BUCKET_METRICS = (BUCKET_BYTES, BUCKET_OBJECTS)
USER_METRICS = (
    USER_TOTAL_BYTES, USER_TOTAL_OBJECTS,
    USER_QUOTA_ENABLED, USER_QUOTA_SIZE_BYTES, USER_QUOTA_SIZE_OBJECTS,
    USER_BUCKET_QUOTA_ENABLED, USER_BUCKET_QUOTA_SIZE_BYTES, USER_BUCKET_QUOTA_SIZE_OBJECTS,
)
META_METRICS = (SCRAPE_DURATION, UP)

ALL_METRICS = USAGE_METRICS + BUCKET_METRICS + USER_METRICS + META_METRICS


def new_family(definition: MetricDef) -> Metric:
    """Create an empty metric family for a definition."""
    if definition.kind == COUNTER:
        return CounterMetricFamily(definition.name, definition.documentation, labels=list(definition.labels))
    return GaugeMetricFamily(definition.name, definition.documentation, labels=list(definition.labels))


def describe_families() -> List[Metric]:
    return [new_family(d) for d in ALL_METRICS]


def _families(definitions: Sequence[MetricDef]) -> Dict[str, Metric]:
    return {d.name: new_family(d) for d in definitions}


def _add_optional(family: Metric, labels: List[str], value: Optional[float]):
    # Absent upstream values are not reported, unlike a known zero
    if value is not None:
        family.add_metric(labels, float(value))


def _flag(value: Optional[bool]) -> Optional[float]:
    if value is None:
        return None
    return 1.0 if value else 0.0


def usage_families(usage: Dict[UsageKey, UsageCounters]) -> List[Metric]:
    """Four counter families, one sample per aggregated key each."""
    families = _families(USAGE_METRICS)
    for key, counters in usage.items():
        labels = [key.bucket, key.owner, key.category, key.store]
        families[USAGE_OPS.name].add_metric(labels, counters.ops)
        families[USAGE_SUCCESSFUL_OPS.name].add_metric(labels, counters.successful_ops)
        families[USAGE_SENT_BYTES.name].add_metric(labels, counters.bytes_sent)
        families[USAGE_RECEIVED_BYTES.name].add_metric(labels, counters.bytes_received)
    return list(families.values())


def add_bucket_samples(families: Dict[str, Metric], bucket: BucketRecord, store: str):
    labels = [bucket.bucket, bucket.owner, BUCKET_TOTAL_CATEGORY, store]
    _add_optional(families[BUCKET_OBJECTS.name], labels, bucket.num_objects)
    _add_optional(families[BUCKET_BYTES.name], labels, bucket.size_bytes)


def _add_quota_samples(families: Dict[str, Metric], labels: List[str], quota: Quota,
                       enabled: MetricDef, size_bytes: MetricDef, size_objects: MetricDef):
    _add_optional(families[enabled.name], labels, _flag(quota.enabled))
    _add_optional(families[size_bytes.name], labels, quota.max_size_bytes)
    _add_optional(families[size_objects.name], labels, quota.max_objects)


def add_user_samples(families: Dict[str, Metric], user: UserRecord, store: str):
    labels = [user.user_id, store]
    _add_optional(families[USER_TOTAL_OBJECTS.name], labels, user.num_objects)
    _add_optional(families[USER_TOTAL_BYTES.name], labels, user.size_bytes)
    _add_quota_samples(families, labels, user.user_quota,
                       USER_QUOTA_ENABLED, USER_QUOTA_SIZE_BYTES, USER_QUOTA_SIZE_OBJECTS)
    _add_quota_samples(families, labels, user.bucket_quota,
                       USER_BUCKET_QUOTA_ENABLED, USER_BUCKET_QUOTA_SIZE_BYTES, USER_BUCKET_QUOTA_SIZE_OBJECTS)


def entity_families(results: Iterable[UserResult], store: str) -> List[Metric]:
    """Bucket gauges followed by user gauges. Skipped users contribute nothing."""
    families = _families(BUCKET_METRICS + USER_METRICS)
    for result in results:
        if result.skipped:
            continue
        add_user_samples(families, result.user, store)
        for bucket in result.buckets:
            add_bucket_samples(families, bucket, store)
    return list(families.values())


def meta_families(duration_seconds: float, up: bool) -> List[Metric]:
    duration = new_family(SCRAPE_DURATION)
    duration.add_metric([], duration_seconds)
    health = new_family(UP)
    health.add_metric([], 1.0 if up else 0.0)
    return [duration, health]


def snapshot_families(snapshot: Snapshot) -> List[Metric]:
    """
    All families of a pass: usage, then bucket/user, then duration and health.
    Families without samples are left out.
    """
    families = (
        usage_families(snapshot.usage)
        + entity_families(snapshot.users, snapshot.store)
        + meta_families(snapshot.duration_seconds, snapshot.up)
    )
    return [f for f in families if f.samples]
