"""
Usage aggregation: folds usage entries into per-(bucket, owner, category) counters.
"""

from typing import Dict, Iterable

from .models import BUCKET_ROOT, UsageCounters, UsageEntry, UsageKey


def aggregate_usage(entries: Iterable[UsageEntry], store: str) -> Dict[UsageKey, UsageCounters]:
    """
    Sum usage counters by (bucket, owner, category, store).

    The same key can show up many times in one response (one record per
    time slot), so counters are always added, never replaced. The owner is
    the user the entry belongs to. An empty bucket name means an account
    level operation and is reported as 'bucket_root'.

    A new mapping is built on every call; nothing is kept between passes.
    """
    aggregated: Dict[UsageKey, UsageCounters] = {}

    for entry in entries:
        for bucket in entry.buckets:
            bucket_name = bucket.bucket or BUCKET_ROOT
            for category in bucket.categories:
                key = UsageKey(
                    bucket=bucket_name,
                    owner=entry.user,
                    category=category.category,
                    store=store,
                )
                counters = aggregated.get(key)
                if counters is None:
                    counters = aggregated[key] = UsageCounters()
                counters.add(category)

    return aggregated
