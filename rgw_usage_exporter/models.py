"""
Data models for RGW usage, quota and bucket statistics.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, NamedTuple, Optional

# Bucket identity used for account-level operations (no bucket name upstream)
BUCKET_ROOT = "bucket_root"

# Category label attached to per-bucket size/object gauges
BUCKET_TOTAL_CATEGORY = "bucket_total"

KIB = 1024


@dataclass
class UsageCategory:
    """Operation counters for one category inside a usage bucket record."""
    category: str
    ops: int = 0
    successful_ops: int = 0
    bytes_sent: int = 0
    bytes_received: int = 0


@dataclass
class UsageBucket:
    """One bucket (and time slot) of a usage entry."""
    bucket: str
    categories: List[UsageCategory] = field(default_factory=list)


@dataclass
class UsageEntry:
    """Usage entries of a single user - mirrors /admin/usage 'entries'."""
    user: str
    buckets: List[UsageBucket] = field(default_factory=list)


class UsageKey(NamedTuple):
    """Identity of an aggregated usage series."""
    bucket: str
    owner: str
    category: str
    store: str


@dataclass
class UsageCounters:
    """Accumulated counters for one UsageKey. Only ever added to."""
    ops: float = 0.0
    successful_ops: float = 0.0
    bytes_sent: float = 0.0
    bytes_received: float = 0.0

    def add(self, category: UsageCategory):
        self.ops += category.ops
        self.successful_ops += category.successful_ops
        self.bytes_sent += category.bytes_sent
        self.bytes_received += category.bytes_received


@dataclass
class Quota:
    """User or per-bucket quota. None means the gateway did not report the field."""
    enabled: Optional[bool] = None
    max_size_kb: Optional[int] = None
    max_objects: Optional[int] = None

    @property
    def max_size_bytes(self) -> Optional[int]:
        if self.max_size_kb is None:
            return None
        return self.max_size_kb * KIB


@dataclass
class UserRecord:
    """User detail with totals and quotas."""
    user_id: str
    num_objects: Optional[int] = None
    size_bytes: Optional[int] = None
    user_quota: Quota = field(default_factory=Quota)
    bucket_quota: Quota = field(default_factory=Quota)


@dataclass
class BucketRecord:
    """Current size of one bucket owned by a user (rgw.main usage section)."""
    bucket: str
    owner: str = ""
    num_objects: Optional[int] = None
    size_bytes: Optional[int] = None


@dataclass
class UserResult:
    """
    Outcome of resolving one user identifier.

    - user is None: the user detail fetch failed, nothing is emitted.
    - user set, skip_reason set: the bucket listing failed, only user-level
      measurements are emitted.
    """
    user_id: str
    user: Optional[UserRecord] = None
    buckets: List[BucketRecord] = field(default_factory=list)
    skip_reason: Optional[str] = None

    @property
    def skipped(self) -> bool:
        return self.user is None

    @property
    def buckets_skipped(self) -> bool:
        return self.user is not None and self.skip_reason is not None


@dataclass
class Snapshot:
    """Everything one collection pass produced."""
    store: str
    usage: Dict[UsageKey, UsageCounters] = field(default_factory=dict)
    users: List[UserResult] = field(default_factory=list)
    up: bool = True
    duration_seconds: float = 0.0
    errors: List[str] = field(default_factory=list)

    @property
    def skipped_users(self) -> List[UserResult]:
        return [r for r in self.users if r.skip_reason is not None]


_TRUE_STRINGS = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE_STRINGS = {"0", "f", "F", "FALSE", "false", "False"}


def parse_bool(value: str, default: bool = False) -> bool:
    """Parse boolean env values (1/t/true/TRUE..., 0/f/false/FALSE...)."""
    if value in _TRUE_STRINGS:
        return True
    if value in _FALSE_STRINGS:
        return False
    return default


@dataclass(frozen=True)
class ExporterConfig:
    """Configuration for the exporter. Resolved once at startup."""
    endpoint: str = ""
    access_key: str = ""
    secret_key: str = ""

    # Static label applied to every measurement
    store: str = "us-east-1"
    port: int = 9242

    # Admin client
    insecure: bool = False
    region: str = "us-east-1"
    timeout: float = 30.0

    # Per-user walk parallelism (1 = sequential)
    workers: int = 1

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = None) -> "ExporterConfig":
        env = os.environ if environ is None else environ

        def get(key: str, fallback: str) -> str:
            # Empty values fall back, as with unset ones
            return env.get(key) or fallback

        return cls(
            endpoint=get("RADOSGW_ENDPOINT", ""),
            access_key=get("ACCESS_KEY", ""),
            secret_key=get("SECRET_KEY", ""),
            store=get("STORE", "us-east-1"),
            port=int(get("METRICS_PORT", "9242")),
            insecure=parse_bool(get("INSECURE_SKIP_VERIFY", "false")),
            region=get("RADOSGW_REGION", "us-east-1"),
            timeout=float(get("RADOSGW_TIMEOUT", "30")),
            workers=max(1, int(get("WALK_WORKERS", "1"))),
        )

    def missing_required(self) -> List[str]:
        """Environment variable names of required settings that are unset."""
        missing = []
        if not self.endpoint:
            missing.append("RADOSGW_ENDPOINT")
        if not self.access_key:
            missing.append("ACCESS_KEY")
        if not self.secret_key:
            missing.append("SECRET_KEY")
        return missing
