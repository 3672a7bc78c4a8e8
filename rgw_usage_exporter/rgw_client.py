"""
RGW Admin API client interface.
"""

import logging
import threading
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import requests
from requests_aws4auth import AWS4Auth

from .models import (
    BucketRecord,
    Quota,
    UsageBucket,
    UsageCategory,
    UsageEntry,
    UserRecord,
)

logger = logging.getLogger(__name__)


class RGWAdminError(Exception):
    """An admin API call failed (transport, status, or payload)."""

    def __init__(self, path: str, cause: Any):
        self.path = path
        self.cause = cause
        super().__init__(f"{path}: {cause}")


def _opt_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    return int(value)


def _opt_bool(value: Any) -> Optional[bool]:
    if value is None:
        return None
    return bool(value)


def _require_str(value: Any) -> str:
    # Label values must be strings; a JSON null or number is a malformed payload
    if not isinstance(value, str):
        raise TypeError(f"expected string, got {type(value).__name__}")
    return value


class RGWAdminClient:
    """Read-only interface to the RGW admin REST API."""

    def __init__(self, endpoint: str, access_key: str, secret_key: str,
                 region: str = "us-east-1", verify_tls: bool = True,
                 timeout: float = 30, admin_prefix: str = "admin"):
        parsed = urlparse(endpoint)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"Invalid RADOSGW endpoint: {endpoint!r}")

        self.endpoint = endpoint.rstrip("/")
        self.admin_prefix = admin_prefix.strip("/")
        self.timeout = timeout

        self.auth = AWS4Auth(access_key, secret_key, region, "s3")
        self.verify_tls = verify_tls

        # requests does not document Session as thread-safe: one per thread
        self._local = threading.local()
        self._sessions: List[requests.Session] = []
        self._sessions_lock = threading.Lock()

    @property
    def session(self) -> requests.Session:
        """The calling thread's session, created on first use."""
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            session.auth = self.auth
            session.verify = self.verify_tls
            self._local.session = session
            with self._sessions_lock:
                self._sessions.append(session)
        return session

    def _request(self, path: str, params: Dict[str, str] = None) -> Any:
        """
        GET an admin resource and return the decoded JSON body.
        Raises RGWAdminError on any failure.
        """
        url = f"{self.endpoint}/{self.admin_prefix}/{path}"
        query = {"format": "json"}
        if params:
            query.update(params)

        logger.debug("GET %s %s", url, params or {})
        try:
            resp = self.session.get(url, params=query, timeout=self.timeout)
            resp.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise RGWAdminError(path, e) from e

        try:
            return resp.json()
        except ValueError as e:
            raise RGWAdminError(path, f"invalid JSON response: {e}") from e

    def get_usage(self, show_entries: bool = True,
                  show_summary: bool = False) -> List[UsageEntry]:
        """Fetch usage log entries (per user, per bucket, per category)."""
        data = self._request("usage", {
            "show-entries": str(show_entries).lower(),
            "show-summary": str(show_summary).lower(),
        })
        try:
            return [self._parse_usage_entry(e) for e in data.get("entries") or []]
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise RGWAdminError("usage", f"unexpected usage format: {e!r}") from e

    def list_user_ids(self) -> List[str]:
        """List all user identifiers known to the gateway."""
        data = self._request("metadata/user")
        if not isinstance(data, list):
            raise RGWAdminError("metadata/user", f"unexpected user list format: {type(data).__name__}")
        return [str(uid) for uid in data]

    def get_user(self, uid: str) -> UserRecord:
        """Get user detail including totals and quotas."""
        data = self._request("user", {"uid": uid, "stats": "true"})
        try:
            return self._parse_user(data, uid)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise RGWAdminError("user", f"unexpected user format for {uid}: {e!r}") from e

    def list_user_buckets_with_stats(self, uid: str) -> List[BucketRecord]:
        """List the buckets owned by a user, with their current stats."""
        data = self._request("bucket", {"uid": uid, "stats": "true"})
        if not isinstance(data, list):
            raise RGWAdminError("bucket", f"unexpected bucket list format for {uid}: {type(data).__name__}")
        try:
            return [self._parse_bucket(raw) for raw in data]
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise RGWAdminError("bucket", f"unexpected bucket format for {uid}: {e!r}") from e

    def close(self):
        with self._sessions_lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()
        self._local = threading.local()

    def _parse_usage_entry(self, raw: Dict[str, Any]) -> UsageEntry:
        buckets = []
        for b in raw.get("buckets") or []:
            categories = [
                UsageCategory(
                    category=_require_str(c["category"]),
                    ops=int(c.get("ops", 0) or 0),
                    successful_ops=int(c.get("successful_ops", 0) or 0),
                    bytes_sent=int(c.get("bytes_sent", 0) or 0),
                    bytes_received=int(c.get("bytes_received", 0) or 0),
                )
                for c in b.get("categories") or []
            ]
            buckets.append(UsageBucket(
                bucket=_require_str(b.get("bucket") or ""),
                categories=categories,
            ))
        return UsageEntry(user=_require_str(raw["user"]), buckets=buckets)

    def _parse_quota(self, raw: Optional[Dict[str, Any]]) -> Quota:
        if not raw:
            return Quota()
        return Quota(
            enabled=_opt_bool(raw.get("enabled")),
            max_size_kb=_opt_int(raw.get("max_size_kb")),
            max_objects=_opt_int(raw.get("max_objects")),
        )

    def _parse_user(self, raw: Dict[str, Any], uid: str) -> UserRecord:
        # 'stats' is only present when requested with stats=true
        stats = raw.get("stats") or {}
        return UserRecord(
            user_id=_require_str(raw.get("user_id") or uid),
            num_objects=_opt_int(stats.get("num_objects")),
            size_bytes=_opt_int(stats.get("size")),
            user_quota=self._parse_quota(raw.get("user_quota")),
            bucket_quota=self._parse_quota(raw.get("bucket_quota")),
        )

    def _parse_bucket(self, raw: Dict[str, Any]) -> BucketRecord:
        main = (raw.get("usage") or {}).get("rgw.main") or {}
        return BucketRecord(
            bucket=_require_str(raw["bucket"]),
            owner=_require_str(raw.get("owner") or ""),
            num_objects=_opt_int(main.get("num_objects")),
            size_bytes=_opt_int(main.get("size_actual")),
        )
