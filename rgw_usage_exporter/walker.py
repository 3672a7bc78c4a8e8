"""
Per-user walk: user detail and bucket stats for every user identifier.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Sequence

from .models import UserResult
from .rgw_client import RGWAdminClient, RGWAdminError

logger = logging.getLogger(__name__)


class EntityWalker:
    """
    Resolves users and their buckets.

    A failure for one user never stops the walk: the user gets a UserResult
    with a skip_reason and the remaining identifiers are still processed.
    Results come back in the order of the identifiers given.
    """

    def __init__(self, client: RGWAdminClient, workers: int = 1):
        self.client = client
        self.workers = max(1, workers)

    def resolve(self, uid: str) -> UserResult:
        """Fetch detail and bucket stats for a single user."""
        try:
            user = self.client.get_user(uid)
        except RGWAdminError as e:
            logger.debug("Failed to get user details uid=%s error=%s", uid, e)
            return UserResult(user_id=uid, skip_reason=f"user detail: {e}")

        try:
            buckets = self.client.list_user_buckets_with_stats(uid)
        except RGWAdminError as e:
            logger.debug("Failed to list buckets for user uid=%s error=%s", uid, e)
            return UserResult(user_id=uid, user=user, skip_reason=f"bucket list: {e}")

        return UserResult(user_id=uid, user=user, buckets=buckets)

    def walk(self, user_ids: Sequence[str]) -> List[UserResult]:
        """Resolve every identifier, sequentially or over a thread pool."""
        if self.workers == 1 or len(user_ids) <= 1:
            return [self.resolve(uid) for uid in user_ids]

        with ThreadPoolExecutor(max_workers=min(self.workers, len(user_ids))) as executor:
            futures = [executor.submit(self.resolve, uid) for uid in user_ids]
            # resolve() absorbs admin errors, so result() only re-raises bugs
            return [f.result() for f in futures]
