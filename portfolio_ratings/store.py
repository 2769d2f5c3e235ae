"""
Rating store: the in-memory source of truth for project ratings.

Key design decisions:
    1. Optimistic writes. A submitted rating shows up locally before the
       network round trip even starts, and it stays there if the network fails.
    2. A failed load never wipes what we already have.
    3. `loading` is always cleared on the way out, whatever happened.
    4. One operation at a time. A second submit while one is in flight is
       refused instead of racing the first one's optimistic record.
"""

import logging
import math
import threading
import uuid
from collections import Counter
from dataclasses import replace
from datetime import timedelta
from typing import Optional

from portfolio_ratings.errors import MalformedResponse, ValidationError
from portfolio_ratings.fetcher import ResilientFetcher, describe
from portfolio_ratings.identity import IdentityProvider
from portfolio_ratings.models import (
    TEMP_ID_PREFIX,
    FetchResult,
    Rating,
    Selection,
    SubmitResult,
    coerce_project_id,
    coerce_stars,
    utc_now,
)
from portfolio_ratings.storage import LocalStorage
from portfolio_ratings.transport import TransportResolver

logger = logging.getLogger(__name__)

RATINGS_PATH = "ratings"

LOAD_ERROR_MESSAGE = "Unable to load ratings. Please try again later."
BUSY_MESSAGE = "A rating is already being submitted."
LOCAL_ONLY_MESSAGE = "Your rating was saved on this device and will show here."

# Clock difference tolerated between this device and the server when matching
# a reloaded record to a pending local one
CONFIRM_SKEW = timedelta(minutes=5)


class RatingStore:

    def __init__(self, fetcher: ResilientFetcher, user_id: str, ratings_path: str = RATINGS_PATH):
        self.fetcher = fetcher
        self.user_id = user_id
        self.ratings_path = ratings_path
        self.loading = False
        self.last_error = ""
        self._ratings: dict[int, list[Rating]] = {}
        self._busy = threading.Lock()

    # ============================================================
    # Remote operations
    # ============================================================

    def load_ratings(self) -> bool:
        """
        Replace the local ratings with the server's list.
        Returns True if the server answered, False otherwise. On failure the
        current ratings stay exactly as they were and last_error is set.
        """
        if not self._busy.acquire(blocking=False):
            logger.info("Skipping load: another ratings operation is in flight")
            return False

        self.loading = True
        self.last_error = ""
        try:
            result = self.fetcher.attempt("GET", self.ratings_path, expect=list)
            if not result.ok:
                logger.error(f"Error fetching ratings: {describe(result)}")
                self.last_error = LOAD_ERROR_MESSAGE
                return False

            try:
                grouped = self._group_by_project(result.data)
            except MalformedResponse as e:
                logger.error(f"Error reading ratings from {result.url}: {e}")
                self.last_error = LOAD_ERROR_MESSAGE
                return False
            self._carry_over_pending(grouped)
            self._ratings = grouped
            logger.info(
                f"Loaded {sum(len(r) for r in grouped.values())} ratings "
                f"for {len(grouped)} projects ({describe(result)})"
            )
            return True
        finally:
            self.loading = False
            self._busy.release()

    def submit_rating(self, selection: Selection) -> SubmitResult:
        """
        Commit the selection locally, then try to persist it remotely.

        Any network outcome counts as success for the caller: the rating is
        already visible. local_only tells the UI the server never confirmed it.
        """
        try:
            project_id = coerce_project_id(selection.project_id)
            stars = coerce_stars(selection.stars)
        except ValidationError as e:
            return SubmitResult(success=False, message=str(e))

        if not self._busy.acquire(blocking=False):
            logger.info(f"Refusing second submission for project {project_id} while one is in flight")
            return SubmitResult(success=False, message=BUSY_MESSAGE)

        self.loading = True
        try:
            pending = Rating(
                id=f"{TEMP_ID_PREFIX}{uuid.uuid4().hex[:12]}",
                project_id=project_id,
                user_id=self.user_id,
                stars=stars,
                comment=selection.comment or "",
                created_at=utc_now(),
            )
            self._insert(pending)
            logger.info(f"Submitting rating {stars} for project {project_id}")

            result = self.fetcher.attempt("POST", self.ratings_path, body=pending.to_payload())
            return self._reconcile(pending, result)
        finally:
            self.loading = False
            self._busy.release()

    # ============================================================
    # Reconciliation
    # ============================================================

    def _reconcile(self, pending: Rating, result: FetchResult) -> SubmitResult:
        if not result.ok:
            logger.warning(
                f"Rating for project {pending.project_id} kept locally only: {describe(result)}"
            )
            return SubmitResult(success=True, local_only=True, message=LOCAL_ONLY_MESSAGE, rating=pending)

        if result.degraded:
            logger.info(f"Server accepted rating for project {pending.project_id} without a usable reply")
            return SubmitResult(success=True, rating=pending)

        confirmed = self._confirmed_record(result.data, pending)
        if confirmed is None:
            return SubmitResult(success=True, rating=pending)

        self._replace_pending(confirmed)
        return SubmitResult(success=True, rating=confirmed)

    def _confirmed_record(self, data, pending: Rating) -> Optional[Rating]:
        """
        Pull the created record out of a POST reply (an object, or a list
        holding it). Returns None if it is unusable or does not describe the
        rating we sent.
        """
        if isinstance(data, list):
            data = data[0] if data else None
        try:
            confirmed = Rating.from_api(data)
        except ValidationError as e:
            logger.warning(f"Keeping optimistic rating, server reply unusable: {e}")
            return None

        if (confirmed.project_id, confirmed.user_id, confirmed.stars) != (
            pending.project_id, pending.user_id, pending.stars
        ) or confirmed.comment.strip() != pending.comment.strip():
            logger.warning(
                f"Keeping optimistic rating, server reply describes a different rating: {data}"
            )
            return None

        if confirmed.created_at is None:
            confirmed = replace(confirmed, created_at=pending.created_at)
        return confirmed

    def _replace_pending(self, confirmed: Rating) -> None:
        """
        Swap the confirmed record in for the pending one from the same user on
        the same project whose timestamp is nearest. The temp id is never sent
        to the server, so this is the only way to pair them up.
        """
        ratings = self._ratings.setdefault(confirmed.project_id, [])
        matches = [
            i for i, r in enumerate(ratings)
            if r.is_pending and r.user_id == confirmed.user_id
        ]
        if not matches:
            ratings.append(confirmed)
            return

        nearest = min(matches, key=lambda i: abs(ratings[i].sort_key - confirmed.sort_key))
        ratings[nearest] = confirmed

    def _carry_over_pending(self, grouped: dict[int, list[Rating]]) -> None:
        """
        Unconfirmed local ratings survive a reload unless the server's list
        now holds the same rating from the same user, created no earlier than
        the local one (give or take CONFIRM_SKEW). Each server record can
        stand in for one pending record only.
        """
        for project_id, ratings in self._ratings.items():
            unclaimed = [r for r in grouped.get(project_id, []) if not r.is_pending]
            for pending in sorted((r for r in ratings if r.is_pending), key=lambda r: r.sort_key):
                match = next(
                    (i for i, r in enumerate(unclaimed) if _confirms(r, pending)),
                    None,
                )
                if match is not None:
                    del unclaimed[match]
                    continue
                grouped.setdefault(project_id, []).append(pending)

    # ============================================================
    # Internal state helpers
    # ============================================================

    def _group_by_project(self, data) -> dict[int, list[Rating]]:
        if not isinstance(data, list):
            raise MalformedResponse(f"expected a list of ratings, got {type(data).__name__}")

        grouped: dict[int, list[Rating]] = {}
        skipped = 0
        for raw in data:
            try:
                rating = Rating.from_api(raw)
            except ValidationError as e:
                skipped += 1
                logger.debug(f"Skipping rating record: {e}")
                continue
            grouped.setdefault(rating.project_id, []).append(rating)

        if skipped:
            logger.warning(f"Skipped {skipped} malformed rating record(s)")
        return grouped

    def _insert(self, rating: Rating) -> None:
        self._ratings.setdefault(rating.project_id, []).append(rating)

    # ============================================================
    # Read-only views
    # ============================================================

    def project_ids(self) -> list[int]:
        return sorted(pid for pid, ratings in self._ratings.items() if ratings)

    def ratings_for(self, project_id) -> list[Rating]:
        """A copy of the project's ratings, newest first."""
        ratings = self._ratings.get(int(project_id), [])
        return sorted(ratings, key=lambda r: r.sort_key, reverse=True)

    def average(self, project_id) -> int:
        """Rounded mean of the stars (halves round up), 0 if no ratings."""
        ratings = self._ratings.get(int(project_id), [])
        if not ratings:
            return 0
        total = sum(r.stars for r in ratings)
        return math.floor(total / len(ratings) + 0.5)

    def comments_with_text(self, project_id) -> list[Rating]:
        return [r for r in self._ratings.get(int(project_id), []) if r.has_text]

    def top_comments(self, project_id, n: int = 3) -> list[Rating]:
        return self.all_comments(project_id)[:max(n, 0)]

    def all_comments(self, project_id) -> list[Rating]:
        """Every rating with a comment, newest first."""
        return sorted(self.comments_with_text(project_id), key=lambda r: r.sort_key, reverse=True)

    def rating_stats(self, project_id) -> dict:
        """
        Rating distribution for one project.
        Pure counting. The exact mean is kept to two decimals here, unlike
        average() which gives the whole-star figure shown next to the stars.
        """
        ratings = self._ratings.get(int(project_id), [])
        total = len(ratings)
        counts = Counter(r.stars for r in ratings)
        with_text = sum(1 for r in ratings if r.has_text)
        return {
            "total_ratings": total,
            "avg_rating": round(sum(r.stars for r in ratings) / total, 2) if total else 0,
            "rating_1": counts.get(1, 0),
            "rating_2": counts.get(2, 0),
            "rating_3": counts.get(3, 0),
            "rating_4": counts.get(4, 0),
            "rating_5": counts.get(5, 0),
            "ratings_with_text": with_text,
            "ratings_without_text": total - with_text,
        }


def _confirms(server: Rating, pending: Rating) -> bool:
    """True if a server record can be the stored copy of a pending one."""
    if (server.user_id, server.stars, server.comment.strip()) != (
        pending.user_id, pending.stars, pending.comment.strip()
    ):
        return False
    if server.created_at is None or pending.created_at is None:
        return True
    return server.created_at >= pending.created_at - CONFIRM_SKEW


def build_store(storage=None, session=None) -> RatingStore:
    """
    Wire up a store from config.py settings.
    The user id is resolved once here and never changes afterwards.
    """
    identity = IdentityProvider(storage if storage is not None else LocalStorage())
    fetcher = ResilientFetcher(TransportResolver(), session=session)
    return RatingStore(fetcher, identity.get_or_create_user_id())


# Quick test
# This block only runs when you execute this file directly (not when imported)
if __name__ == "__main__":
    from portfolio_ratings.config import setup_logging

    setup_logging()
    store = build_store()
    store.load_ratings()
    if store.last_error:
        print(store.last_error)
    for pid in store.project_ids():
        stats = store.rating_stats(pid)
        print(f"Project {pid}: {store.average(pid)}/5 from {stats['total_ratings']} ratings")
        for rating in store.top_comments(pid):
            print(f"  {rating.stars}/5 \"{rating.comment[:80]}\"")
