"""
Lockout tracker - brute-force protection per account.

States:
    OPEN    failed_attempts below threshold, no active lock
    LOCKED  locked_until is in the future

Transitions:
    OPEN -> OPEN      failed attempt, count + 1 < threshold: increment
    OPEN -> LOCKED    failed attempt, count + 1 >= threshold: set locked_until
    LOCKED -> OPEN    successful login (count 0, lock cleared), or the lock
                      has elapsed and the next failed attempt restarts the
                      window at count 1

Each transition is a single `MetadataStorage.modify` call, so concurrent
failures for one account can never skip past the threshold unlocked.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from forgeguard.config import get_settings
from forgeguard.core.models import User
from forgeguard.core.utils import ensure_utc, utc_now
from forgeguard.storage.base import Collections, MetadataStorage

logger = logging.getLogger(__name__)


def is_locked(user: User, now: datetime | None = None) -> bool:
    """Is the account locked at `now`?"""
    if user.locked_until is None:
        return False
    return ensure_utc(user.locked_until) > (now or utc_now())


def next_failure_state(
    failed_attempts: int,
    locked_until: datetime | None,
    now: datetime,
    threshold: int,
    lock_duration: timedelta,
) -> dict[str, Any]:
    """Fields to write after one more failed attempt."""
    if locked_until is not None and ensure_utc(locked_until) <= now:
        # Previous lock elapsed: this attempt is the first of a new window
        return {"failed_attempts": 1, "locked_until": None, "updated_at": now}

    count = failed_attempts + 1
    updates: dict[str, Any] = {"failed_attempts": count, "updated_at": now}
    if count >= threshold:
        updates["locked_until"] = now + lock_duration
    return updates


async def register_failure(
    metadata: MetadataStorage,
    user_id: str,
    now: datetime | None = None,
) -> User | None:
    """Record a failed login. Returns the user as stored afterwards."""
    settings = get_settings()
    now = now or utc_now()
    lock_duration = timedelta(minutes=settings.lockout_duration_minutes)

    def mutate(record: dict[str, Any]) -> dict[str, Any]:
        return next_failure_state(
            record.get("failed_attempts", 0),
            record.get("locked_until"),
            now,
            settings.lockout_threshold,
            lock_duration,
        )

    record = await metadata.modify(Collections.USERS, user_id, mutate)
    if record is None:
        return None

    user = User.model_validate(record)
    if is_locked(user, now):
        logger.warning(f"Account {user_id} locked after {user.failed_attempts} failed attempts")
    return user


async def register_success(
    metadata: MetadataStorage,
    user_id: str,
    now: datetime | None = None,
) -> User | None:
    """Record a successful login: clear counters, stamp last_login."""
    now = now or utc_now()
    record = await metadata.modify(
        Collections.USERS,
        user_id,
        lambda _: {"failed_attempts": 0, "locked_until": None, "last_login": now, "updated_at": now},
    )
    return User.model_validate(record) if record is not None else None
