"""SMUVES — Per-user operation locks.

Backup, detection, sync and revert for the same user read and write the
same lineage, so they run one at a time per user. Different users never
share a lock.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

from smuves.core.logging import get_logger

logger = get_logger("core.locks")

_locks: Dict[str, asyncio.Lock] = {}
# holders plus waiters per user; the lock is dropped when this reaches zero
_users: Dict[str, int] = {}


@asynccontextmanager
async def user_lock(user_id: str, operation: str = "") -> AsyncIterator[None]:
    """Hold the advisory lock for ``user_id`` for the duration of the block."""
    lock = _locks.setdefault(user_id, asyncio.Lock())
    _users[user_id] = _users.get(user_id, 0) + 1
    try:
        if lock.locked():
            logger.info(
                f"⏳ Waiting for in-flight operation before {operation or 'request'}",
                extra={"user_id": user_id},
            )
        async with lock:
            yield
    finally:
        _users[user_id] -= 1
        if not _users[user_id]:
            del _users[user_id]
            del _locks[user_id]
