from __future__ import annotations

import asyncio
from datetime import datetime, timezone
import logging
from typing import Callable

from polly.core.config import ADMIN_ROLE, get_settings
from polly.domain.entities import RoleAssignment


logger = logging.getLogger(__name__)


class RoleStoreAccessor:
    """The single place role membership is looked up.

    Lookups fail closed: a storage error, a timeout or a non-boolean answer
    from the backend all read as "role not held". Nothing is cached, so a
    revocation takes effect on the next call.
    """

    def __init__(self, store, *, timeout_ms: int | None = None) -> None:
        self._store = store
        resolved_timeout = timeout_ms if timeout_ms is not None else get_settings().store_timeout_ms
        self._timeout_s = max(resolved_timeout, 1) / 1000.0

    async def has_role(self, principal_id: str | None, role: str) -> bool:
        if not principal_id or not role:
            return False
        try:
            held = await asyncio.wait_for(
                self._store.get_role(principal_id, role), timeout=self._timeout_s
            )
        except Exception as exc:  # noqa: BLE001 - a lookup failure must never grant a role
            logger.warning(
                "role_lookup_failed principal_id=%s role=%s", principal_id, role, exc_info=exc
            )
            return False
        if held is not True:
            if held not in (False, None):
                logger.warning(
                    "role_lookup_malformed principal_id=%s role=%s value_type=%s",
                    principal_id,
                    role,
                    type(held).__name__,
                )
            return False
        return True


async def bootstrap_admin(
    store,
    principal_id: str,
    *,
    clock: Callable[[], datetime] | None = None,
) -> bool:
    # Seed the first admin, recorded as granted by itself; returns False when already present.
    now = (clock or (lambda: datetime.now(timezone.utc)))()
    created = await store.insert_role(
        RoleAssignment(
            principal_id=principal_id,
            role=ADMIN_ROLE,
            granted_by=principal_id,
            granted_at=now,
        )
    )
    if created:
        logger.info("admin_bootstrapped principal_id=%s", principal_id)
    return created
