from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Callable
from uuid import uuid4

from polly.core.config import Settings, get_settings
from polly.core.errors import (
    AuthenticationRequiredError,
    ConflictError,
    ConstraintViolation,
    NotFoundError,
    RateLimitError,
    StorageError,
    ValidationError,
)
from polly.domain.entities import VoteRecord
from polly.domain.principal import Principal
from polly.services.audit import ACTION_VOTE_CAST, AuditRecorder, RequestContext
from polly.services.results import OperationResult, run_operation
from polly.services.validation import validate_option_index, validate_poll_id


logger = logging.getLogger(__name__)

CODE_LOGIN_REQUIRED = "LOGIN_REQUIRED"
CODE_INVALID_OPTION = "INVALID_OPTION"
CODE_POLL_NOT_FOUND = "POLL_NOT_FOUND"
CODE_ALREADY_VOTED = "ALREADY_VOTED"
CODE_VOTE_RATE_LIMITED = "VOTE_RATE_LIMITED"
CODE_VOTE_FAILED = "VOTE_FAILED"


class VoteCoordinator:
    """Accept or reject a single vote.

    Gates run in order and the first failure returns without side effects:

    1. anonymous principals are rejected (``LOGIN_REQUIRED``);
    2. the option index must be a non-negative integer (``INVALID_OPTION``);
    3. the poll must exist (``POLL_NOT_FOUND``);
    4. the index must address one of the poll's options (``INVALID_OPTION``);
    5. the principal must not already hold a vote on the poll (``ALREADY_VOTED``);
    6. the principal must be under the per-principal vote ceiling over the
       trailing window (``VOTE_RATE_LIMITED``);
    7. the vote is inserted.

    Gate 5 reads the durable ledger and only exists to give a fast answer.
    The store's uniqueness constraint on ``(poll_id, voter_id)`` is what
    makes concurrent submissions safe: a violation raised at insert time is
    reported as ``ALREADY_VOTED`` as well.
    """

    def __init__(
        self,
        store,
        audit: AuditRecorder,
        *,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        resolved = settings or get_settings()
        self._store = store
        self._audit = audit
        self._window = timedelta(seconds=resolved.vote_rate_window_s)
        self._max_votes = resolved.vote_rate_max_votes
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def _submit(
        self,
        principal: Principal,
        poll_id: Any,
        option_index: Any,
        request_ctx: RequestContext | None,
    ) -> dict[str, Any]:
        if not principal.is_authenticated:
            raise AuthenticationRequiredError("Please log in to vote", code=CODE_LOGIN_REQUIRED)
        voter_id = principal.subject_id

        index = validate_option_index(option_index)
        if index is None:
            raise ValidationError("Invalid option selection", code=CODE_INVALID_OPTION)

        # Malformed ids are indistinguishable from missing polls.
        canonical_id = validate_poll_id(poll_id)
        poll = await self._store.get_poll(canonical_id) if canonical_id else None
        if poll is None:
            raise NotFoundError("Poll not found", code=CODE_POLL_NOT_FOUND)

        if index >= len(poll.options):
            raise ValidationError("Invalid option selected", code=CODE_INVALID_OPTION)

        if await self._store.vote_exists(poll.id, voter_id):
            raise ConflictError("You have already voted on this poll", code=CODE_ALREADY_VOTED)

        now = self._clock()
        recent = await self._store.count_votes_since(voter_id, now - self._window)
        if recent >= self._max_votes:
            raise RateLimitError(
                "Too many votes. Please wait a moment.",
                code=CODE_VOTE_RATE_LIMITED,
                retry_after_ms=int(self._window.total_seconds() * 1000),
            )

        ctx = request_ctx or {}
        vote = VoteRecord(
            id=str(uuid4()),
            poll_id=poll.id,
            voter_id=voter_id,
            option_index=index,
            created_at=now,
            ip_address=ctx.get("ip_address"),
            user_agent=ctx.get("user_agent"),
        )
        try:
            await self._store.insert_vote(vote)
        except ConstraintViolation as exc:
            logger.info(
                "vote_duplicate_rejected poll_id=%s voter_id=%s constraint=%s",
                poll.id,
                voter_id,
                exc.constraint,
            )
            raise ConflictError("You have already voted on this poll", code=CODE_ALREADY_VOTED) from exc
        except StorageError as exc:
            raise StorageError("Failed to submit vote. Please try again.", code=CODE_VOTE_FAILED) from exc

        await self._audit.record(
            voter_id,
            ACTION_VOTE_CAST,
            "poll",
            poll.id,
            {"option_index": index},
            request_ctx=request_ctx,
        )
        return {"poll_id": poll.id, "option_index": index}

    async def submit_vote(
        self,
        principal: Principal,
        poll_id: Any,
        option_index: Any,
        *,
        request_ctx: RequestContext | None = None,
    ) -> OperationResult[dict[str, Any]]:
        return await run_operation(
            "submit_vote", lambda: self._submit(principal, poll_id, option_index, request_ctx)
        )
