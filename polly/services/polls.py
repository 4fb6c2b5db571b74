from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any, Callable, Sequence

from polly.core.errors import AuthenticationRequiredError, NotFoundError, ValidationError
from polly.domain.entities import PollRecord
from polly.domain.principal import Principal
from polly.services.audit import (
    ACTION_POLL_CREATED,
    ACTION_POLL_DELETED,
    ACTION_POLL_UPDATED,
    AuditRecorder,
    RequestContext,
)
from polly.services.authz import AuthorizationEngine, denial_error
from polly.services.results import OperationResult, run_operation
from polly.services.validation import sanitize, sanitize_options, validate_poll, validate_poll_id


logger = logging.getLogger(__name__)


class PollService:
    # Poll lifecycle: validate raw input, authorize, mutate, then audit the effect.
    def __init__(
        self,
        store,
        authz: AuthorizationEngine,
        audit: AuditRecorder,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._authz = authz
        self._audit = audit
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def _load_poll(self, raw_poll_id: Any) -> PollRecord:
        poll_id = validate_poll_id(raw_poll_id)
        if poll_id is None:
            raise ValidationError("Invalid poll ID")
        poll = await self._store.get_poll(poll_id)
        if poll is None:
            raise NotFoundError("Poll not found")
        return poll

    async def _create(
        self,
        principal: Principal,
        question: str | None,
        options: Sequence[str] | None,
        request_ctx: RequestContext | None,
    ) -> dict[str, Any]:
        message = validate_poll(question, options)
        if message is not None:
            raise ValidationError(message)

        decision = await self._authz.can_create_poll(principal, request_ctx=request_ctx)
        if not decision.allowed:
            raise denial_error(decision)

        poll = await self._store.insert_poll(
            owner_id=principal.subject_id,
            question=sanitize(question),
            options=sanitize_options(options),
            created_at=self._clock(),
        )
        await self._audit.record(
            principal.subject_id,
            ACTION_POLL_CREATED,
            "poll",
            poll.id,
            {"option_count": len(poll.options)},
            request_ctx=request_ctx,
        )
        return {"id": poll.id}

    async def _update(
        self,
        principal: Principal,
        raw_poll_id: Any,
        question: str | None,
        options: Sequence[str] | None,
        request_ctx: RequestContext | None,
    ) -> dict[str, Any]:
        if validate_poll_id(raw_poll_id) is None:
            raise ValidationError("Invalid poll ID")
        message = validate_poll(question, options)
        if message is not None:
            raise ValidationError(message)
        poll = await self._load_poll(raw_poll_id)
        decision = await self._authz.can_edit_poll(principal, poll, request_ctx=request_ctx)
        if not decision.allowed:
            raise denial_error(decision)

        updated = await self._store.update_poll(
            poll.id,
            question=sanitize(question),
            options=sanitize_options(options),
            updated_at=self._clock(),
        )
        if updated is None:
            raise NotFoundError("Poll not found")
        await self._audit.record(
            principal.subject_id,
            ACTION_POLL_UPDATED,
            "poll",
            poll.id,
            {"owner_id": poll.owner_id, "authorized_as": decision.reason},
            request_ctx=request_ctx,
        )
        return updated.to_dict()

    async def _delete(
        self, principal: Principal, raw_poll_id: Any, request_ctx: RequestContext | None
    ) -> dict[str, Any]:
        poll = await self._load_poll(raw_poll_id)
        decision = await self._authz.can_delete_poll(principal, poll, request_ctx=request_ctx)
        if not decision.allowed:
            raise denial_error(decision)

        if not await self._store.delete_poll(poll.id):
            raise NotFoundError("Poll not found")
        await self._audit.record(
            principal.subject_id,
            ACTION_POLL_DELETED,
            "poll",
            poll.id,
            {"owner_id": poll.owner_id, "authorized_as": decision.reason},
            request_ctx=request_ctx,
        )
        return {"id": poll.id, "deleted": True}

    async def _results(self, raw_poll_id: Any) -> dict[str, Any]:
        poll = await self._load_poll(raw_poll_id)
        counts = await self._store.count_votes_by_option(poll.id)
        tallies = [
            {"option_index": index, "option": option, "votes": counts.get(index, 0)}
            for index, option in enumerate(poll.options)
        ]
        return {
            "poll_id": poll.id,
            "question": poll.question,
            "total_votes": sum(item["votes"] for item in tallies),
            "results": tallies,
        }

    async def create_poll(
        self,
        principal: Principal,
        question: str | None,
        options: Sequence[str] | None,
        *,
        request_ctx: RequestContext | None = None,
    ) -> OperationResult[dict[str, Any]]:
        return await run_operation(
            "create_poll", lambda: self._create(principal, question, options, request_ctx)
        )

    async def update_poll(
        self,
        principal: Principal,
        poll_id: Any,
        question: str | None,
        options: Sequence[str] | None,
        *,
        request_ctx: RequestContext | None = None,
    ) -> OperationResult[dict[str, Any]]:
        return await run_operation(
            "update_poll", lambda: self._update(principal, poll_id, question, options, request_ctx)
        )

    async def delete_poll(
        self, principal: Principal, poll_id: Any, *, request_ctx: RequestContext | None = None
    ) -> OperationResult[dict[str, Any]]:
        return await run_operation("delete_poll", lambda: self._delete(principal, poll_id, request_ctx))

    async def get_poll(self, poll_id: Any) -> OperationResult[dict[str, Any]]:
        async def _get() -> dict[str, Any]:
            return (await self._load_poll(poll_id)).to_dict()

        return await run_operation("get_poll", _get)

    async def list_user_polls(self, principal: Principal) -> OperationResult[list[dict[str, Any]]]:
        async def _list() -> list[dict[str, Any]]:
            if not principal.is_authenticated:
                raise AuthenticationRequiredError("Not authenticated")
            polls = await self._store.list_polls(owner_id=principal.subject_id)
            return [poll.to_dict() for poll in polls]

        return await run_operation("list_user_polls", _list)

    async def get_poll_results(self, poll_id: Any) -> OperationResult[dict[str, Any]]:
        return await run_operation("get_poll_results", lambda: self._results(poll_id))
