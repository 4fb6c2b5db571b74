from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from threading import Lock
from uuid import uuid4

from polly.core.errors import ConstraintViolation
from polly.domain.entities import AuditEntry, PollRecord, RoleAssignment, VoteRecord
from polly.persistence.store import VOTE_UNIQUE_CONSTRAINT


class InMemoryPollStore:
    # Keep a thread-safe in-memory PollStore for deterministic tests and single-process dev runs.
    def __init__(self) -> None:
        self._lock = Lock()
        self._polls: dict[str, PollRecord] = {}
        self._votes: list[VoteRecord] = []
        self._vote_keys: set[tuple[str, str]] = set()
        self._roles: dict[tuple[str, str], RoleAssignment] = {}
        self._audit: list[AuditEntry] = []
        self._audit_seq = 0

    async def get_poll(self, poll_id: str) -> PollRecord | None:
        with self._lock:
            return self._polls.get(poll_id)

    async def insert_poll(
        self, *, owner_id: str, question: str, options: list[str], created_at: datetime
    ) -> PollRecord:
        poll = PollRecord(
            id=str(uuid4()),
            owner_id=owner_id,
            question=question,
            options=tuple(options),
            created_at=created_at,
            updated_at=created_at,
        )
        with self._lock:
            self._polls[poll.id] = poll
        return poll

    async def update_poll(
        self,
        poll_id: str,
        *,
        question: str | None,
        options: list[str] | None,
        updated_at: datetime,
    ) -> PollRecord | None:
        with self._lock:
            poll = self._polls.get(poll_id)
            if poll is None:
                return None
            updated = replace(
                poll,
                question=question if question is not None else poll.question,
                options=tuple(options) if options is not None else poll.options,
                updated_at=updated_at,
            )
            self._polls[poll_id] = updated
            return updated

    async def delete_poll(self, poll_id: str) -> bool:
        with self._lock:
            if self._polls.pop(poll_id, None) is None:
                return False
            # Cascade to the poll's votes.
            self._votes = [vote for vote in self._votes if vote.poll_id != poll_id]
            self._vote_keys = {key for key in self._vote_keys if key[0] != poll_id}
            return True

    async def list_polls(self, *, owner_id: str | None = None) -> list[PollRecord]:
        with self._lock:
            polls = [
                poll for poll in self._polls.values() if owner_id is None or poll.owner_id == owner_id
            ]
        return sorted(polls, key=lambda poll: (poll.created_at, poll.id), reverse=True)

    async def get_role(self, principal_id: str, role: str) -> bool:
        with self._lock:
            return (principal_id, role) in self._roles

    async def insert_role(self, assignment: RoleAssignment) -> bool:
        key = (assignment.principal_id, assignment.role)
        with self._lock:
            if key in self._roles:
                return False
            self._roles[key] = assignment
            return True

    async def delete_role(self, principal_id: str, role: str) -> bool:
        with self._lock:
            return self._roles.pop((principal_id, role), None) is not None

    async def vote_exists(self, poll_id: str, voter_id: str) -> bool:
        with self._lock:
            return (poll_id, voter_id) in self._vote_keys

    async def insert_vote(self, vote: VoteRecord) -> None:
        with self._lock:
            if vote.voter_id is not None:
                key = (vote.poll_id, vote.voter_id)
                # Check and insert under one lock, like a unique index would.
                if key in self._vote_keys:
                    raise ConstraintViolation(VOTE_UNIQUE_CONSTRAINT)
                self._vote_keys.add(key)
            self._votes.append(vote)

    async def count_votes_since(self, voter_id: str, since: datetime) -> int:
        with self._lock:
            return sum(
                1 for vote in self._votes if vote.voter_id == voter_id and vote.created_at >= since
            )

    async def count_votes_by_option(self, poll_id: str) -> dict[int, int]:
        counts: dict[int, int] = {}
        with self._lock:
            for vote in self._votes:
                if vote.poll_id == poll_id:
                    counts[vote.option_index] = counts.get(vote.option_index, 0) + 1
        return counts

    async def append_audit_record(self, entry: AuditEntry) -> None:
        with self._lock:
            self._audit_seq += 1
            self._audit.append(replace(entry, id=self._audit_seq))

    async def list_audit_records(
        self, *, action: str | None = None, offset: int = 0, limit: int = 50
    ) -> list[AuditEntry]:
        with self._lock:
            entries = [entry for entry in self._audit if action is None or entry.action == action]
        entries.sort(key=lambda entry: (entry.created_at, entry.id or 0), reverse=True)
        return entries[offset : offset + limit]

    def votes_for(self, poll_id: str) -> list[VoteRecord]:
        # Inspection helper for tests and local debugging.
        with self._lock:
            return [vote for vote in self._votes if vote.poll_id == poll_id]
