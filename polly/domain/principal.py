from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class Principal(BaseModel):
    # Identity behind a request: anonymous when subject_id is None.
    model_config = ConfigDict(frozen=True)

    subject_id: str | None = None

    @classmethod
    def anonymous(cls) -> "Principal":
        return cls(subject_id=None)

    @classmethod
    def authenticated(cls, subject_id: str) -> "Principal":
        return cls(subject_id=subject_id)

    @property
    def is_authenticated(self) -> bool:
        return bool(self.subject_id)
