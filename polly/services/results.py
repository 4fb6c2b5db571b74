from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Awaitable, Callable, Generic, TypeVar

from polly.core.errors import PollyError, StorageError


logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """Uniform ``{data, error}`` outcome of a service operation.

    Exactly one of ``data`` or ``error`` is meaningful. ``error`` is always a
    user-safe string; ``code`` and ``status_code`` let the HTTP layer map the
    failure without inspecting messages.
    """

    data: T | None = None
    error: str | None = None
    code: str | None = None
    status_code: int = 200
    retry_after_ms: int | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, data: T | None = None) -> "OperationResult[T]":
        return cls(data=data)

    @classmethod
    def failure(cls, exc: PollyError) -> "OperationResult[T]":
        return cls(
            data=None,
            error=exc.message,
            code=exc.code,
            status_code=exc.status_code,
            retry_after_ms=getattr(exc, "retry_after_ms", None),
        )

    def as_dict(self) -> dict[str, Any]:
        return {"data": self.data, "error": self.error}


async def run_operation(name: str, func: Callable[[], Awaitable[T]]) -> OperationResult[T]:
    # Turn raised PollyErrors into result values; unexpected faults become a generic storage error.
    try:
        return OperationResult.success(await func())
    except PollyError as exc:
        return OperationResult.failure(exc)
    except Exception as exc:  # noqa: BLE001 - rejections are values, never process faults
        logger.error("operation_failed op=%s", name, exc_info=exc)
        return OperationResult.failure(StorageError())
