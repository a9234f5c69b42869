"""Error taxonomy shared by the renderer, the platform clients and the operator.

``AlreadyExists`` and ``NotFound`` are benign in some places (idempotent
create, compensation deletes) and the callers decide that. Everything else
propagates. ``CompositeError`` keeps every cause of a failed step together
with the failures of whatever cleanup or status write followed it.
"""
from __future__ import annotations

from typing import Iterable


class OperatorError(Exception):
    """Base class for all errors raised by the operator."""


class AlreadyExists(OperatorError):
    pass


class NotFound(OperatorError):
    pass


class VersionConflict(OperatorError):
    """The object changed since its resourceVersion was read."""


class RenderError(OperatorError):
    """Malformed template or missing render context field."""


class RemoteFailure(OperatorError):
    """Network, timeout or platform error."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class CompositeError(OperatorError):
    """A primary failure plus the failures of the actions attempted after it."""

    def __init__(self, causes: list[BaseException]):
        self.causes = list(causes)
        super().__init__(self._format())

    def _format(self) -> str:
        msgs = [str(c) or type(c).__name__ for c in self.causes]
        if len(msgs) == 1:
            return msgs[0]
        return "[" + ", ".join(msgs) + "]"

    def __iter__(self):
        return iter(self.causes)

    def __len__(self) -> int:
        return len(self.causes)

    def has(self, cls: type[BaseException]) -> bool:
        return any(isinstance(c, cls) for c in self.causes)


def _flatten(errors: Iterable[BaseException | None]) -> list[BaseException]:
    out: list[BaseException] = []
    for e in errors:
        if e is None:
            continue
        if isinstance(e, CompositeError):
            out.extend(_flatten(e.causes))
        else:
            out.append(e)
    return out


def aggregate(errors: Iterable[BaseException | None]) -> CompositeError | None:
    """Combine errors into one ``CompositeError``.

    ``None`` entries are dropped and nested composites are flattened, keeping
    order. Returns None when nothing failed.
    """
    causes = _flatten(errors)
    if not causes:
        return None
    return CompositeError(causes)
