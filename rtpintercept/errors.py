"""Aggregation of several errors into one exception."""

from __future__ import annotations

from collections.abc import Iterable


class MultiError(Exception):
    """Several errors raised together."""

    def __init__(self, errors: Iterable[BaseException]):
        self.errors = [e for e in errors if e is not None]
        super().__init__(*self.errors)

    def __str__(self) -> str:
        if not self.errors:
            return "multiError must contain multiple error but is empty"
        return "\n".join(str(e) for e in self.errors)

    def includes(self, error: BaseException) -> bool:
        """Whether error is one of the held errors, at any depth."""
        for e in self.errors:
            cur = e
            while cur is not None:
                if cur is error:
                    return True
                cur = cur.__cause__
            if isinstance(e, MultiError) and e.includes(error):
                return True
        return False


def flatten_errors(errors: Iterable[BaseException | None]) -> MultiError | None:
    """Collect the non-None errors into a MultiError, or None if there are none."""
    kept = [e for e in errors if e is not None]
    return MultiError(kept) if kept else None