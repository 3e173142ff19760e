# Injectable time source for every timestamp the engine records.
from datetime import datetime, timezone
from typing import Protocol

from pydantic import BaseModel, PrivateAttr


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(tz=timezone.utc)


# Default factory for timestamp fields on freshly built models.
def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class ClockedModel(BaseModel):
    """Base for models whose operations stamp times.

    The clock is a private attribute, so it never appears in the JSON shape and
    a model loaded from storage falls back to the system clock until
    ``with_clock`` attaches another one.
    """

    _clock: Clock = PrivateAttr(default_factory=SystemClock)

    def with_clock(self, clock: Clock):
        self._clock = clock
        return self

    def _now(self) -> datetime:
        return self._clock.now()
