"""
Error taxonomy for the ladder bot.

ConfigMissing is fatal and only raised at startup. Everything under CycleError
is confined to a single cycle: the scheduler logs it and carries on.
"""

import dataclasses
from typing import Optional


@dataclasses.dataclass(eq=False)
class BotError(Exception):
    """Base class for all bot errors."""
    message: str
    code: Optional[int] = None

    def __str__(self):
        return f"[{self.code}] {self.message}" if self.code is not None else self.message


class ConfigMissing(BotError):
    """Required configuration is absent. Stop the process."""
    pass


class CycleError(BotError):
    """Recoverable failure scoped to one cycle (or one symbol within it)."""
    pass


class TransportError(CycleError):
    """Network failure or non-2xx HTTP status."""
    pass


class DecodeError(CycleError):
    """Response body does not match the expected envelope shape."""
    pass


class NoDataError(CycleError):
    """Kline response carried an empty list."""
    pass


class OrderPlacementError(CycleError):
    pass


class OrderCancellationError(CycleError):
    pass


class SerializationError(CycleError):
    """Request payload could not be serialized for signing."""
    pass
