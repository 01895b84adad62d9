from dataclasses import dataclass
from typing import Optional


class HouseHuntError(Exception):
    """Base class for errors raised by the store adapters and the media host."""


class NotFoundError(HouseHuntError):
    pass


class ValidationError(HouseHuntError):
    pass


class TransportError(HouseHuntError):
    """Network, store or media host failure. Never retried automatically."""


@dataclass
class DeleteResult:
    id: str
    success: bool
    error: Optional[str] = None

    def as_dict(self):
        out = {"id": self.id, "success": self.success}
        if self.error is not None:
            out["error"] = self.error
        return out
