from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, ClassVar


@dataclass(eq=False)
class FarmError(RuntimeError):
    """Base for every rejection raised by the farm contracts."""

    reason: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    code: ClassVar[str] = "FarmError"

    def __str__(self) -> str:
        if not self.details:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"


class DuplicatePool(FarmError):
    code = "DuplicatePool"


class UnknownPool(FarmError):
    code = "UnknownPool"


class InsufficientBalance(FarmError):
    code = "InsufficientBalance"


class InsufficientAllowance(FarmError):
    code = "InsufficientAllowance"


class TransferFailed(FarmError):
    code = "TransferFailed"


class InvalidFeeRate(FarmError):
    code = "InvalidFeeRate"


class Unauthorized(FarmError):
    code = "Unauthorized"


class ReentrantCall(FarmError):
    code = "ReentrantCall"


class InvalidBridge(FarmError):
    code = "InvalidBridge"


class InvalidPair(FarmError):
    code = "InvalidPair"


class NoPathAvailable(FarmError):
    code = "NoPathAvailable"


class EoaOnly(FarmError):
    code = "EoaOnly"
