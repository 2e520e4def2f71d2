"""
Error taxonomy for the webhook flow.

Every failure the request flow can recover from is a BridgeError tagged with
an ErrorKind. Catch points dispatch on ``kind`` instead of walking an
isinstance chain, so adding a kind forces every dispatch table to be updated.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """One variant per failure kind."""
    AUTHENTICATION = "authentication"
    BUDGET_EXCEEDED = "budget_exceeded"
    TIMEOUT = "timeout"
    PROVIDER = "provider"
    SYNTHESIS = "synthesis"


class BridgeError(Exception):
    """Base class for all recoverable request-flow failures."""

    kind: ErrorKind

    def log_fields(self) -> Dict[str, Any]:
        """Structured context for logging. Never sent to the caller."""
        return {"error_kind": self.kind.value, "error": str(self)}


class AuthenticationError(BridgeError):
    """Request signature is missing or invalid."""

    kind = ErrorKind.AUTHENTICATION

    def __init__(self, reason: str):
        super().__init__(f"authentication_failed:{reason}")
        self.reason = reason

    def log_fields(self) -> Dict[str, Any]:
        return {"error_kind": self.kind.value, "reason": self.reason}


class BudgetExceeded(BridgeError):
    """A charge would push the ledger past its ceiling."""

    kind = ErrorKind.BUDGET_EXCEEDED

    def __init__(self, attempted_total: float, ceiling: float, reason: str):
        super().__init__(f"budget_exceeded:{attempted_total}/{ceiling}:{reason}")
        self.attempted_total = attempted_total
        self.ceiling = ceiling
        self.reason = reason

    def log_fields(self) -> Dict[str, Any]:
        return {
            "error_kind": self.kind.value,
            "attempted_total": self.attempted_total,
            "ceiling": self.ceiling,
            "reason": self.reason,
        }


class StageTimeout(BridgeError):
    """A stage ran past its allotted time."""

    kind = ErrorKind.TIMEOUT

    def __init__(self, stage: str, timeout_sec: float):
        super().__init__(f"timeout_{stage}:{timeout_sec:.3f}s")
        self.stage = stage
        self.timeout_sec = timeout_sec

    def log_fields(self) -> Dict[str, Any]:
        return {
            "error_kind": self.kind.value,
            "stage": self.stage,
            "timeout_sec": self.timeout_sec,
        }


class ProviderError(BridgeError):
    """A text-generation backend failed or could not be called."""

    kind = ErrorKind.PROVIDER

    BODY_PREVIEW_CHARS = 256

    def __init__(self, provider: str, status: Optional[int], body: str = ""):
        preview = (body or "")[: self.BODY_PREVIEW_CHARS]
        label = status if status is not None else "n/a"
        super().__init__(f"{provider} error {label}: {preview}")
        self.provider = provider
        self.status = status
        self.body_preview = preview

    def log_fields(self) -> Dict[str, Any]:
        return {
            "error_kind": self.kind.value,
            "provider": self.provider,
            "status": self.status,
            "body_preview": self.body_preview,
        }


class SynthesisError(BridgeError):
    """Speech synthesis failed; no audio reference is available."""

    kind = ErrorKind.SYNTHESIS

    def __init__(self, reason: str, status: Optional[int] = None, body: str = ""):
        super().__init__(f"synthesis_failed:{reason}")
        self.reason = reason
        self.status = status
        self.body_preview = (body or "")[:ProviderError.BODY_PREVIEW_CHARS]

    def log_fields(self) -> Dict[str, Any]:
        return {
            "error_kind": self.kind.value,
            "reason": self.reason,
            "status": self.status,
            "body_preview": self.body_preview,
        }


# Errors the routing stage may raise; all of them map to the fallback message.
ROUTING_ERROR_KINDS = frozenset(
    {ErrorKind.BUDGET_EXCEEDED, ErrorKind.TIMEOUT, ErrorKind.PROVIDER}
)
