"""integration/errors.py

Error taxonomy for order building and decoding.

Every error carries a canonical `reason` from integration/reject_reasons.py
so callers can aggregate failures without parsing messages.
"""

from __future__ import annotations

from typing import Optional

from integration import reject_reasons


class OrderEngineError(Exception):
    """Base class for all order engine failures."""

    reason = reject_reasons.INTERNAL_ERROR

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message)
        if reason is not None:
            reject_reasons.assert_reason_known(reason)
            self.reason = reason


class ValidationError(OrderEngineError):
    """Malformed caller input. Raised before any network call."""

    reason = reject_reasons.INVALID_PARAMS


class NotFoundError(OrderEngineError):
    """Order or account absent from the indexer."""

    reason = reject_reasons.ORDER_NOT_FOUND


class ProofUnavailableError(OrderEngineError):
    """The prover returned no validity proof."""

    reason = reject_reasons.NO_VALIDITY_PROOF


class DecodeError(OrderEngineError, ValueError):
    """Binary payload does not match the expected layout."""

    reason = reject_reasons.DECODE_FAILED


class TooShortError(DecodeError):
    """Buffer shorter than the fixed layout it should contain."""

    reason = reject_reasons.BUFFER_TOO_SHORT

    def __init__(self, got: int, need: int, what: str = "buffer"):
        super().__init__(f"{what} too short: got {got} bytes, need at least {need}")
        self.got = got
        self.need = need


class UpstreamError(OrderEngineError):
    """Network or service failure, surfaced as-is (no retry)."""

    reason = reject_reasons.UPSTREAM_FAILURE
