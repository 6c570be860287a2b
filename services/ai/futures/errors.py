"""Failure taxonomy for the futures analysis pipeline."""
from __future__ import annotations

import re
from enum import Enum
from typing import Optional

# Standalone 5xx status code, e.g. "500 INTERNAL" or "(503)".
_STATUS_5XX_RE = re.compile(r"(?<!\d)5\d\d(?!\d)")
_RPC_FAILED_RE = re.compile(r"rpc\s+failed", re.IGNORECASE)


class FailureKind(str, Enum):
    TRANSIENT = "transient"
    PERMANENT = "permanent"


class FuturesAnalysisError(Exception):
    """Base class for every failure raised by the analysis pipeline."""


class GatewayError(FuturesAnalysisError):
    """Raised by the model gateway. Carries the upstream message verbatim."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class TransientServiceError(GatewayError):
    pass


class PermanentServiceError(GatewayError):
    pass


class MalformedResponse(FuturesAnalysisError):
    """Model output could not be parsed as a JSON object."""


class IncompleteResponse(FuturesAnalysisError):
    """Model output parsed but lacks a field required for a usable record."""


class AnalysisFailed(FuturesAnalysisError):
    def __init__(self, reason: str, *, kind: FailureKind = FailureKind.PERMANENT):
        super().__init__(reason)
        self.reason = reason
        self.kind = kind


def classify(error: BaseException) -> FailureKind:
    """
    Decide whether a failure deserves one attempt on the fast model.

    Only gateway errors can be transient; parse and validation failures
    are permanent even when their text happens to contain "500".
    """
    if isinstance(error, TransientServiceError):
        return FailureKind.TRANSIENT
    if isinstance(error, PermanentServiceError) or not isinstance(error, GatewayError):
        return FailureKind.PERMANENT

    if error.status_code is not None and 500 <= error.status_code <= 599:
        return FailureKind.TRANSIENT
    text = error.message or ""
    if _STATUS_5XX_RE.search(text) or _RPC_FAILED_RE.search(text):
        return FailureKind.TRANSIENT
    return FailureKind.PERMANENT


def as_service_error(error: GatewayError) -> GatewayError:
    """Re-type a raw gateway error by its classification."""
    if isinstance(error, (TransientServiceError, PermanentServiceError)):
        return error
    cls = TransientServiceError if classify(error) is FailureKind.TRANSIENT else PermanentServiceError
    return cls(error.message, status_code=error.status_code)
