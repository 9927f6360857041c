"""Structured error taxonomy for leakprobe."""
#
# PURPOSE:
# Gives every failure the probe can hit a searchable code, so absorbed
# failures (which never abort a run) still leave a consistent log line and,
# where relevant, an inert marker in the report.
#
# ERROR CODE FORMAT:
# - COLLECT_XXX: candidate collection / negotiation
# - GEO_XXX: per-address geolocation lookups
# - LOOKUP_XXX: outbound HTTP contract failures
# - SINK_XXX: report delivery
# - CONFIG_XXX: configuration
# - SYSTEM_XXX: everything else
#
# USAGE:
#   from leakprobe.errors import LeakProbeError, ErrorCode
#
#   raise LeakProbeError(
#       ErrorCode.CONFIG_INVALID,
#       "Collection window must be positive",
#       details={"value": "-1"}
#   )
#
import json
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    # Collection Errors
    COLLECT_CAPABILITY_UNAVAILABLE = "COLLECT_001"
    COLLECT_NEGOTIATION_FAILED = "COLLECT_002"
    COLLECT_TEARDOWN_FAILED = "COLLECT_003"

    # Geo Errors
    GEO_LOOKUP_FAILED = "GEO_001"
    GEO_BAD_STATUS = "GEO_002"
    GEO_MALFORMED_PAYLOAD = "GEO_003"

    # Lookup (HTTP contract) Errors
    LOOKUP_TRANSPORT_FAILED = "LOOKUP_001"
    LOOKUP_BAD_STATUS = "LOOKUP_002"
    LOOKUP_MALFORMED_PAYLOAD = "LOOKUP_003"

    # Sink Errors
    SINK_DELIVERY_FAILED = "SINK_001"
    SINK_REJECTED = "SINK_002"

    # Config Errors
    CONFIG_INVALID = "CONFIG_001"

    # System Errors
    SYSTEM_INTERNAL_ERROR = "SYSTEM_001"


class LeakProbeError(Exception):
    """
    Base exception class for leakprobe with structured error information.

    Attributes:
        code: ErrorCode enum value (e.g., "GEO_001")
        message: Human-readable error message
        details: Optional dictionary with additional context
        http_status: Suggested HTTP status code (used by the receiver API)
    """

    HTTP_STATUS_MAP: Dict[ErrorCode, int] = {
        ErrorCode.COLLECT_CAPABILITY_UNAVAILABLE: 501,  # Not Implemented
        ErrorCode.COLLECT_NEGOTIATION_FAILED: 502,
        ErrorCode.COLLECT_TEARDOWN_FAILED: 500,

        ErrorCode.GEO_LOOKUP_FAILED: 502,     # Bad Gateway
        ErrorCode.GEO_BAD_STATUS: 502,
        ErrorCode.GEO_MALFORMED_PAYLOAD: 502,

        ErrorCode.LOOKUP_TRANSPORT_FAILED: 503,  # Service Unavailable
        ErrorCode.LOOKUP_BAD_STATUS: 502,
        ErrorCode.LOOKUP_MALFORMED_PAYLOAD: 502,

        ErrorCode.SINK_DELIVERY_FAILED: 503,
        ErrorCode.SINK_REJECTED: 502,

        ErrorCode.CONFIG_INVALID: 500,

        ErrorCode.SYSTEM_INTERNAL_ERROR: 500,
    }

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        http_status: Optional[int] = None
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        self.http_status = http_status or self.HTTP_STATUS_MAP.get(code, 500)

        # Build exception message with code for easy debugging
        super().__init__(f"[{code.value}] {message}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
            "http_status": self.http_status
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LeakProbeError":
        code = ErrorCode(data["code"])
        message = data["message"]
        details = data.get("details", {})
        http_status = data.get("http_status")
        return cls(code, message, details, http_status)


class CapabilityUnavailableError(LeakProbeError):
    """Raised when a real-time connection object cannot be constructed at all."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorCode.COLLECT_CAPABILITY_UNAVAILABLE, message, details)


class LookupFailedError(LeakProbeError):
    """Raised by the HTTP adapter for transport, status, or payload failures."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(code, message, details)
        self.status_code = status_code


# ============================================================================
# Convenience Functions
# ============================================================================

def handle_error(error: Exception, context: Optional[str] = None) -> LeakProbeError:
    """
    Convert a generic exception to a LeakProbeError.

    Args:
        error: The original exception
        context: Optional context string (e.g., "while resolving 203.0.113.9")

    Returns:
        LeakProbeError with appropriate code and message
    """
    if isinstance(error, LeakProbeError):
        return error

    error_type = type(error).__name__

    if "Timeout" in error_type or "Connect" in error_type or "Network" in error_type:
        code = ErrorCode.LOOKUP_TRANSPORT_FAILED
    elif isinstance(error, (ValueError, KeyError, TypeError)):
        code = ErrorCode.LOOKUP_MALFORMED_PAYLOAD
    else:
        code = ErrorCode.SYSTEM_INTERNAL_ERROR

    message = str(error) or error_type
    if context:
        message = f"{context}: {message}"

    return LeakProbeError(
        code=code,
        message=message,
        details={
            "original_type": error_type,
            "original_message": str(error)
        }
    )


__all__ = [
    "ErrorCode",
    "LeakProbeError",
    "CapabilityUnavailableError",
    "LookupFailedError",
    "handle_error",
]
