"""
leakprobe/reporting/sink.py
Delivery of a finished report to the append-only log receiver.

One call per run. The outcome is logged and returned; there is no retry
and no exception ever leaves deliver().
"""

from __future__ import annotations

import logging
from typing import Protocol

from leakprobe.errors import ErrorCode, LeakProbeError, LookupFailedError, handle_error
from leakprobe.net.adapter import ProbeHTTPClient

logger = logging.getLogger(__name__)


class ReportSink(Protocol):
    async def deliver(self, content: str) -> bool: ...


class HttpReportSink:
    """POSTs {"logContent": <report text>} to the receiver."""

    def __init__(self, http: ProbeHTTPClient, url: str):
        self._http = http
        self.url = url

    async def deliver(self, content: str) -> bool:
        try:
            await self._http.post_json(self.url, {"logContent": content})
        except LookupFailedError as e:
            # A non-2xx answer means the receiver rejected it; anything else never arrived
            if e.code is ErrorCode.LOOKUP_BAD_STATUS:
                code = ErrorCode.SINK_REJECTED
            else:
                code = ErrorCode.SINK_DELIVERY_FAILED
            err = LeakProbeError(code, e.message, details={"status": e.status_code, **e.details})
            logger.error(f"[Sink] Failed to send log to the server: {err}")
            return False
        except Exception as e:
            cause = handle_error(e)
            err = LeakProbeError(ErrorCode.SINK_DELIVERY_FAILED, cause.message, details=cause.details)
            logger.error(f"[Sink] Error sending log to the server: {err}")
            return False
        logger.info("[Sink] Log successfully sent to the server.")
        return True
