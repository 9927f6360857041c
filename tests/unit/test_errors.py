import httpx

from leakprobe.errors import (
    CapabilityUnavailableError,
    ErrorCode,
    LeakProbeError,
    LookupFailedError,
    handle_error,
)


def test_error_carries_code_in_message():
    err = LeakProbeError(ErrorCode.SINK_REJECTED, "Receiver said no", details={"status": 400})
    assert str(err) == "[SINK_002] Receiver said no"
    assert err.http_status == 502
    assert err.to_dict() == {
        "code": "SINK_002",
        "message": "Receiver said no",
        "details": {"status": 400},
        "http_status": 502,
    }


def test_round_trip_through_dict():
    err = LeakProbeError(ErrorCode.CONFIG_INVALID, "bad window", http_status=400)
    restored = LeakProbeError.from_dict(err.to_dict())
    assert restored.code is ErrorCode.CONFIG_INVALID
    assert restored.http_status == 400


def test_subclasses():
    cap = CapabilityUnavailableError("no peer")
    assert cap.code is ErrorCode.COLLECT_CAPABILITY_UNAVAILABLE
    assert cap.http_status == 501

    lookup = LookupFailedError(ErrorCode.LOOKUP_BAD_STATUS, "HTTP 500", status_code=500)
    assert lookup.status_code == 500
    assert isinstance(lookup, LeakProbeError)


def test_handle_error_classifies_generic_exceptions():
    request = httpx.Request("GET", "https://geo.test/")
    assert handle_error(httpx.ConnectTimeout("slow", request=request)).code is ErrorCode.LOOKUP_TRANSPORT_FAILED
    assert handle_error(ValueError("junk")).code is ErrorCode.LOOKUP_MALFORMED_PAYLOAD
    assert handle_error(RuntimeError("odd")).code is ErrorCode.SYSTEM_INTERNAL_ERROR

    wrapped = handle_error(KeyError("ip"), context="while reading payload")
    assert wrapped.message.startswith("while reading payload: ")
    assert wrapped.details["original_type"] == "KeyError"


def test_handle_error_passes_through_leakprobe_errors():
    original = LeakProbeError(ErrorCode.GEO_LOOKUP_FAILED, "boom")
    assert handle_error(original) is original
