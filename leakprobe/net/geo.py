"""
leakprobe/net/geo.py
Per-address geolocation and the primary public address lookup.
"""

from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union
from urllib.parse import quote

from leakprobe.errors import ErrorCode, LeakProbeError, LookupFailedError, handle_error
from leakprobe.net.adapter import ProbeHTTPClient
from leakprobe.recon.addresses import Address
from leakprobe.utils.async_helpers import gather_settled

logger = logging.getLogger(__name__)

UNKNOWN = "Unknown"

Coordinate = Union[float, int, str]

# Geo-lookup contract field -> GeoRecord attribute
_FIELD_MAP = {
    "countryName": "country",
    "cityName": "city",
    "zipCode": "postal_code",
    "timeZone": "time_zone",
    "latitude": "latitude",
    "longitude": "longitude",
    "asnOrganization": "organization",
    "asn": "network_id",
}


# Adapter failure -> code logged for a per-address lookup
_GEO_CODES = {
    ErrorCode.LOOKUP_TRANSPORT_FAILED: ErrorCode.GEO_LOOKUP_FAILED,
    ErrorCode.LOOKUP_BAD_STATUS: ErrorCode.GEO_BAD_STATUS,
    ErrorCode.LOOKUP_MALFORMED_PAYLOAD: ErrorCode.GEO_MALFORMED_PAYLOAD,
}


def _scalar_or_unknown(value: Any) -> Any:
    if value is None or value == "":
        return UNKNOWN
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        return UNKNOWN
    return value


@dataclass(frozen=True)
class GeoRecord:
    country: str = UNKNOWN
    city: str = UNKNOWN
    postal_code: str = UNKNOWN
    time_zone: str = UNKNOWN
    latitude: Coordinate = UNKNOWN
    longitude: Coordinate = UNKNOWN
    is_proxy: bool = False
    organization: str = UNKNOWN
    network_id: str = UNKNOWN
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    @classmethod
    def failure(cls, error: str) -> "GeoRecord":
        return cls(error=error)

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> "GeoRecord":
        values: Dict[str, Any] = {}
        for source, attr in _FIELD_MAP.items():
            value = _scalar_or_unknown(data.get(source))
            if attr not in ("latitude", "longitude") and value != UNKNOWN:
                value = str(value)
            values[attr] = value
        values["is_proxy"] = data.get("isProxy") is True
        return cls(**values)


def _addr_literal(item: Union[Address, str]) -> str:
    return item.literal if isinstance(item, Address) else str(item)


class GeoResolver:
    """
    Resolves geolocation for a batch of addresses, one request per address,
    all in flight together. Every address gets a record: a lookup that fails
    in any way yields a sentinel record carrying the error text instead.
    """

    def __init__(self, http: ProbeHTTPClient, url_template: str):
        self._http = http
        self._url_template = url_template

    def url_for(self, literal: str) -> str:
        return self._url_template.format(ip=quote(literal, safe=":"))

    async def resolve(self, literal: str) -> GeoRecord:
        try:
            data = await self._http.get_json(self.url_for(literal))
            return GeoRecord.from_payload(data)
        except LookupFailedError as e:
            if e.code is ErrorCode.LOOKUP_BAD_STATUS:
                body = e.details.get("body", "")
                error = f"Failed to fetch GeoIP for {literal}. Status: {e.status_code}. Details: {body}"
            else:
                error = f"Error fetching GeoIP: {e.message}"
            geo_err = LeakProbeError(
                _GEO_CODES.get(e.code, ErrorCode.GEO_LOOKUP_FAILED),
                error,
                details={"address": literal, **e.details},
            )
            logger.warning(f"[GeoResolver] {geo_err}")
            return GeoRecord.failure(error)
        except Exception as e:
            err = handle_error(e, context=f"while resolving {literal}")
            geo_err = LeakProbeError(ErrorCode.GEO_LOOKUP_FAILED, err.message, details={"address": literal})
            logger.error(f"[GeoResolver] Unexpected failure: {geo_err}")
            return GeoRecord.failure(f"Error fetching GeoIP: {err.message}")

    async def resolve_all(self, addresses: Iterable[Union[Address, str]]) -> Dict[str, GeoRecord]:
        literals: List[str] = list(dict.fromkeys(_addr_literal(a) for a in addresses))
        if not literals:
            return {}

        logger.info(f"[GeoResolver] Resolving {len(literals)} address(es)")
        outcomes = await gather_settled([self.resolve(lit) for lit in literals])

        records: Dict[str, GeoRecord] = {}
        for literal, outcome in zip(literals, outcomes):
            if outcome.ok and outcome.value is not None:
                records[literal] = outcome.value
            else:
                err = handle_error(outcome.error, context=f"while resolving {literal}") if outcome.error else None
                records[literal] = GeoRecord.failure(
                    f"Error fetching GeoIP: {err.message if err else 'no result'}"
                )
        return records


async def lookup_public_address(http: ProbeHTTPClient, url: str) -> str:
    """Best-effort primary public address; UNKNOWN on any failure."""
    try:
        data = await http.get_json(url)
        value = str(data.get("ip", "")).strip()
        ipaddress.ip_address(value)
        return value
    except ValueError:
        logger.error(f"[PublicIP] Lookup returned no usable address from {url}")
    except LeakProbeError as e:
        logger.error(f"[PublicIP] Could not fetch primary public IP: {e}")
    except Exception as e:
        logger.error(f"[PublicIP] Could not fetch primary public IP: {handle_error(e)}")
    return UNKNOWN
