"""
leakprobe/recon/fingerprint.py
Best-effort capability probes for the client running the probe.

A probe is a (capability-name, accessor) pair. Names must come from
CAPABILITY_NAMES; accessors return a str/int/float/bool or None. A probe
that returns None or raises is left out of the fingerprint.
"""

from __future__ import annotations

import locale
import logging
import os
import platform
import sys
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

logger = logging.getLogger(__name__)

FingerprintValue = Union[str, int, float, bool, List[str]]
Accessor = Callable[[], Optional[FingerprintValue]]
CapabilityProbe = Tuple[str, Accessor]

CAPABILITY_NAMES: Tuple[str, ...] = (
    "userAgent", "language", "languages", "platform", "hardwareConcurrency",
    "deviceMemory", "doNotTrack", "cookieEnabled", "maxTouchPoints", "vendor",
    "product", "productSub", "vendorSub", "oscpu", "buildID", "appCodeName",
    "appName", "appVersion", "pdfViewerEnabled", "webdriver", "globalPrivacyControl",
)


def _language() -> Optional[str]:
    lang, _ = locale.getlocale()
    if not lang:
        lang = os.environ.get("LANG", "").split(".")[0] or None
    return lang.replace("_", "-") if lang else None


def _languages() -> Optional[List[str]]:
    raw = os.environ.get("LANGUAGE")
    if raw:
        return [part.replace("_", "-") for part in raw.split(":") if part]
    lang = _language()
    return [lang] if lang else None


def _device_memory() -> Optional[float]:
    # Rounded to GiB like the browser property; POSIX only
    pages = os.sysconf("SC_PHYS_PAGES")
    page_size = os.sysconf("SC_PAGE_SIZE")
    return round(pages * page_size / 1024 ** 3, 1)


def _do_not_track() -> Optional[str]:
    return os.environ.get("DNT")


def _oscpu() -> Optional[str]:
    return f"{platform.system()} {platform.machine()}".strip() or None


def default_probes(user_agent: str) -> List[CapabilityProbe]:
    """Probes reading the equivalent properties of the running Python process."""
    return [
        ("userAgent", lambda: user_agent),
        ("language", _language),
        ("languages", _languages),
        ("platform", lambda: sys.platform),
        ("hardwareConcurrency", os.cpu_count),
        ("deviceMemory", _device_memory),
        ("doNotTrack", _do_not_track),
        ("oscpu", _oscpu),
        ("appName", lambda: "leakprobe"),
        ("appVersion", lambda: user_agent.partition("/")[2] or None),
        ("product", lambda: platform.python_implementation()),
        ("productSub", platform.python_version),
        ("webdriver", lambda: False),
    ]


def collect_fingerprint(probes: Sequence[CapabilityProbe]) -> Dict[str, FingerprintValue]:
    """
    Run each probe once, in order. The result is keyed in allow-list order so
    the rendered fingerprint is stable regardless of probe order.
    """
    observed: Dict[str, FingerprintValue] = {}
    allowed = set(CAPABILITY_NAMES)
    for name, accessor in probes:
        if name not in allowed:
            logger.warning(f"[Fingerprint] Skipping capability outside allow-list: {name}")
            continue
        try:
            value = accessor()
        except Exception as e:
            logger.debug(f"[Fingerprint] {name} inaccessible: {e}")
            continue
        if value is None:
            continue
        observed[name] = value

    return {name: observed[name] for name in CAPABILITY_NAMES if name in observed}
