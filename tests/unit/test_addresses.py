import pytest

from leakprobe.base.context import ProbeRunContext, UniqueAddressSet
from leakprobe.recon.addresses import (
    Address,
    AddressFamily,
    AddressScope,
    classify_address,
    extract_addresses,
    extract_candidate,
)


@pytest.mark.parametrize(
    "literal, expected",
    [
        ("10.0.0.1", AddressScope.PRIVATE),
        ("172.16.0.0", AddressScope.PRIVATE),
        ("172.31.255.255", AddressScope.PRIVATE),
        ("172.15.0.1", AddressScope.PUBLIC),
        ("172.32.0.0", AddressScope.PUBLIC),
        ("192.168.0.1", AddressScope.PRIVATE),
        ("193.168.0.1", AddressScope.PUBLIC),
        ("fc00::1", AddressScope.PRIVATE),
        ("fd12::1", AddressScope.PRIVATE),
        ("FD12::1", AddressScope.PRIVATE),
        ("fe80::1", AddressScope.PUBLIC),
        ("2001:db8::1", AddressScope.PUBLIC),
        ("Unknown", AddressScope.UNKNOWN),
    ],
)
def test_classifier_boundaries(literal, expected):
    assert classify_address(literal) is expected


def test_extract_host_candidate():
    parts = extract_candidate("candidate:1 1 UDP 2122260223 192.168.1.5 54321 typ host")
    assert [a.literal for a in parts.addresses] == ["192.168.1.5"]
    assert parts.candidate_type == "host"
    assert parts.hostname is None
    assert parts.addresses[0].family is AddressFamily.V4
    assert parts.addresses[0].scope is AddressScope.PRIVATE


def test_extract_compressed_ipv6_literal_exactly():
    parts = extract_candidate("candidate:2 1 udp 2122262783 fc00::abcd 50000 typ host")
    assert [a.literal for a in parts.addresses] == ["fc00::abcd"]
    assert parts.addresses[0].family is AddressFamily.V6


@pytest.mark.parametrize(
    "literal",
    [
        "2001:0db8:85a3:0000:0000:8a2e:0370:7334",
        "2001:db8::8a2e:370:7334",
        "::ffff:192.0.2.128",
        "fe80::1ff:fe23:4567:890a%eth2",
        "::1",
    ],
)
def test_extract_ipv6_forms(literal):
    text = f"candidate:3 1 udp 2122262783 {literal} 50000 typ host"
    assert [a.literal for a in extract_addresses(text)] == [literal]


@pytest.mark.parametrize(
    "text, expected",
    [
        ("relay via 198.51.100.4:3478 typ relay", ["198.51.100.4"]),
        ("turn server at 203.0.113.9:443.", ["203.0.113.9"]),
        ("bound [2001:db8::1]:3478", ["2001:db8::1"]),
        ("ip=203.0.113.9 port=5000", ["203.0.113.9"]),
        ("candidate:7 1 udp 2122262783 10.0.0.2 50000 typ host", ["10.0.0.2"]),
        ("not-a-host:3478", []),
    ],
)
def test_extract_literals_from_free_text(text, expected):
    assert [a.literal for a in extract_addresses(text)] == expected


def test_extract_srflx_with_related_address():
    line = "candidate:842163049 1 udp 1677729535 203.0.113.9 54400 typ srflx raddr 192.168.1.5 rport 54321"
    parts = extract_candidate(line)
    assert [a.literal for a in parts.addresses] == ["203.0.113.9", "192.168.1.5"]
    assert parts.candidate_type == "srflx"


def test_unspecified_related_address_is_ignored():
    line = "candidate:5 1 udp 1677729535 198.51.100.4 54400 typ srflx raddr 0.0.0.0 rport 0"
    assert [a.literal for a in extract_addresses(line)] == ["198.51.100.4"]


def test_extract_mdns_hostname():
    line = "candidate:4 1 udp 2113937151 3f2b1c9e-7a61-4c2e-9d0b-5e8f1a2b3c4d.local 56789 typ host generation 0"
    parts = extract_candidate(line)
    assert parts.addresses == ()
    assert parts.candidate_type == "host"
    assert parts.hostname == "3f2b1c9e-7a61-4c2e-9d0b-5e8f1a2b3c4d.local"


@pytest.mark.parametrize("garbage", ["", "not a candidate", "candidate:x 1 udp 300.1.2.3 typ", ":::::", "1.2.3"])
def test_malformed_candidates_yield_nothing(garbage):
    parts = extract_candidate(garbage)
    assert parts.addresses == ()


def test_unique_address_set_is_insertion_idempotent():
    addresses = UniqueAddressSet()
    first = Address.from_literal("203.0.113.9")
    assert addresses.add(first) is True
    assert addresses.add(Address.from_literal("203.0.113.9")) is False
    assert addresses.add(Address.from_literal("192.168.1.5")) is True
    assert addresses.literals() == ["203.0.113.9", "192.168.1.5"]
    assert "203.0.113.9" in addresses
    assert first in addresses


def test_context_aggregate_never_duplicates():
    ctx = ProbeRunContext()
    repeated = [
        "candidate:1 1 UDP 2122260223 192.168.1.5 54321 typ host",
        "candidate:1 2 UDP 2122260222 192.168.1.5 54322 typ host",
        "candidate:2 1 udp 1677729535 203.0.113.9 54400 typ srflx raddr 192.168.1.5 rport 54321",
        "candidate:2 1 udp 1677729535 203.0.113.9 54400 typ srflx raddr 192.168.1.5 rport 54321",
    ]
    for line in repeated:
        ctx.record_candidate(line)
    ctx.aggregate()
    ctx.aggregate()

    literals = ctx.addresses.literals()
    assert literals == ["192.168.1.5", "203.0.113.9"]
    assert len(literals) == len(set(literals))
    assert dict(ctx.tally) == {"host": 2, "srflx": 2}
