from __future__ import annotations

import ipaddress
import struct
from pathlib import Path
from types import SimpleNamespace

import pytest


SRC_MAC = bytes.fromhex("001122334455")
DST_MAC = bytes.fromhex("66778899aabb")


def ethernet(ethertype: int, payload: bytes = b"") -> bytes:
    return DST_MAC + SRC_MAC + struct.pack("!H", ethertype) + payload


def ipv4(
    protocol: int,
    payload: bytes = b"",
    *,
    src: str = "10.0.0.1",
    dst: str = "10.0.0.2",
    total_length: int | None = None,
    ihl: int = 5,
) -> bytes:
    options = b"\x00" * ((ihl - 5) * 4) if ihl > 5 else b""
    if total_length is None:
        total_length = ihl * 4 + len(payload)
    header = struct.pack(
        "!BBHHHBBH4s4s",
        (4 << 4) | ihl,
        0,
        total_length,
        0x1234,
        0,
        64,
        protocol,
        0,
        ipaddress.IPv4Address(src).packed,
        ipaddress.IPv4Address(dst).packed,
    )
    return header + options + payload


def ipv6(
    next_header: int,
    payload: bytes = b"",
    *,
    src: str = "fe80::1",
    dst: str = "2001:db8::2",
    payload_length: int | None = None,
) -> bytes:
    if payload_length is None:
        payload_length = len(payload)
    header = struct.pack(
        "!IHBB16s16s",
        6 << 28,
        payload_length,
        next_header,
        64,
        ipaddress.IPv6Address(src).packed,
        ipaddress.IPv6Address(dst).packed,
    )
    return header + payload


def tcp(sport: int, dport: int) -> bytes:
    return struct.pack("!HHIIBBHHH", sport, dport, 1, 0, 5 << 4, 0x02, 65535, 0, 0)


def udp(sport: int, dport: int, data: bytes = b"") -> bytes:
    return struct.pack("!HHHH", sport, dport, 8 + len(data), 0) + data


def icmp(icmp_type: int, code: int) -> bytes:
    return struct.pack("!BBHHH", icmp_type, code, 0, 1, 1)


@pytest.fixture()
def frames() -> SimpleNamespace:
    return SimpleNamespace(
        ethernet=ethernet,
        ipv4=ipv4,
        ipv6=ipv6,
        tcp=tcp,
        udp=udp,
        icmp=icmp,
        tcp4=lambda sport, dport, **kw: ethernet(0x0800, ipv4(6, tcp(sport, dport), **kw)),
        udp4=lambda sport, dport, **kw: ethernet(0x0800, ipv4(17, udp(sport, dport), **kw)),
        icmp4=lambda icmp_type, code, **kw: ethernet(0x0800, ipv4(1, icmp(icmp_type, code), **kw)),
        tcp6=lambda sport, dport, **kw: ethernet(0x86DD, ipv6(6, tcp(sport, dport), **kw)),
        udp6=lambda sport, dport, **kw: ethernet(0x86DD, ipv6(17, udp(sport, dport), **kw)),
    )


def length_prefixed(*records: bytes | tuple[int, bytes]) -> bytes:
    out = bytearray()
    for record in records:
        if isinstance(record, tuple):
            declared, body = record
        else:
            declared, body = len(record), record
        out += struct.pack("!i", declared) + body
    return bytes(out)


@pytest.fixture()
def framed():
    return length_prefixed


@pytest.fixture()
def replay_pcap(tmp_path: Path, frames) -> Path:
    from scapy.layers.l2 import Ether
    from scapy.utils import wrpcap

    packets = [
        Ether(frames.tcp4(12345, 80)),
        Ether(frames.udp4(5353, 53)),
        Ether(frames.icmp4(8, 0)),
        Ether(frames.ethernet(0x0806, b"\x00" * 28)),
        Ether(frames.tcp6(443, 50000)),
    ]
    out = tmp_path / "replay.pcap"
    wrpcap(str(out), packets)
    return out
