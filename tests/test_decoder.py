from __future__ import annotations

from dataclasses import FrozenInstanceError
from datetime import datetime

import pytest

from layerwatch.decoder import decode_frame, format_ipv6
from layerwatch.models import NO_PORT, Application, NetworkLayer, Transport


TS = datetime(2024, 5, 1, 13, 37, 0, 123456)


def test_ipv4_tcp_http_example(frames):
    frame = frames.tcp4(12345, 80, src="10.0.0.1", dst="10.0.0.2", total_length=40)
    packet = decode_frame(frame, TS)
    assert packet is not None
    assert packet.network is NetworkLayer.IPV4
    assert packet.protocol_number == 6
    assert packet.src == "10.0.0.1"
    assert packet.dst == "10.0.0.2"
    assert packet.total_bytes == 40
    assert packet.transport is Transport.TCP
    assert (packet.sport, packet.dport) == (12345, 80)
    assert packet.application is Application.HTTP
    assert packet.icmp_type_code is None
    assert packet.timestamp == TS


@pytest.mark.parametrize("length", range(0, 14))
def test_short_buffers_are_undecodable(frames, length):
    assert decode_frame(frames.tcp4(12345, 80)[:length]) is None
    assert decode_frame(bytes(length)) is None


def test_ten_byte_buffer(frames):
    assert decode_frame(frames.tcp4(1, 2)[:10]) is None


def test_unknown_ethertype_is_ignored(frames):
    assert decode_frame(frames.ethernet(0x0806, b"\x00" * 28)) is None
    assert decode_frame(frames.ethernet(0x8100, frames.ipv4(6, frames.tcp(1, 80)))) is None


def test_ipv4_requires_twenty_header_bytes(frames):
    frame = frames.ethernet(0x0800, frames.ipv4(47, b""))
    assert decode_frame(frame[:14 + 19]) is None
    packet = decode_frame(frame[:14 + 20])
    assert packet is not None
    assert packet.transport is Transport.OTHER
    # Header-only TCP frame: the missing TCP header makes it undecodable.
    assert decode_frame(frames.tcp4(1000, 80)[:14 + 20]) is None


def test_ipv6_requires_forty_header_bytes(frames):
    frame = frames.ethernet(0x86DD, frames.ipv6(58, b""))
    assert decode_frame(frame[:14 + 39]) is None
    packet = decode_frame(frame[:14 + 40])
    assert packet is not None
    assert packet.transport is Transport.ICMPV6
    assert decode_frame(frames.tcp6(1000, 443)[:14 + 40]) is None


@pytest.mark.parametrize("declared", [0, 20, 40, 1500, 65535])
def test_total_bytes_is_declared_ipv4_length(frames, declared):
    packet = decode_frame(frames.tcp4(1000, 2000, total_length=declared))
    assert packet is not None
    assert packet.total_bytes == declared


def test_ipv6_total_bytes_adds_fixed_header(frames):
    packet = decode_frame(frames.udp6(5000, 53, payload_length=1200))
    assert packet is not None
    assert packet.total_bytes == 1240
    assert packet.application is Application.DNS


def test_ipv4_header_length_is_honoured(frames):
    frame = frames.ethernet(0x0800, frames.ipv4(17, frames.udp(68, 67), ihl=6))
    packet = decode_frame(frame)
    assert packet is not None
    assert (packet.sport, packet.dport) == (68, 67)
    assert packet.application is Application.DHCP


def test_icmp_type_and_code(frames):
    packet = decode_frame(frames.icmp4(8, 0))
    assert packet is not None
    assert packet.transport is Transport.ICMP
    assert packet.icmp_type_code == (8, 0)
    assert packet.application is None
    assert packet.sport == NO_PORT and packet.dport == NO_PORT


def test_icmp_without_type_code_bytes(frames):
    frame = frames.ethernet(0x0800, frames.ipv4(1, b"\x03"))
    packet = decode_frame(frame)
    assert packet is not None
    assert packet.transport is Transport.ICMP
    assert packet.icmp_type_code is None


def test_icmpv6_is_label_only(frames):
    frame = frames.ethernet(0x86DD, frames.ipv6(58, b"\x80\x00\x00\x00"))
    packet = decode_frame(frame)
    assert packet is not None
    assert packet.network is NetworkLayer.IPV6
    assert packet.transport is Transport.ICMPV6
    assert packet.icmp_type_code is None
    assert packet.application is None


def test_truncated_transport_header_is_undecodable(frames):
    assert decode_frame(frames.ethernet(0x0800, frames.ipv4(6, frames.tcp(1, 80)[:19]))) is None
    assert decode_frame(frames.ethernet(0x0800, frames.ipv4(17, b"\x00\x35\x00"))) is None
    assert decode_frame(frames.ethernet(0x86DD, frames.ipv6(6, frames.tcp(1, 80)[:10]))) is None


def test_short_icmp_keeps_packet_without_type_code(frames):
    packet = decode_frame(frames.ethernet(0x0800, frames.ipv4(1, b"\x08")))
    assert packet is not None
    assert packet.transport is Transport.ICMP
    assert packet.icmp_type_code is None
    assert packet.sport == NO_PORT


def test_other_protocols(frames):
    gre = decode_frame(frames.ethernet(0x0800, frames.ipv4(47, b"\x00" * 8)))
    assert gre is not None
    assert gre.transport is Transport.OTHER
    assert gre.protocol_number == 47
    assert gre.application is None


def test_ipv6_extension_header_is_not_walked(frames):
    # Hop-by-hop options (0) in front of TCP: classified by the first next-header only.
    frame = frames.ethernet(0x86DD, frames.ipv6(0, b"\x06\x00" + b"\x00" * 6 + frames.tcp(1000, 80)))
    packet = decode_frame(frame)
    assert packet is not None
    assert packet.protocol_number == 0
    assert packet.transport is Transport.OTHER
    assert packet.application is None


def test_ipv6_addresses_are_uncompressed_lowercase(frames):
    packet = decode_frame(frames.tcp6(1, 2, src="fe80::ABCD:1", dst="2001:db8::2"))
    assert packet is not None
    assert packet.src == "fe80:0:0:0:0:0:abcd:1"
    assert packet.dst == "2001:db8:0:0:0:0:0:2"


def test_format_ipv6_offset():
    raw = b"\xff" * 3 + bytes(range(16))
    assert format_ipv6(raw, 3) == "1:203:405:607:809:a0b:c0d:e0f"


def test_bytearray_frames_decode(frames):
    packet = decode_frame(bytearray(frames.udp4(40000, 123)))
    assert packet is not None
    assert packet.src == "10.0.0.1"
    assert packet.application is Application.NTP


def test_packets_are_immutable(frames):
    packet = decode_frame(frames.tcp4(1, 443))
    assert packet is not None
    with pytest.raises(FrozenInstanceError):
        packet.total_bytes = 1  # type: ignore[misc]


def test_timestamp_defaults_to_decode_time(frames):
    before = datetime.now()
    packet = decode_frame(frames.tcp4(1, 2))
    after = datetime.now()
    assert packet is not None
    assert before <= packet.timestamp <= after
