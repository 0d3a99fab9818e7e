"""Ethernet frame decoding.

Turns one raw link-layer frame into a :class:`ParsedPacket`, or ``None`` when
the frame is too short or carries something other than IPv4/IPv6. Only the
fixed headers are read. A TCP or UDP header cut short by the end of the
frame makes the whole frame undecodable. IPv4 options and IPv6 extension
headers are not walked: the next-header byte of the fixed IPv6 header is taken
as the transport protocol, so when an extension header precedes the real
transport header the packet is misclassified.
"""

from __future__ import annotations

import ipaddress
import struct
from datetime import datetime
from typing import Any, Optional

from .classify import classify_application
from .models import NO_PORT, NetworkLayer, ParsedPacket, Transport


ETHERNET_HEADER_LEN = 14
ETHERTYPE_IPV4 = 0x0800
ETHERTYPE_IPV6 = 0x86DD

IPV4_MIN_HEADER_LEN = 20
IPV6_HEADER_LEN = 40
TCP_MIN_HEADER_LEN = 20
UDP_HEADER_LEN = 8
ICMP_TYPE_CODE_LEN = 2

PROTO_ICMP = 1
PROTO_TCP = 6
PROTO_UDP = 17
PROTO_ICMPV6 = 58

_U16 = struct.Struct("!H")
_PORTS = struct.Struct("!HH")
_IPV6_GROUPS = struct.Struct("!8H")


def decode_frame(frame: bytes, timestamp: Optional[datetime] = None) -> Optional[ParsedPacket]:
    if len(frame) < ETHERNET_HEADER_LEN:
        return None
    (ethertype,) = _U16.unpack_from(frame, 12)
    if ethertype == ETHERTYPE_IPV4:
        return decode_ipv4(frame, ETHERNET_HEADER_LEN, timestamp)
    if ethertype == ETHERTYPE_IPV6:
        return decode_ipv6(frame, ETHERNET_HEADER_LEN, timestamp)
    return None


def decode_ipv4(frame: bytes, offset: int, timestamp: Optional[datetime] = None) -> Optional[ParsedPacket]:
    if len(frame) < offset + IPV4_MIN_HEADER_LEN:
        return None
    ihl = (frame[offset] & 0x0F) * 4
    (total_length,) = _U16.unpack_from(frame, offset + 2)
    protocol = frame[offset + 9]
    src = str(ipaddress.IPv4Address(bytes(frame[offset + 12:offset + 16])))
    dst = str(ipaddress.IPv4Address(bytes(frame[offset + 16:offset + 20])))

    payload_offset = offset + ihl
    if protocol == PROTO_TCP:
        fields = decode_ports(frame, payload_offset, Transport.TCP, TCP_MIN_HEADER_LEN)
    elif protocol == PROTO_UDP:
        fields = decode_ports(frame, payload_offset, Transport.UDP, UDP_HEADER_LEN)
    elif protocol == PROTO_ICMP:
        fields = decode_icmp(frame, payload_offset)
    else:
        fields = {"transport": Transport.OTHER}
    if fields is None:
        return None
    return _build_packet(NetworkLayer.IPV4, protocol, src, dst, total_length, fields, timestamp)


def decode_ipv6(frame: bytes, offset: int, timestamp: Optional[datetime] = None) -> Optional[ParsedPacket]:
    if len(frame) < offset + IPV6_HEADER_LEN:
        return None
    (payload_length,) = _U16.unpack_from(frame, offset + 4)
    next_header = frame[offset + 6]
    src = format_ipv6(frame, offset + 8)
    dst = format_ipv6(frame, offset + 24)

    payload_offset = offset + IPV6_HEADER_LEN
    if next_header == PROTO_TCP:
        fields = decode_ports(frame, payload_offset, Transport.TCP, TCP_MIN_HEADER_LEN)
    elif next_header == PROTO_UDP:
        fields = decode_ports(frame, payload_offset, Transport.UDP, UDP_HEADER_LEN)
    elif next_header == PROTO_ICMPV6:
        fields = {"transport": Transport.ICMPV6}
    else:
        fields = {"transport": Transport.OTHER}
    if fields is None:
        return None
    return _build_packet(
        NetworkLayer.IPV6,
        next_header,
        src,
        dst,
        payload_length + IPV6_HEADER_LEN,
        fields,
        timestamp,
    )


def decode_ports(
    frame: bytes, offset: int, transport: Transport, min_header: int
) -> Optional[dict[str, Any]]:
    if len(frame) < offset + min_header:
        return None
    sport, dport = _PORTS.unpack_from(frame, offset)
    return {"transport": transport, "sport": sport, "dport": dport}


def decode_icmp(frame: bytes, offset: int) -> dict[str, Any]:
    if len(frame) < offset + ICMP_TYPE_CODE_LEN:
        return {"transport": Transport.ICMP}
    return {"transport": Transport.ICMP, "icmp_type_code": (frame[offset], frame[offset + 1])}


def format_ipv6(frame: bytes, offset: int) -> str:
    return ":".join(f"{group:x}" for group in _IPV6_GROUPS.unpack_from(frame, offset))


def _build_packet(
    network: NetworkLayer,
    protocol: int,
    src: str,
    dst: str,
    total_bytes: int,
    fields: dict[str, Any],
    timestamp: Optional[datetime],
) -> ParsedPacket:
    transport = fields.get("transport", Transport.NONE)
    sport = fields.get("sport", NO_PORT)
    dport = fields.get("dport", NO_PORT)
    return ParsedPacket(
        timestamp=timestamp if timestamp is not None else datetime.now(),
        network=network,
        protocol_number=protocol,
        src=src,
        dst=dst,
        total_bytes=total_bytes,
        transport=transport,
        sport=sport,
        dport=dport,
        icmp_type_code=fields.get("icmp_type_code"),
        application=classify_application(transport, sport, dport),
    )
