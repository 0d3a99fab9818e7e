from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


NO_PORT = -1


class NetworkLayer(str, Enum):
    IPV4 = "IPv4"
    IPV6 = "IPv6"


class Transport(str, Enum):
    TCP = "TCP"
    UDP = "UDP"
    ICMP = "ICMP"
    ICMPV6 = "ICMPv6"
    OTHER = "Other"
    NONE = "None"

    @property
    def has_ports(self) -> bool:
        return self in (Transport.TCP, Transport.UDP)


class Application(str, Enum):
    HTTP = "HTTP"
    HTTPS = "HTTPS"
    DNS = "DNS"
    DHCP = "DHCP"
    NTP = "NTP"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class ParsedPacket:
    timestamp: datetime
    network: NetworkLayer
    protocol_number: int
    src: str
    dst: str
    total_bytes: int
    transport: Transport = Transport.NONE
    sport: int = NO_PORT
    dport: int = NO_PORT
    icmp_type_code: Optional[tuple[int, int]] = None
    application: Optional[Application] = None

    @property
    def has_ports(self) -> bool:
        return self.transport.has_ports and self.sport != NO_PORT and self.dport != NO_PORT
