from __future__ import annotations

import threading
import time
from collections import Counter
from dataclasses import dataclass, field

from .models import Application, NetworkLayer, ParsedPacket, Transport


NETWORK_CATEGORIES = ("ipv4", "ipv6")
TRANSPORT_CATEGORIES = ("tcp", "udp", "icmp", "other")
APPLICATION_CATEGORIES = ("http", "https", "dns", "dhcp", "ntp")
CATEGORIES = ("total",) + NETWORK_CATEGORIES + TRANSPORT_CATEGORIES + APPLICATION_CATEGORIES

_NETWORK_CATEGORY = {
    NetworkLayer.IPV4: "ipv4",
    NetworkLayer.IPV6: "ipv6",
}

# Every transport maps to exactly one bucket; ICMPv6 shares the icmp bucket.
_TRANSPORT_CATEGORY = {
    Transport.TCP: "tcp",
    Transport.UDP: "udp",
    Transport.ICMP: "icmp",
    Transport.ICMPV6: "icmp",
    Transport.OTHER: "other",
    Transport.NONE: "other",
}

_APPLICATION_CATEGORY = {
    Application.HTTP: "http",
    Application.HTTPS: "https",
    Application.DNS: "dns",
    Application.DHCP: "dhcp",
    Application.NTP: "ntp",
}


def categories_for(packet: ParsedPacket) -> tuple[str, ...]:
    categories = ["total", _NETWORK_CATEGORY[packet.network], _TRANSPORT_CATEGORY[packet.transport]]
    app_category = _APPLICATION_CATEGORY.get(packet.application) if packet.application else None
    if app_category:
        categories.append(app_category)
    return tuple(categories)


@dataclass(frozen=True)
class CounterSnapshot:
    counts: dict[str, int]
    taken_at: float = field(default_factory=time.monotonic)

    def __getitem__(self, category: str) -> int:
        return self.counts.get(category, 0)

    @property
    def total(self) -> int:
        return self["total"]

    def items(self) -> list[tuple[str, int]]:
        return [(name, self[name]) for name in CATEGORIES]


class StatsAggregator:
    """Per-session category counters.

    Increments and snapshots share one lock, so a renderer running on another
    thread always sees a consistent set of values.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counts: Counter[str] = Counter({name: 0 for name in CATEGORIES})

    def record(self, packet: ParsedPacket) -> tuple[str, ...]:
        categories = categories_for(packet)
        with self._lock:
            for category in categories:
                self._counts[category] += 1
        return categories

    def snapshot(self) -> CounterSnapshot:
        with self._lock:
            counts = {name: self._counts[name] for name in CATEGORIES}
        return CounterSnapshot(counts=counts)

    def __getitem__(self, category: str) -> int:
        if category not in CATEGORIES:
            raise KeyError(category)
        with self._lock:
            return self._counts[category]
