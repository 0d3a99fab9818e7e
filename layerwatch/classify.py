from __future__ import annotations

from .models import Application, Transport


# Priority order matters: the first table containing either port wins.
WELL_KNOWN_PORTS: tuple[tuple[Application, frozenset[int]], ...] = (
    (Application.HTTP, frozenset({80})),
    (Application.HTTPS, frozenset({443})),
    (Application.DNS, frozenset({53})),
    (Application.DHCP, frozenset({67, 68})),
    (Application.NTP, frozenset({123})),
)


def classify_ports(sport: int, dport: int) -> Application:
    for application, ports in WELL_KNOWN_PORTS:
        if sport in ports or dport in ports:
            return application
    return Application.UNKNOWN


def classify_application(transport: Transport, sport: int, dport: int) -> Application | None:
    if not transport.has_ports:
        return None
    return classify_ports(sport, dport)
