from __future__ import annotations

import re
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Optional

from .coloring import danger, header, label, layer_header, muted, ok, warn
from .stats import APPLICATION_CATEGORIES, NETWORK_CATEGORIES, TRANSPORT_CATEGORIES, CounterSnapshot
from .utils import format_duration, format_rate, share

if TYPE_CHECKING:
    from .monitor import SessionResult


SECTION_BAR = "=" * 72
SUBSECTION_BAR = "-" * 72

CATEGORY_LABELS = {
    "total": "Total",
    "ipv4": "IPv4",
    "ipv6": "IPv6",
    "tcp": "TCP",
    "udp": "UDP",
    "icmp": "ICMP",
    "other": "Other",
    "http": "HTTP",
    "https": "HTTPS",
    "dns": "DNS",
    "dhcp": "DHCP",
    "ntp": "NTP",
}


def _format_kv(label_text: str, value: str, width: int = 24, color: bool | None = None) -> str:
    return f"{label(label_text, color):<{width}}: {value}"


def _visible_len(text: str) -> int:
    return len(re.sub(r"\x1b\[[0-9;]*m", "", text))


def _format_table(rows: Iterable[list[str]]) -> str:
    rows = list(rows)
    if not rows:
        return "(none)"
    widths = [max(_visible_len(row[i]) for row in rows) for i in range(len(rows[0]))]
    lines = []
    for row in rows:
        parts = []
        for idx, value in enumerate(row):
            pad = widths[idx] - _visible_len(value)
            parts.append(value + (" " * max(0, pad)))
        lines.append("  ".join(parts).rstrip())
    return "\n".join(lines)


def _category_rows(
    snapshot: CounterSnapshot,
    categories: Iterable[str],
    previous: Optional[CounterSnapshot],
) -> list[list[str]]:
    rows = [[muted("Category"), muted("Packets"), muted("Share"), muted("Delta")]]
    for name in categories:
        count = snapshot[name]
        delta = count - previous[name] if previous is not None else 0
        delta_text = ok(f"+{delta}") if delta > 0 else muted("0")
        rows.append([CATEGORY_LABELS.get(name, name), str(count), share(count, snapshot.total), delta_text])
    return rows


def render_counters(
    snapshot: CounterSnapshot,
    elapsed: Optional[float],
    previous: Optional[CounterSnapshot] = None,
    *,
    title: str = "LIVE CAPTURE",
) -> str:
    lines: list[str] = []
    lines.append(SECTION_BAR)
    lines.append(header(f"LAYERWATCH :: {title}"))
    lines.append(SECTION_BAR)
    lines.append(_format_kv("Elapsed", format_duration(elapsed)))
    lines.append(_format_kv("Packets", str(snapshot.total)))
    lines.append(_format_kv("Average Rate", format_rate(snapshot.total, elapsed)))
    if previous is not None:
        interval = snapshot.taken_at - previous.taken_at
        lines.append(_format_kv("Current Rate", format_rate(snapshot.total - previous.total, interval)))

    sections = (
        ("network", "Network Layer", NETWORK_CATEGORIES),
        ("transport", "Transport Layer", TRANSPORT_CATEGORIES),
        ("application", "Application Layer", APPLICATION_CATEGORIES),
    )
    for layer, section_title, categories in sections:
        lines.append(SUBSECTION_BAR)
        lines.append(layer_header(layer, section_title))
        lines.append(_format_table(_category_rows(snapshot, categories, previous)))
    lines.append(SECTION_BAR)
    return "\n".join(lines)


def render_session_summary(result: "SessionResult", output_paths: Optional[dict[str, Path]] = None) -> str:
    lines: list[str] = []
    lines.append(render_counters(result.snapshot, result.duration_seconds, title="SESSION SUMMARY"))
    lines.append(header("Capture"))
    lines.append(_format_kv("Source", result.source_name))
    lines.append(_format_kv("Frames Read", str(result.frames_read)))
    lines.append(_format_kv("Packets Decoded", str(result.packets_decoded)))
    lines.append(_format_kv("Frames Skipped", str(result.frames_skipped)))
    lines.append(_format_kv("Stopped By", result.stop_reason))

    if output_paths:
        lines.append(SUBSECTION_BAR)
        lines.append(header("Output Files"))
        for stream, path in output_paths.items():
            rows = result.rows_written.get(stream, 0)
            lines.append(_format_kv(stream.capitalize(), f"{path} ({rows} rows)"))

    if result.errors:
        lines.append(SUBSECTION_BAR)
        lines.append(header("Errors"))
        shown = result.errors[:10]
        for err in shown:
            lines.append(danger(f"- {err}"))
        if len(result.errors) > len(shown):
            lines.append(warn(f"... {len(result.errors) - len(shown)} more"))
    lines.append(SECTION_BAR)
    return "\n".join(lines)
