from __future__ import annotations

import os
import sys


RESET = "\x1b[0m"
CLEAR_SCREEN = "\x1b[2J\x1b[H"

# SGR codes by style name.
STYLES = {
    "bold": "1",
    "dim": "2",
    "red": "31",
    "green": "32",
    "yellow": "33",
    "blue": "34",
    "magenta": "35",
    "cyan": "36",
    "white": "37",
}

# Section header colour per protocol layer in the live panel.
LAYER_STYLES = {
    "network": ("bold", "blue"),
    "transport": ("bold", "magenta"),
    "application": ("bold", "green"),
}

_color_override: bool | None = None


def set_color_override(enabled: bool | None) -> None:
    """Force colours on or off; ``None`` goes back to auto-detection."""
    global _color_override
    _color_override = enabled


def use_color(enabled: bool | None = None) -> bool:
    if enabled is not None:
        return enabled
    if _color_override is not None:
        return _color_override
    if "NO_COLOR" in os.environ:
        return False
    stream = sys.stdout
    try:
        return bool(stream.isatty())
    except (AttributeError, ValueError):
        return False


def style(text: str, *names: str, enabled: bool | None = None) -> str:
    if not names or not use_color(enabled):
        return text
    codes = ";".join(STYLES[name] for name in names)
    return f"\x1b[{codes}m{text}{RESET}"


def header(text: str, enabled: bool | None = None) -> str:
    return style(text, "bold", "cyan", enabled=enabled)


def layer_header(layer: str, text: str, enabled: bool | None = None) -> str:
    return style(text, *LAYER_STYLES.get(layer, ("bold", "cyan")), enabled=enabled)


def label(text: str, enabled: bool | None = None) -> str:
    return style(text, "bold", "white", enabled=enabled)


def ok(text: str, enabled: bool | None = None) -> str:
    return style(text, "green", enabled=enabled)


def warn(text: str, enabled: bool | None = None) -> str:
    return style(text, "yellow", enabled=enabled)


def danger(text: str, enabled: bool | None = None) -> str:
    return style(text, "bold", "red", enabled=enabled)


def muted(text: str, enabled: bool | None = None) -> str:
    return style(text, "dim", enabled=enabled)
