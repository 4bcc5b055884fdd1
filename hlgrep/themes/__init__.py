"""Palette registry — picks chrome colors that contrast with a syntax theme."""

import os
from typing import Dict, Optional, Type

from .base import Palette
from .dark import DarkPalette
from .light import LightPalette
from .no_color import NoColorPalette

_PALETTES: Dict[str, Type[Palette]] = {
    "dark": DarkPalette,
    "light": LightPalette,
    "no_color": NoColorPalette,
}


def get_palette(name: str) -> Palette:
    """Return a palette by name. Unknown names raise ``KeyError``."""
    if os.environ.get("NO_COLOR"):
        return NoColorPalette()
    return _PALETTES[name.lower()]()


def palette_for_background(background: Optional[str]) -> Palette:
    """Choose the dark or light palette for a ``#rrggbb`` background color.

    ``None`` (terminal default background) is treated as dark.
    """
    return get_palette("light" if _is_light(background) else "dark")


def list_palettes() -> list[str]:
    return list(_PALETTES)


def _is_light(background: Optional[str]) -> bool:
    if not background:
        return False
    value = background.lstrip("#")
    if len(value) == 3:
        value = "".join(c * 2 for c in value)
    try:
        r, g, b = (int(value[i:i + 2], 16) for i in (0, 2, 4))
    except ValueError:
        return False
    # Rec. 601 luma
    return (0.299 * r + 0.587 * g + 0.114 * b) > 127.5


__all__ = [
    "Palette",
    "get_palette",
    "palette_for_background",
    "list_palettes",
]
