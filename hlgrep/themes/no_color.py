"""No Color palette — plain chrome respecting the NO_COLOR environment variable."""

from .base import Palette


class NoColorPalette(Palette):
    """Every entry is empty, so no ANSI codes are emitted for chrome."""

    def __init__(self):
        self.BORDER = ""
        self.HEADER = ""

        self.LINE_NUMBER = ""
        self.MATCH_LINE_NUMBER = ""

        self.MATCH_BACKGROUND = ""
