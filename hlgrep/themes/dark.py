"""Dark palette — for themes with a dark background."""

from .base import Palette


class DarkPalette(Palette):
    """Muted chrome that stays behind dark syntax themes."""

    def __init__(self):
        self.BORDER = "#484F58"
        self.HEADER = "bold #E6EDF3"

        self.LINE_NUMBER = "#6E7681"
        self.MATCH_LINE_NUMBER = "bold #E3B341"

        self.MATCH_BACKGROUND = "on #2D333B"
