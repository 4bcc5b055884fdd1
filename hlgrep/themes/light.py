"""Light palette — for themes with a light background."""

from .base import Palette


class LightPalette(Palette):
    """Chrome tuned for light syntax themes."""

    def __init__(self):
        self.BORDER = "#D0D7DE"
        self.HEADER = "bold #24292F"

        self.LINE_NUMBER = "#8C959F"
        self.MATCH_LINE_NUMBER = "bold #9A6700"

        self.MATCH_BACKGROUND = "on #FFF8C5"
