"""Base palette interface for snippet chrome (gutter, borders, header)."""

from abc import ABC, abstractmethod

from rich.style import Style


class Palette(ABC):
    """Colors used around highlighted code, never for the code itself."""

    # Borders and header
    BORDER: str
    HEADER: str

    # Gutter
    LINE_NUMBER: str
    MATCH_LINE_NUMBER: str

    # Painted behind matched lines when background painting is on
    MATCH_BACKGROUND: str

    @abstractmethod
    def __init__(self):
        """Initialize palette colors."""
        pass

    @property
    def name(self) -> str:
        """Return the palette name."""
        return self.__class__.__name__.replace("Palette", "").lower()

    def style(self, attr: str) -> Style:
        """Parse one palette entry into a rich ``Style`` (empty means no style)."""
        value = getattr(self, attr)
        return Style.parse(value) if value else Style.null()
