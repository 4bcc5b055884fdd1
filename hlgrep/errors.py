"""Structured error types for hlgrep."""


class HlgrepError(Exception):
    """Base error for all hlgrep operations."""
    pass


class ConfigurationError(HlgrepError):
    """Invalid option value or unsupported option/backend combination."""

    def __init__(self, option: str, message: str):
        self.option = option
        super().__init__(f"{message} (at {option})")


class FileIOError(HlgrepError):
    """A source file could not be opened or read."""

    def __init__(self, path, message: str):
        self.path = str(path)
        super().__init__(f"{self.path}: {message}")


class RenderError(HlgrepError):
    """Highlighting or writing to the output sink failed."""

    def __init__(self, path, message: str):
        self.path = str(path) if path is not None else None
        if self.path:
            super().__init__(f"could not print {self.path}: {message}")
        else:
            super().__init__(message)
