from __future__ import annotations


class IngestError(Exception):
    """A single uploaded file could not contribute to the summary."""

    def __init__(self, message: str, source_name: str = ""):
        super().__init__(message)
        self.source_name = source_name

    def __str__(self) -> str:
        msg = super().__str__()
        return f"{self.source_name}: {msg}" if self.source_name else msg


class MalformedSheet(IngestError):
    # too short, or period/name columns not locatable
    pass


class UnreadableFile(IngestError):
    # I/O or decode failure
    pass
