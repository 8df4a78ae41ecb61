"""Text extractor interface and result types."""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path


class ExtractionError(Exception):
    """One backend could not produce text for one file."""


@dataclass
class ExtractionAttempt:
    backend: str
    data_source: str
    success: bool
    duration_ms: int
    char_count: int = 0
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "backend": self.backend,
            "data_source": self.data_source,
            "success": self.success,
            "duration_ms": self.duration_ms,
            "char_count": self.char_count,
            "error": self.error,
        }


@dataclass
class AttachmentText:
    """Text of one attachment plus the trail of backends tried for it."""

    filename: str
    text: str | None
    data_source: str | None
    attempts: list[ExtractionAttempt] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return bool(self.text)

    @property
    def error_summary(self) -> str:
        return "; ".join(f"{a.backend}: {a.error}" for a in self.attempts if a.error)


class TextExtractor(ABC):
    """One extraction backend.

    ``extract`` returns the document text or raises ``ExtractionError``.
    Empty text counts as a failure in the engine.
    """

    name: str = "base"
    data_source: str = "none"
    extensions: frozenset[str] = frozenset()

    def supports(self, path: Path) -> bool:
        return path.suffix.lower() in self.extensions

    @abstractmethod
    def extract(self, path: Path) -> str:
        ...


def normalize_text(text: str) -> str:
    """Collapse runs of spaces and blank lines, keep line structure."""
    text = text.replace("\x00", "").replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"[ \t\u00a0\u3000]+", " ", text)
    lines = [line.strip() for line in text.split("\n")]
    text = "\n".join(lines)
    return re.sub(r"\n{3,}", "\n\n", text).strip()
