"""Text extraction engine — ordered backend fallback per attachment."""

import logging
import time
from pathlib import Path
from typing import Callable, Iterable, Sequence

from fundingpipe.config import Settings
from fundingpipe.extraction.base import AttachmentText, ExtractionAttempt, ExtractionError, TextExtractor
from fundingpipe.extraction.cloud_editor import CloudEditorExtractor
from fundingpipe.extraction.native import NativeDocumentParser
from fundingpipe.extraction.ocr import OcrExtractor

logger = logging.getLogger(__name__)


class TextExtractionEngine:
    """Tries each extractor in order and stops at the first non-empty text."""

    def __init__(self, extractors: Sequence[TextExtractor]):
        self.extractors = list(extractors)

    def extract(self, path: Path) -> AttachmentText:
        path = Path(path)
        attempts: list[ExtractionAttempt] = []

        if not path.exists():
            logger.warning(f"Attachment missing on disk: {path}")
            attempts.append(ExtractionAttempt(
                backend="filesystem", data_source="none", success=False,
                duration_ms=0, error="file not found",
            ))
            return AttachmentText(filename=path.name, text=None, data_source=None, attempts=attempts)

        for extractor in self.extractors:
            if not extractor.supports(path):
                continue

            started = time.monotonic()
            try:
                text = extractor.extract(path)
                error = None if text and text.strip() else "empty text"
            except ExtractionError as e:
                text, error = None, str(e)
            except Exception as e:
                logger.exception(f"{extractor.name} raised on {path.name}")
                text, error = None, f"{type(e).__name__}: {e}"
            duration_ms = int((time.monotonic() - started) * 1000)

            attempt = ExtractionAttempt(
                backend=extractor.name,
                data_source=extractor.data_source,
                success=error is None,
                duration_ms=duration_ms,
                char_count=len(text) if text else 0,
                error=error,
            )
            attempts.append(attempt)

            if attempt.success:
                logger.info(f"Extracted {attempt.char_count} chars from {path.name} via {extractor.name} ({duration_ms}ms)")
                return AttachmentText(filename=path.name, text=text, data_source=extractor.data_source, attempts=attempts)

            logger.warning(f"{extractor.name} failed on {path.name}: {error}")

        if not attempts:
            attempts.append(ExtractionAttempt(
                backend="none", data_source="none", success=False,
                duration_ms=0, error=f"no backend supports {path.suffix or 'this file'}",
            ))
        logger.error(f"All extraction backends failed for {path.name}")
        return AttachmentText(filename=path.name, text=None, data_source=None, attempts=attempts)

    def extract_all(
        self,
        paths: Iterable[Path],
        after_each: Callable[[AttachmentText], None] | None = None,
    ) -> list[AttachmentText]:
        """Extract every attachment independently; one failure never stops the rest."""
        results = []
        for path in paths:
            result = self.extract(path)
            results.append(result)
            if after_each:
                after_each(result)
        return results


def build_default_engine(settings: Settings) -> TextExtractionEngine:
    """Native parser, then cloud editor, then OCR."""
    return TextExtractionEngine([
        NativeDocumentParser(
            libreoffice_binary=settings.libreoffice_binary,
            libreoffice_timeout=settings.libreoffice_timeout,
        ),
        CloudEditorExtractor(
            base_url=settings.cloud_editor_url,
            email=settings.cloud_editor_email,
            password=settings.cloud_editor_password,
            enabled=settings.cloud_editor_enabled,
        ),
        OcrExtractor(
            lang=settings.tesseract_lang,
            libreoffice_binary=settings.libreoffice_binary,
            libreoffice_timeout=settings.libreoffice_timeout,
        ),
    ])
