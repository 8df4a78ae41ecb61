"""Generic OCR backend (Tesseract) over a rendered image of the document."""

import logging
import tempfile
from pathlib import Path

import pdfplumber
import pytesseract
from PIL import Image, UnidentifiedImageError

from fundingpipe.extraction.base import ExtractionError, TextExtractor, normalize_text
from fundingpipe.extraction.native import convert_to_pdf

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = frozenset({".png", ".jpg", ".jpeg", ".tif", ".tiff", ".bmp", ".gif"})
OFFICE_EXTENSIONS = frozenset({".hwp", ".hwpx", ".doc", ".docx"})


def rendered_images_for(path: Path) -> list[Path]:
    """Rendered page images saved beside a document (``<stem>.png``, ``<stem>-page1.png``)."""
    if path.suffix.lower() in IMAGE_EXTENSIONS:
        return [path]
    found = []
    for ext in (".png", ".jpg", ".jpeg"):
        candidate = path.with_suffix(ext)
        if candidate.exists():
            found.append(candidate)
    found.extend(sorted(path.parent.glob(f"{path.stem}-page*.png")))
    return found


class OcrExtractor(TextExtractor):
    name = "tesseract"
    data_source = "generic-ocr"
    extensions = IMAGE_EXTENSIONS | OFFICE_EXTENSIONS | {".pdf"}

    def __init__(self, lang: str = "kor+eng", resolution: int = 200,
                 libreoffice_binary: str = "soffice", libreoffice_timeout: int = 120):
        self.lang = lang
        self.resolution = resolution
        self.libreoffice_binary = libreoffice_binary
        self.libreoffice_timeout = libreoffice_timeout

    def extract(self, path: Path) -> str:
        images = rendered_images_for(path)
        if images:
            text = "\n\n".join(self._ocr_image_file(img) for img in images)
        elif path.suffix.lower() == ".pdf":
            text = self._ocr_pdf(path)
        elif path.suffix.lower() in OFFICE_EXTENSIONS:
            with tempfile.TemporaryDirectory(prefix="ocr-render-") as tmp:
                pdf_path = convert_to_pdf(
                    path, Path(tmp), binary=self.libreoffice_binary, timeout=self.libreoffice_timeout,
                )
                text = self._ocr_pdf(pdf_path)
        else:
            raise ExtractionError(f"No rendered image available for {path.name}")
        return normalize_text(text)

    def _ocr_image_file(self, image_path: Path) -> str:
        try:
            with Image.open(image_path) as image:
                return self._ocr(image)
        except (UnidentifiedImageError, OSError) as e:
            raise ExtractionError(f"Unreadable image {image_path.name}: {e}") from e

    def _ocr_pdf(self, pdf_path: Path) -> str:
        try:
            with pdfplumber.open(pdf_path) as pdf:
                pages = [self._ocr(page.to_image(resolution=self.resolution).original) for page in pdf.pages]
        except ExtractionError:
            raise
        except Exception as e:
            raise ExtractionError(f"PDF rasterization failed: {e}") from e
        return "\n\n".join(pages)

    def _ocr(self, image: Image.Image) -> str:
        try:
            return pytesseract.image_to_string(image, lang=self.lang)
        except pytesseract.TesseractNotFoundError as e:
            raise ExtractionError("Tesseract binary not installed") from e
        except pytesseract.TesseractError as e:
            raise ExtractionError(f"Tesseract failed: {e}") from e
