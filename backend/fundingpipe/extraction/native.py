"""Native document parsers for HWPX, HWP, PDF and plain text attachments.

HWPX is a ZIP of OWPML XML parts; body text lives in ``Contents/section*.xml``
as ``<hp:t>`` runs grouped into ``<hp:p>`` paragraphs. Legacy binary HWP has no
usable Python reader, so it is converted to PDF with headless LibreOffice and
read like any other PDF.
"""

import logging
import re
import subprocess
import tempfile
import zipfile
import zlib
from pathlib import Path

import pdfplumber
from lxml import etree

from fundingpipe.extraction.base import ExtractionError, TextExtractor, normalize_text

logger = logging.getLogger(__name__)

_SECTION_RE = re.compile(r"^Contents/section(\d+)\.xml$")


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _collect_runs(elem, out: list[str]) -> None:
    if not isinstance(elem.tag, str):
        return
    name = _local_name(elem.tag)
    if name == "t":
        out.append("".join(elem.itertext()))
        return
    for child in elem:
        _collect_runs(child, out)
    if name == "p":
        out.append("\n")


def extract_hwpx_text(path: Path) -> str:
    try:
        with zipfile.ZipFile(path) as archive:
            sections = []
            for name in archive.namelist():
                match = _SECTION_RE.match(name)
                if match:
                    sections.append((int(match.group(1)), name))
            sections.sort()
            if not sections:
                raise ExtractionError("HWPX archive has no Contents/section*.xml parts")

            runs: list[str] = []
            for _, name in sections:
                root = etree.fromstring(archive.read(name))
                _collect_runs(root, runs)
    except zipfile.BadZipFile as e:
        raise ExtractionError(f"Not a valid HWPX archive: {e}") from e
    except (zlib.error, NotImplementedError) as e:
        raise ExtractionError(f"Damaged HWPX archive: {e}") from e
    except RuntimeError as e:
        # zipfile raises RuntimeError for encrypted members
        raise ExtractionError(f"Unreadable HWPX archive: {e}") from e
    except OSError as e:
        raise ExtractionError(f"Cannot read HWPX file: {e}") from e
    except etree.XMLSyntaxError as e:
        raise ExtractionError(f"Malformed HWPX section XML: {e}") from e

    return "".join(runs)


def extract_pdf_text(path: Path) -> str:
    try:
        with pdfplumber.open(path) as pdf:
            pages = [page.extract_text() or "" for page in pdf.pages]
    except Exception as e:
        raise ExtractionError(f"PDF parse failed: {e}") from e
    return "\n\n".join(p for p in pages if p)


def convert_to_pdf(path: Path, outdir: Path, binary: str = "soffice", timeout: int = 120) -> Path:
    """Convert an office document to PDF with headless LibreOffice."""
    cmd = [binary, "--headless", "--convert-to", "pdf", "--outdir", str(outdir), str(path)]
    try:
        result = subprocess.run(cmd, capture_output=True, timeout=timeout, check=False)
    except FileNotFoundError as e:
        raise ExtractionError(f"LibreOffice binary not found: {binary}") from e
    except subprocess.TimeoutExpired as e:
        raise ExtractionError(f"LibreOffice conversion timed out after {timeout}s") from e

    pdf_path = outdir / f"{path.stem}.pdf"
    if result.returncode != 0 or not pdf_path.exists():
        stderr = result.stderr.decode("utf-8", errors="replace")[:300]
        raise ExtractionError(f"LibreOffice conversion failed (exit {result.returncode}): {stderr}")
    return pdf_path


class NativeDocumentParser(TextExtractor):
    name = "native"
    data_source = "native-parse"
    extensions = frozenset({".hwpx", ".hwp", ".pdf", ".txt"})

    def __init__(self, libreoffice_binary: str = "soffice", libreoffice_timeout: int = 120):
        self.libreoffice_binary = libreoffice_binary
        self.libreoffice_timeout = libreoffice_timeout

    def extract(self, path: Path) -> str:
        suffix = path.suffix.lower()
        if suffix == ".hwpx":
            text = extract_hwpx_text(path)
        elif suffix == ".pdf":
            text = extract_pdf_text(path)
        elif suffix == ".hwp":
            text = self._extract_hwp(path)
        elif suffix == ".txt":
            text = self._read_plain(path)
        else:
            raise ExtractionError(f"Unsupported file type: {suffix}")
        return normalize_text(text)

    def _extract_hwp(self, path: Path) -> str:
        with tempfile.TemporaryDirectory(prefix="hwp2pdf-") as tmp:
            pdf_path = convert_to_pdf(
                path, Path(tmp), binary=self.libreoffice_binary, timeout=self.libreoffice_timeout,
            )
            logger.debug(f"Converted {path.name} to PDF via LibreOffice")
            return extract_pdf_text(pdf_path)

    @staticmethod
    def _read_plain(path: Path) -> str:
        try:
            raw = path.read_bytes()
        except OSError as e:
            raise ExtractionError(f"Cannot read text file: {e}") from e
        for encoding in ("utf-8", "cp949"):
            try:
                return raw.decode(encoding)
            except UnicodeDecodeError:
                continue
        raise ExtractionError("Plain text is neither UTF-8 nor CP949")
