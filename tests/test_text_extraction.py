"""Tests for native parsing, OCR fallback and the extraction engine."""

import struct
import zipfile
from unittest.mock import MagicMock, patch

import pytest
from PIL import Image

from fundingpipe.extraction.base import ExtractionError, normalize_text
from fundingpipe.extraction.cloud_editor import CloudEditorExtractor
from fundingpipe.extraction.engine import TextExtractionEngine
from fundingpipe.extraction.native import NativeDocumentParser, extract_hwpx_text
from fundingpipe.extraction.ocr import OcrExtractor, rendered_images_for

SECTION_XML = """<?xml version="1.0" encoding="UTF-8"?>
<hs:sec xmlns:hs="http://www.hancom.co.kr/hwpml/2011/section"
        xmlns:hp="http://www.hancom.co.kr/hwpml/2011/paragraph">
  {paragraphs}
</hs:sec>"""


def write_hwpx(path, *sections, compression=zipfile.ZIP_STORED):
    with zipfile.ZipFile(path, "w", compression=compression) as archive:
        archive.writestr("mimetype", "application/hwp+zip")
        for index, paragraphs in sections:
            body = "".join(
                f"<hp:p><hp:run><hp:t>{text}</hp:t></hp:run></hp:p>" for text in paragraphs
            )
            archive.writestr(f"Contents/section{index}.xml", SECTION_XML.format(paragraphs=body))
    return path


def damage_deflate_stream(path, member):
    """Overwrite the first deflate block header of one member with a reserved block type."""
    with zipfile.ZipFile(path) as archive:
        offset = archive.getinfo(member).header_offset
    data = bytearray(path.read_bytes())
    name_len, extra_len = struct.unpack("<HH", data[offset + 26:offset + 30])
    data[offset + 30 + name_len + extra_len] = 0xFF
    path.write_bytes(bytes(data))
    return path


def write_png(path):
    Image.new("RGB", (40, 20), "white").save(path)
    return path


class TestNormalizeText:
    def test_collapses_whitespace_and_blank_lines(self):
        assert normalize_text("가  나　다\r\n\n\n\n라 ") == "가 나 다\n\n라"


class TestNativeParser:
    def test_hwpx_sections_in_numeric_order(self, tmp_path):
        path = write_hwpx(tmp_path / "notice.hwpx", (1, ["둘째 구역"]), (0, ["첫 문단", "둘째 문단"]))
        text = extract_hwpx_text(path)
        assert text.index("첫 문단") < text.index("둘째 문단") < text.index("둘째 구역")

    def test_hwpx_paragraphs_become_lines(self, tmp_path):
        path = write_hwpx(tmp_path / "notice.hwpx", (0, ["사업목적", "인공지능 기술개발"]))
        assert NativeDocumentParser().extract(path) == "사업목적\n인공지능 기술개발"

    def test_corrupted_hwpx_raises(self, tmp_path):
        path = tmp_path / "broken.hwpx"
        path.write_bytes(b"definitely not a zip archive")
        with pytest.raises(ExtractionError, match="Not a valid HWPX"):
            NativeDocumentParser().extract(path)

    def test_damaged_deflate_stream_is_an_extraction_error(self, tmp_path):
        path = write_hwpx(tmp_path / "notice.hwpx", (0, ["사업목적"]), compression=zipfile.ZIP_DEFLATED)
        damage_deflate_stream(path, "Contents/section0.xml")
        with pytest.raises(ExtractionError, match="Damaged HWPX"):
            extract_hwpx_text(path)

    def test_hwpx_without_sections_raises(self, tmp_path):
        path = tmp_path / "empty.hwpx"
        with zipfile.ZipFile(path, "w") as archive:
            archive.writestr("mimetype", "application/hwp+zip")
        with pytest.raises(ExtractionError, match="no Contents/section"):
            extract_hwpx_text(path)

    def test_cp949_plain_text(self, tmp_path):
        path = tmp_path / "notice.txt"
        path.write_bytes("접수마감일 2025.03.15".encode("cp949"))
        assert NativeDocumentParser().extract(path) == "접수마감일 2025.03.15"

    def test_missing_libreoffice_is_an_extraction_error(self, tmp_path):
        path = tmp_path / "legacy.hwp"
        path.write_bytes(b"\xd0\xcf\x11\xe0")
        parser = NativeDocumentParser(libreoffice_binary=str(tmp_path / "no-such-soffice"))
        with pytest.raises(ExtractionError, match="LibreOffice binary not found"):
            parser.extract(path)


class TestOcr:
    def test_sibling_render_is_found(self, tmp_path):
        document = tmp_path / "notice.hwp"
        document.write_bytes(b"")
        render = write_png(tmp_path / "notice.png")
        assert rendered_images_for(document) == [render]

    def test_image_is_read_with_tesseract(self, tmp_path):
        image = write_png(tmp_path / "scan.png")
        with patch("pytesseract.image_to_string", return_value="지원대상  중소기업\n") as ocr:
            text = OcrExtractor(lang="kor").extract(image)
        assert text == "지원대상 중소기업"
        assert ocr.call_args.kwargs["lang"] == "kor"


class TestCloudEditor:
    def test_disabled(self, tmp_path):
        extractor = CloudEditorExtractor("https://editor.example", "a@example.com", "pw", enabled=False)
        with pytest.raises(ExtractionError, match="disabled"):
            extractor.extract(tmp_path / "notice.hwp")

    def test_missing_credentials(self, tmp_path):
        extractor = CloudEditorExtractor("https://editor.example", None, None, enabled=True)
        with pytest.raises(ExtractionError, match="credentials"):
            extractor.extract(tmp_path / "notice.hwp")


class TestEngine:
    def make_engine(self, tmp_path):
        return TextExtractionEngine([
            NativeDocumentParser(libreoffice_binary=str(tmp_path / "no-such-soffice")),
            CloudEditorExtractor("https://editor.example", None, None, enabled=False),
            OcrExtractor(libreoffice_binary=str(tmp_path / "no-such-soffice")),
        ])

    def test_native_success_stops_the_chain(self, tmp_path):
        path = write_hwpx(tmp_path / "notice.hwpx", (0, ["접수마감일 2025.03.15"]))
        result = self.make_engine(tmp_path).extract(path)
        assert result.data_source == "native-parse"
        assert [a.backend for a in result.attempts] == ["native"]
        assert result.attempts[0].char_count == len(result.text)

    def test_corrupted_hwpx_falls_back_to_ocr_of_rendered_page(self, tmp_path):
        path = tmp_path / "notice.hwpx"
        path.write_bytes(b"corrupted")
        write_png(tmp_path / "notice.png")

        with patch("pytesseract.image_to_string", return_value="지원대상: 중소기업"):
            result = self.make_engine(tmp_path).extract(path)

        assert result.text == "지원대상: 중소기업"
        assert result.data_source == "generic-ocr"
        assert [(a.backend, a.success) for a in result.attempts] == [
            ("native", False), ("cloud-editor", False), ("tesseract", True),
        ]
        assert "Not a valid HWPX" in result.attempts[0].error

    def test_empty_text_counts_as_failure(self, tmp_path):
        image = write_png(tmp_path / "blank.png")
        with patch("pytesseract.image_to_string", return_value="   "):
            result = self.make_engine(tmp_path).extract(image)
        assert not result.succeeded
        assert result.attempts[-1].error == "empty text"

    def test_missing_file(self, tmp_path):
        result = self.make_engine(tmp_path).extract(tmp_path / "gone.pdf")
        assert result.text is None
        assert result.attempts[0].error == "file not found"

    def test_unsupported_extension(self, tmp_path):
        path = tmp_path / "archive.zip"
        path.write_bytes(b"PK")
        result = self.make_engine(tmp_path).extract(path)
        assert not result.succeeded
        assert "no backend supports .zip" in result.error_summary

    def test_damaged_deflate_stream_falls_back_to_ocr(self, tmp_path):
        path = write_hwpx(
            tmp_path / "notice.hwpx", (0, ["지원대상: 중소기업"]), compression=zipfile.ZIP_DEFLATED,
        )
        damage_deflate_stream(path, "Contents/section0.xml")
        write_png(tmp_path / "notice.png")

        with patch("pytesseract.image_to_string", return_value="지원대상: 중소기업"):
            result = self.make_engine(tmp_path).extract(path)

        assert result.data_source == "generic-ocr"
        assert [a.backend for a in result.attempts] == ["native", "cloud-editor", "tesseract"]
        assert "Damaged HWPX" in result.attempts[0].error

    def test_unexpected_backend_exception_advances_the_chain(self, tmp_path):
        path = tmp_path / "notice.txt"
        path.write_text("사업 공고", encoding="utf-8")
        broken = MagicMock(data_source="native-parse")
        broken.name = "broken"
        broken.supports.return_value = True
        broken.extract.side_effect = ValueError("bad table layout")

        result = TextExtractionEngine([broken, NativeDocumentParser()]).extract(path)

        assert result.text == "사업 공고"
        assert result.attempts[0].error == "ValueError: bad table layout"
        assert [a.success for a in result.attempts] == [False, True]
