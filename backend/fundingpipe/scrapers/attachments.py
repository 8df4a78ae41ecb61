"""Attachment downloads outside the browser, reusing its session cookies."""

import logging
import re
from pathlib import Path
from urllib.parse import unquote, urlparse

import httpx

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"

# RFC 5987: filename*=UTF-8''%ED%8C%8C%EC%9D%BC.hwp
_FILENAME_STAR_RE = re.compile(r"filename\*\s*=\s*([\w-]+)'[^']*'([^;]+)", re.IGNORECASE)
_FILENAME_RE = re.compile(r"filename\s*=\s*(\"[^\"]*\"|[^;]+)", re.IGNORECASE)
_UNSAFE_CHARS_RE = re.compile(r"[\\/:*?\"<>|\x00-\x1f]")


def safe_filename(name: str) -> str:
    name = _UNSAFE_CHARS_RE.sub("_", name).strip().strip(".")
    return name or "attachment"


def filename_from_response(content_disposition: str | None, url: str) -> str:
    """Filename from Content-Disposition, falling back to the URL path."""
    if content_disposition:
        star = _FILENAME_STAR_RE.search(content_disposition)
        if star:
            encoding = star.group(1) or "utf-8"
            return safe_filename(unquote(star.group(2).strip().strip('"'), encoding=encoding))

        plain = _FILENAME_RE.search(content_disposition)
        if plain:
            raw = plain.group(1).strip().strip('"')
            # Korean servers often send percent-encoded or latin-1-mangled UTF-8
            decoded = unquote(raw)
            try:
                decoded = decoded.encode("latin-1").decode("utf-8")
            except (UnicodeEncodeError, UnicodeDecodeError):
                pass
            return safe_filename(decoded)

    return safe_filename(unquote(Path(urlparse(url).path).name))


def _unique_path(folder: Path, filename: str) -> Path:
    path = folder / filename
    counter = 1
    while path.exists():
        path = folder / f"{Path(filename).stem}_{counter}{Path(filename).suffix}"
        counter += 1
    return path


def download_attachments(
    urls: list[str],
    folder: str | Path,
    cookies: dict[str, str] | None = None,
    referer: str | None = None,
    client: httpx.Client | None = None,
    timeout: int = 60,
) -> tuple[list[str], list[str]]:
    """Download every URL into ``folder``.

    Returns (saved filenames, errors). One failed download never stops the rest.
    """
    folder = Path(folder)
    folder.mkdir(parents=True, exist_ok=True)

    headers = {"User-Agent": USER_AGENT}
    if referer:
        headers["Referer"] = referer

    owns_client = client is None
    if client is None:
        client = httpx.Client(timeout=timeout, follow_redirects=True)

    saved, errors = [], []
    try:
        for url in urls:
            try:
                response = client.get(url, headers=headers, cookies=cookies)
                response.raise_for_status()
                filename = filename_from_response(response.headers.get("content-disposition"), url)
                path = _unique_path(folder, filename)
                path.write_bytes(response.content)
                saved.append(path.name)
                logger.info(f"Downloaded attachment {path.name} ({len(response.content)} bytes)")
            except httpx.HTTPError as e:
                logger.warning(f"Failed to download {url}: {e}")
                errors.append(f"{url}: {e}")
    finally:
        if owns_client:
            client.close()

    return saved, errors
