"""Document download and parsing.

Downloads land in ``uploads_dir`` under a name derived from the URL hash, so
re-submitting the same document reuses the same path. Parsing yields one
LangChain ``Document`` per page (PDF) or one for the whole file (HTML/text).
"""

from __future__ import annotations

import hashlib
import logging
import os
import time
import uuid
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import urlparse

import requests

from docqa.errors import DocumentDownloadError, SourceMissing

if TYPE_CHECKING:
    from langchain_core.documents import Document

logger = logging.getLogger(__name__)

_HTML_SUFFIXES = (".html", ".htm")


def saved_path_for(url: str, uploads_dir: str | Path) -> Path:
    """Local path a download of *url* is persisted to."""
    name = Path(urlparse(url).path).name or "document"
    digest = hashlib.md5(url.encode()).hexdigest()
    return Path(uploads_dir) / f"{digest}_{name}"


def download_document(
    url: str,
    uploads_dir: str | Path,
    *,
    timeout: float = 60.0,
    max_retries: int = 3,
) -> Path:
    """Download *url* into *uploads_dir* and return the saved path.

    The body is streamed to a ``.part`` file and renamed into place once
    complete, so a reader never observes a half-written document.
    Transient HTTP errors are retried with exponential backoff.
    """
    target = saved_path_for(url, uploads_dir)
    target.parent.mkdir(parents=True, exist_ok=True)
    partial = target.with_name(f"{target.name}.{uuid.uuid4().hex}.part")

    last_exc: Exception | None = None
    for attempt in range(1, max_retries + 1):
        try:
            with requests.get(url, stream=True, timeout=timeout) as resp:
                resp.raise_for_status()
                with open(partial, "wb") as fh:
                    for block in resp.iter_content(chunk_size=64 * 1024):
                        fh.write(block)
            break
        except requests.RequestException as exc:
            last_exc = exc
            if attempt < max_retries:
                wait = 2 ** attempt
                logger.warning("Retry %d/%d for %s (wait %ds): %s", attempt, max_retries, url, wait, exc)
                time.sleep(wait)
    else:
        partial.unlink(missing_ok=True)
        raise DocumentDownloadError(f"Failed to download {url} after {max_retries} attempts") from last_exc

    os.replace(partial, target)
    logger.info("Downloaded %s → %s (%d bytes)", url, target, target.stat().st_size)
    return target


def _sniff(path: Path) -> str:
    suffix = path.suffix.lower()
    with open(path, "rb") as fh:
        head = fh.read(512)
    if suffix == ".pdf" or head.startswith(b"%PDF-"):
        return "pdf"
    lowered = head.lstrip().lower()
    if suffix in _HTML_SUFFIXES or lowered.startswith((b"<!doctype html", b"<html")):
        return "html"
    return "text"


def _load_html(path: Path) -> list[Document]:
    from bs4 import BeautifulSoup
    from langchain_core.documents import Document

    soup = BeautifulSoup(path.read_bytes(), "html.parser")
    for tag in soup(["script", "style", "nav", "footer", "noscript", "iframe"]):
        tag.decompose()
    title = soup.title.string.strip() if soup.title and soup.title.string else ""
    text = soup.get_text(separator="\n", strip=True)
    return [Document(page_content=text, metadata={"title": title})]


def load_document(path: str | Path, *, source: str | None = None) -> list[Document]:
    """Parse the file at *path* into page/section documents.

    Parameters
    ----------
    path:
        Local file written by :func:`download_document` (or an upload).
    source:
        Identity recorded as ``metadata["source"]``; defaults to the path.

    Raises
    ------
    SourceMissing
        If nothing exists at *path*.
    """
    path = Path(path)
    if not path.is_file():
        raise SourceMissing(f"Document file not found at path: {path}")

    kind = _sniff(path)
    if kind == "pdf":
        from langchain_community.document_loaders import PyPDFLoader

        docs = PyPDFLoader(str(path)).load()
    elif kind == "html":
        docs = _load_html(path)
    else:
        from langchain_community.document_loaders import TextLoader

        docs = TextLoader(str(path), autodetect_encoding=True).load()

    for doc in docs:
        doc.metadata["source"] = source or str(path)
    logger.info("Parsed %s as %s: %d section(s)", path.name, kind, len(docs))
    return docs
