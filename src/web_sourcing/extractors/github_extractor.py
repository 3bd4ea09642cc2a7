"""GitHub page extractor."""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime
from urllib.parse import urlparse

from bs4 import BeautifulSoup, Tag

from web_sourcing.extractors.html_extractor import HTMLExtractor
from web_sourcing.models import ExtractionOptions, ExtractionResult
from web_sourcing.utils import get_path_extension

logger = logging.getLogger(__name__)

_ISSUE_RE = re.compile(r"^/[^/]+/[^/]+/issues/\d+")
_PULL_RE = re.compile(r"^/[^/]+/[^/]+/pull/\d+")
_REPO_RE = re.compile(r"^/[^/]+/[^/]+/?$")

FILE_LANGUAGES = {
    "py": "python",
    "js": "javascript",
    "mjs": "javascript",
    "ts": "typescript",
    "tsx": "typescript",
    "rb": "ruby",
    "rs": "rust",
    "go": "go",
    "java": "java",
    "kt": "kotlin",
    "c": "c",
    "h": "c",
    "cpp": "cpp",
    "cs": "csharp",
    "sh": "bash",
    "md": "markdown",
    "yml": "yaml",
    "yaml": "yaml",
    "json": "json",
    "toml": "toml",
}


def classify_github_path(url: str) -> tuple[str, str | None, str | None]:
    """Return ``(page_type, owner, repo)`` for a github.com URL.

    Page types: ``file``, ``pull-request``, ``issue``, ``repository`` and
    ``page`` for everything else.
    """
    path = urlparse(url).path
    parts = [part for part in path.split("/") if part]
    owner = parts[0] if parts else None
    repo = parts[1] if len(parts) > 1 else None

    if "/blob/" in path:
        return "file", owner, repo
    if _PULL_RE.match(path):
        return "pull-request", owner, repo
    if _ISSUE_RE.match(path):
        return "issue", owner, repo
    if _REPO_RE.match(path):
        return "repository", owner, repo
    return "page", owner, repo


class GitHubExtractor(HTMLExtractor):
    """Extractor for github.com pages.

    Prefers the rendered README or comment bodies as main content, and turns
    file views into a single code block.
    """

    name = "github"
    domains = ("github.com",)

    CONTENT_SELECTORS = [
        "article.markdown-body",
        "#readme",
        ".js-comment-body",
        ".comment-body",
        ".markdown-body",
        *HTMLExtractor.CONTENT_SELECTORS,
    ]

    def extract(
        self,
        raw: str | bytes,
        url: str,
        options: ExtractionOptions | None = None,
        content_type: str | None = None,
        fetched_at: datetime | None = None,
    ) -> ExtractionResult:
        page_type, owner, repo = classify_github_path(url)
        html = self._decode(raw)
        # Topics and file lines live outside the main content container
        soup = BeautifulSoup(html, "lxml")
        topics = [a.get_text(strip=True) for a in soup.select("a.topic-tag") if a.get_text(strip=True)]
        code = self._file_code(soup) if page_type == "file" else None

        result = super().extract(html, url, options, content_type, fetched_at)
        metadata = result.metadata
        metadata.page_type = page_type
        metadata.category = "code"
        if owner and not metadata.author:
            metadata.author = owner
        for topic in topics:
            if topic not in metadata.tags:
                metadata.tags.append(topic)

        if code is None:
            return result

        language = FILE_LANGUAGES.get(get_path_extension(url)) or get_path_extension(url) or None
        block = self._block(
            "code",
            {"language": language, "code": code},
            self._timestamp(fetched_at),
            repository=f"{owner}/{repo}",
        )
        return self._result(url, code, [block], metadata, html=html)

    @staticmethod
    def _file_code(soup: BeautifulSoup) -> str | None:
        """Find the source lines of a file view, if the page has any."""
        # Current React UI embeds the raw lines as JSON
        for script in soup.find_all("script", attrs={"data-target": "react-app.embeddedData"}):
            try:
                payload = json.loads(script.string or "")
            except ValueError:
                continue
            if not isinstance(payload, dict):
                continue
            lines = (payload.get("payload") or {}).get("blob", {}).get("rawLines")
            if isinstance(lines, list):
                return "\n".join(str(line) for line in lines)

        textarea = soup.find("textarea", id="read-only-cursor-text-area")
        if isinstance(textarea, Tag):
            return textarea.get_text()

        # Classic table based file view
        cells = soup.select("td.blob-code")
        if cells:
            return "\n".join(cell.get_text() for cell in cells)

        logger.debug("No file lines found on GitHub file page")
        return None
