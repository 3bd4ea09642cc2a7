"""HTML content extractor for web-sourcing."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from web_sourcing.extractors.base import BaseExtractor
from web_sourcing.models import (
    ContentBlock,
    ExtractionOptions,
    ExtractionResult,
    StructuredData,
    WebContentMetadata,
)
from web_sourcing.utils import clean_html_text, is_valid_url

logger = logging.getLogger(__name__)

HEADING_TAGS = ("h1", "h2", "h3", "h4", "h5", "h6")
TEXT_TAGS = ("p", "li", "blockquote", "dd", "dt", "figcaption")
# Elements whose descendants are consumed together with the element itself
CONTAINER_TAGS = HEADING_TAGS + TEXT_TAGS + ("pre", "table")
BLOCK_TAGS = CONTAINER_TAGS + ("img",)

DESCRIPTION_LENGTH = 200


class HTMLExtractor(BaseExtractor):
    """HTML content extractor using BeautifulSoup.

    Splits the main content of a page into heading-scoped text blocks,
    code blocks for ``<pre>`` elements and image blocks, in reading order.
    """

    name = "html"
    content_types = ("text/html", "application/xhtml+xml")

    # Candidate containers for the main content, the largest match wins
    CONTENT_SELECTORS = [
        "article",
        "main",
        "[role='main']",
        ".article",
        ".content",
        ".post",
        ".entry",
        ".story",
        ".article-body",
        ".post-content",
        ".entry-content",
        "#main-content",
    ]

    # Boilerplate removed when only the main content is wanted
    REMOVE_SELECTORS = [
        "nav",
        "header",
        "footer",
        "aside",
        ".sidebar",
        ".advertisement",
        ".ads",
        ".cookie-banner",
        ".nav",
        ".menu",
        ".social-share",
        ".related-articles",
    ]

    # Never content
    STRIP_TAGS = ["script", "style", "noscript", "template", "iframe"]

    def extract(
        self,
        raw: str | bytes,
        url: str,
        options: ExtractionOptions | None = None,
        content_type: str | None = None,
        fetched_at: datetime | None = None,
    ) -> ExtractionResult:
        """Extract blocks and metadata from an HTML document.

        Args:
            raw: HTML payload.
            url: URL the page was fetched from, used to resolve relative links.
            options: Extraction switches.
            content_type: Detected MIME type.
            fetched_at: Fetch timestamp copied into every block.

        Returns:
            ExtractionResult with ordered blocks.
        """
        options = options or ExtractionOptions()
        html = self._decode(raw)
        timestamp = self._timestamp(fetched_at)
        soup = BeautifulSoup(html, "lxml")

        metadata = self._base_metadata(url, content_type or "text/html")
        if options.include_metadata:
            self._extract_metadata(soup, url, metadata)
        if options.include_structured_data:
            structured = self._extract_structured_data(soup)
            if not structured.is_empty():
                metadata.structured_data = structured

        for element in soup.find_all(self.STRIP_TAGS):
            element.decompose()

        content = self._select_content(soup, options.main_content_only)

        if options.include_links:
            metadata.links = self._extract_links(content, url)

        blocks = self._content_to_blocks(content, url, options, timestamp)
        text = self._content_text(content)

        if not metadata.title:
            heading = content.find("h1")
            if heading:
                metadata.title = clean_html_text(heading.get_text(" "))
        if not metadata.description and text:
            flat = " ".join(text.split())
            metadata.description = (
                flat[:DESCRIPTION_LENGTH] + "..." if len(flat) > DESCRIPTION_LENGTH else flat
            )

        return self._result(url, text, blocks, metadata, html=html)

    def _select_content(self, soup: BeautifulSoup, main_content_only: bool) -> Tag | BeautifulSoup:
        """Find the element holding the main content of the page."""
        if not main_content_only:
            return soup.body or soup

        for selector in self.REMOVE_SELECTORS:
            for element in soup.select(selector):
                element.decompose()

        best: Tag | None = None
        best_length = 0
        for selector in self.CONTENT_SELECTORS:
            for candidate in soup.select(selector):
                length = len(candidate.get_text(strip=True))
                if length > best_length:
                    best, best_length = candidate, length

        if best is not None:
            return best

        # Fall back to body if no content container found
        return soup.body or soup

    def _extract_metadata(self, soup: BeautifulSoup, url: str, metadata: WebContentMetadata) -> None:
        """Fill metadata from the document head.

        OpenGraph values take precedence over plain ``<title>`` and
        ``<meta name=...>`` values.
        """
        title_tag = soup.find("title")
        if title_tag:
            metadata.title = clean_html_text(title_tag.get_text())

        html_tag = soup.find("html")
        if isinstance(html_tag, Tag) and html_tag.get("lang"):
            metadata.language = str(html_tag["lang"]).split("-")[0].lower()

        og_description: str | None = None
        for meta in soup.find_all("meta"):
            name = (meta.get("name") or "").lower()
            property_attr = (meta.get("property") or "").lower()
            content = (meta.get("content") or "").strip()
            if not content:
                continue

            if property_attr == "og:title":
                metadata.title = content
            elif name == "description":
                metadata.description = content
            elif property_attr == "og:description":
                og_description = content
            elif name == "author" or property_attr == "article:author":
                metadata.author = content
            elif name == "keywords":
                metadata.tags.extend(k.strip() for k in content.split(",") if k.strip())
            elif property_attr == "article:tag":
                metadata.tags.append(content)
            elif property_attr == "article:published_time" or name in ("date", "pubdate"):
                metadata.published_date = content
            elif property_attr in ("article:modified_time", "og:updated_time"):
                metadata.modified_date = content
            elif property_attr == "og:site_name":
                metadata.site_name = content
            elif property_attr == "og:image":
                metadata.image = urljoin(url, content)
            elif property_attr == "og:locale" and not metadata.language:
                metadata.language = content.split("_")[0].lower()

        if not metadata.description and og_description:
            metadata.description = og_description

        canonical = soup.find("link", rel="canonical")
        if isinstance(canonical, Tag) and canonical.get("href"):
            metadata.canonical_url = urljoin(url, str(canonical["href"]))

    def _extract_structured_data(self, soup: BeautifulSoup) -> StructuredData:
        """Collect JSON-LD, OpenGraph, Twitter card and microdata payloads."""
        data = StructuredData()

        for script in soup.find_all("script", type="application/ld+json"):
            payload = script.string or script.get_text()
            if not payload or not payload.strip():
                continue
            try:
                data.json_ld.append(json.loads(payload))
            except ValueError:
                logger.debug("Skipping malformed JSON-LD block")

        for meta in soup.find_all("meta"):
            key = (meta.get("property") or meta.get("name") or "").lower()
            content = meta.get("content")
            if not content:
                continue
            if key.startswith("og:"):
                data.opengraph[key[3:]] = content
            elif key.startswith("twitter:"):
                data.twitter[key[8:]] = content

        for item in soup.find_all(attrs={"itemscope": True}):
            if item.find_parent(attrs={"itemscope": True}):
                continue
            properties: dict[str, Any] = {}
            for prop in item.find_all(attrs={"itemprop": True}):
                value = prop.get("content") or prop.get("href") or prop.get("src") or prop.get_text(" ", strip=True)
                properties[str(prop["itemprop"])] = value
            data.microdata.append({"type": item.get("itemtype"), "properties": properties})

        return data

    def _content_to_blocks(
        self,
        content: Tag | BeautifulSoup,
        url: str,
        options: ExtractionOptions,
        timestamp: datetime,
    ) -> list[ContentBlock]:
        """Convert content into blocks, one text block per heading section."""
        blocks: list[ContentBlock] = []
        paragraphs: list[str] = []
        heading: str | None = None

        def flush() -> None:
            if paragraphs:
                blocks.append(self._block("text", {"text": "\n\n".join(paragraphs)}, timestamp, heading))
                paragraphs.clear()

        for element in content.find_all(list(BLOCK_TAGS)):
            if self._inside_container(element, content):
                continue
            tag = element.name

            if tag in HEADING_TAGS:
                flush()
                heading = clean_html_text(element.get_text(" ")) or heading
            elif tag in TEXT_TAGS:
                text = clean_html_text(element.get_text(" "))
                if text:
                    paragraphs.append(text)
            elif tag == "pre":
                flush()
                code = element.get_text()
                if code.strip():
                    language = self._code_language(element)
                    blocks.append(self._block("code", {"language": language, "code": code.strip("\n")}, timestamp, heading))
            elif tag == "table":
                flush()
                rows = []
                for row in element.find_all("tr"):
                    cells = [clean_html_text(cell.get_text(" ")) for cell in row.find_all(["th", "td"])]
                    if any(cells):
                        rows.append(" | ".join(cells))
                if rows:
                    blocks.append(self._block("text", {"text": "\n".join(rows)}, timestamp, heading, format="table"))
            elif tag == "img" and options.include_images:
                image = self._image_payload(element, url)
                if image:
                    flush()
                    blocks.append(self._block("image", image, timestamp, heading))

        flush()

        if not blocks:
            # Pages without paragraph markup still carry text
            text = self._content_text(content)
            if text:
                blocks.append(self._block("text", {"text": text}, timestamp))

        return blocks

    @staticmethod
    def _inside_container(element: Tag, root: Tag | BeautifulSoup) -> bool:
        for parent in element.parents:
            if parent is root:
                return False
            if parent.name in CONTAINER_TAGS:
                # Images inside paragraphs still become image blocks
                return not (element.name == "img" and parent.name in TEXT_TAGS)
        return False

    @staticmethod
    def _code_language(pre: Tag) -> str | None:
        candidates = [pre]
        code = pre.find("code")
        if isinstance(code, Tag):
            candidates.append(code)
        for candidate in candidates:
            for cls in candidate.get("class") or []:
                for prefix in ("language-", "lang-"):
                    if cls.startswith(prefix):
                        return cls[len(prefix) :]
        return None

    @staticmethod
    def _image_payload(img: Tag, url: str) -> dict[str, Any] | None:
        src = img.get("src") or img.get("data-src")
        if not src:
            return None
        payload: dict[str, Any] = {
            "src": urljoin(url, str(src)),
            "alt": clean_html_text(str(img.get("alt") or "")),
        }
        figure = img.find_parent("figure")
        if figure:
            caption = figure.find("figcaption")
            if caption:
                payload["caption"] = clean_html_text(caption.get_text(" "))
        return payload

    @staticmethod
    def _extract_links(content: Tag | BeautifulSoup, url: str) -> list[str]:
        links: list[str] = []
        seen: set[str] = set()
        for anchor in content.find_all("a", href=True):
            href = urljoin(url, str(anchor["href"])).split("#", 1)[0]
            if is_valid_url(href) and href not in seen:
                seen.add(href)
                links.append(href)
        return links

    @staticmethod
    def _content_text(content: Tag | BeautifulSoup) -> str:
        lines = (line.strip() for line in content.get_text("\n").splitlines())
        return "\n".join(" ".join(line.split()) for line in lines if line)
