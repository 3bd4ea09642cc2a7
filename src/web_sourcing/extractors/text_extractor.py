"""Catch-all extractor for plain text and anything no other extractor claims."""

from __future__ import annotations

from datetime import datetime

from web_sourcing.classifier import ContentTypeClassifier
from web_sourcing.extractors.base import WILDCARD, BaseExtractor
from web_sourcing.models import ContentBlock, ExtractionOptions, ExtractionResult
from web_sourcing.utils import split_paragraphs

# Text types rendered as a single code block instead of paragraphs
CODE_LANGUAGES: dict[str, str] = {
    "application/javascript": "javascript",
    "application/typescript": "typescript",
    "text/css": "css",
    "text/x-python": "python",
    "text/x-java-source": "java",
    "text/x-c++src": "cpp",
    "text/x-csrc": "c",
    "text/x-csharp": "csharp",
    "application/x-yaml": "yaml",
    "application/xml": "xml",
    "text/xml": "xml",
}


class TextExtractor(BaseExtractor):
    """Fallback extractor that always matches.

    Text payloads become one text block per non-blank paragraph. Binary
    payloads produce no text; images are referenced by a single image block.
    """

    name = "text"
    content_types = (WILDCARD,)

    def extract(
        self,
        raw: str | bytes,
        url: str,
        options: ExtractionOptions | None = None,
        content_type: str | None = None,
        fetched_at: datetime | None = None,
    ) -> ExtractionResult:
        options = options or ExtractionOptions()
        timestamp = self._timestamp(fetched_at)
        info = (
            ContentTypeClassifier.from_mime_type(content_type)
            if content_type
            else ContentTypeClassifier.from_buffer(raw if isinstance(raw, bytes) else raw.encode("utf-8"))
        )
        metadata = self._base_metadata(url, info.mime_type)

        if not info.is_text:
            blocks: list[ContentBlock] = []
            if info.is_image and options.include_images:
                blocks.append(self._block("image", {"src": url, "alt": ""}, timestamp))
            return self._result(url, "", blocks, metadata)

        text = self._decode(raw).lstrip("﻿")
        language = CODE_LANGUAGES.get(info.mime_type)
        if language is not None:
            blocks = [self._block("code", {"language": language, "code": text.strip("\n")}, timestamp)] if text.strip() else []
            return self._result(url, text, blocks, metadata)

        paragraphs = split_paragraphs(text)
        blocks = [self._block("text", {"text": paragraph}, timestamp) for paragraph in paragraphs]
        if paragraphs and not metadata.title:
            first_line = paragraphs[0].splitlines()[0].lstrip("# ").strip()
            metadata.title = first_line[:120]
        return self._result(url, "\n\n".join(paragraphs), blocks, metadata)
