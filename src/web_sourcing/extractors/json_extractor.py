"""JSON content extractor."""

from __future__ import annotations

import json
from datetime import datetime

from web_sourcing.extractors.base import BaseExtractor
from web_sourcing.models import ExtractionOptions, ExtractionResult


class JSONExtractor(BaseExtractor):
    """Pretty-prints a JSON document into a single code block."""

    name = "json"
    content_types = ("application/json", "application/ld+json", "text/json")

    def can_handle(self, url: str, content_type: str | None = None) -> bool:
        if super().can_handle(url, content_type):
            return True
        # Vendor types such as application/vnd.api+json
        return bool(content_type) and content_type.split(";", 1)[0].strip().lower().endswith("+json")

    def extract(
        self,
        raw: str | bytes,
        url: str,
        options: ExtractionOptions | None = None,
        content_type: str | None = None,
        fetched_at: datetime | None = None,
    ) -> ExtractionResult:
        text = self._decode(raw)
        # Invalid JSON raises ValueError, reported by the registry as a failed extraction
        data = json.loads(text)
        pretty = json.dumps(data, indent=2, ensure_ascii=False)

        metadata = self._base_metadata(url, content_type or "application/json")
        if isinstance(data, dict):
            title = data.get("title") or data.get("name")
            if isinstance(title, str):
                metadata.title = title

        block = self._block("code", {"language": "json", "code": pretty}, self._timestamp(fetched_at))
        return self._result(url, pretty, [block], metadata)
