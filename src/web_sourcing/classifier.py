"""Content type classification from headers, byte signatures and paths."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass

from web_sourcing.models import ContentTypeInfo
from web_sourcing.utils import get_path_extension

logger = logging.getLogger(__name__)

OCTET_STREAM = "application/octet-stream"

# Bytes inspected by the text/binary heuristic
TEXT_SAMPLE_SIZE = 1024
# Maximum share of NUL bytes tolerated in text
MAX_NUL_RATIO = 0.05


def _info(mime_type: str, extension: str, description: str, *facets: str) -> ContentTypeInfo:
    is_text = "text" in facets
    return ContentTypeInfo(
        mime_type=mime_type,
        extension=extension,
        is_binary=not is_text,
        is_text=is_text,
        is_archive="archive" in facets,
        is_document="document" in facets,
        is_image="image" in facets,
        is_audio="audio" in facets,
        is_video="video" in facets,
        is_font="font" in facets,
        description=description,
    )


_KNOWN_TYPES: list[ContentTypeInfo] = [
    # Documents
    _info("application/pdf", "pdf", "Adobe Portable Document Format (PDF)", "document"),
    _info("application/msword", "doc", "Microsoft Word Document (legacy)", "document"),
    _info(
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "docx",
        "Microsoft Word (OpenXML)",
        "document",
        "archive",
    ),
    _info("application/vnd.ms-excel", "xls", "Microsoft Excel (legacy)", "document"),
    _info(
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "xlsx",
        "Microsoft Excel (OpenXML)",
        "document",
        "archive",
    ),
    _info("application/vnd.ms-powerpoint", "ppt", "Microsoft PowerPoint (legacy)", "document"),
    _info(
        "application/vnd.openxmlformats-officedocument.presentationml.presentation",
        "pptx",
        "Microsoft PowerPoint (OpenXML)",
        "document",
        "archive",
    ),
    _info("text/plain", "txt", "Plain Text", "text", "document"),
    _info("text/markdown", "md", "Markdown", "text", "document"),
    _info("text/html", "html", "HTML Document", "text", "document"),
    _info("application/xhtml+xml", "xhtml", "XHTML Document", "text", "document"),
    _info("text/csv", "csv", "Comma Separated Values", "text", "document"),
    # Images
    _info("image/jpeg", "jpg", "JPEG Image", "image"),
    _info("image/png", "png", "PNG Image", "image"),
    _info("image/gif", "gif", "GIF Image", "image"),
    _info("image/webp", "webp", "WebP Image", "image"),
    _info("image/svg+xml", "svg", "Scalable Vector Graphics (SVG)", "text", "image"),
    # Archives
    _info("application/zip", "zip", "ZIP Archive", "archive"),
    _info("application/x-rar-compressed", "rar", "RAR Archive", "archive"),
    _info("application/x-tar", "tar", "Tape Archive (TAR)", "archive"),
    _info("application/gzip", "gz", "GZIP Compressed File", "archive"),
    _info("application/x-7z-compressed", "7z", "7-Zip Archive", "archive"),
    # Code and data
    _info("application/javascript", "js", "JavaScript", "text", "document"),
    _info("application/typescript", "ts", "TypeScript", "text", "document"),
    _info("text/css", "css", "Cascading Style Sheets (CSS)", "text", "document"),
    _info("text/x-python", "py", "Python Script", "text", "document"),
    _info("text/x-java-source", "java", "Java Source", "text", "document"),
    _info("text/x-c++src", "cpp", "C++ Source", "text", "document"),
    _info("text/x-csrc", "c", "C Source", "text", "document"),
    _info("text/x-csharp", "cs", "C# Source", "text", "document"),
    _info("application/json", "json", "JSON Data", "text", "document"),
    _info("application/ld+json", "jsonld", "JSON-LD Data", "text", "document"),
    _info("application/xml", "xml", "XML Document", "text", "document"),
    _info("text/xml", "xml", "XML Document", "text", "document"),
    _info("application/rss+xml", "rss", "RSS Feed", "text", "document"),
    _info("application/atom+xml", "atom", "Atom Feed", "text", "document"),
    _info("application/x-yaml", "yaml", "YAML Data", "text", "document"),
    # Audio and video
    _info("audio/mpeg", "mp3", "MP3 Audio", "audio"),
    _info("audio/wav", "wav", "Waveform Audio", "audio"),
    _info("video/mp4", "mp4", "MPEG-4 Video", "video"),
    _info("video/webm", "webm", "WebM Video", "video"),
    # Fonts
    _info("font/ttf", "ttf", "TrueType Font", "font"),
    _info("font/otf", "otf", "OpenType Font", "font"),
    _info("font/woff", "woff", "Web Open Font Format", "font"),
    _info("font/woff2", "woff2", "Web Open Font Format 2", "font"),
    # Executables
    _info("application/x-msdownload", "exe", "Windows Executable"),
    _info("application/x-executable", "elf", "ELF Executable"),
    _info("application/java-vm", "class", "Java Class File"),
    _info(OCTET_STREAM, "bin", "Binary Data"),
]

KNOWN_TYPES: dict[str, ContentTypeInfo] = {}
for _type in _KNOWN_TYPES:
    KNOWN_TYPES.setdefault(_type.mime_type, _type)

# Aliases commonly sent by servers
KNOWN_TYPES["text/javascript"] = KNOWN_TYPES["application/javascript"]
KNOWN_TYPES["application/x-javascript"] = KNOWN_TYPES["application/javascript"]
KNOWN_TYPES["text/yaml"] = KNOWN_TYPES["application/x-yaml"]
KNOWN_TYPES["audio/x-wav"] = KNOWN_TYPES["audio/wav"]
KNOWN_TYPES["audio/mp3"] = KNOWN_TYPES["audio/mpeg"]
KNOWN_TYPES["application/x-gzip"] = KNOWN_TYPES["application/gzip"]
KNOWN_TYPES["application/vnd.rar"] = KNOWN_TYPES["application/x-rar-compressed"]

EXTENSION_TYPES: dict[str, ContentTypeInfo] = {}
for _type in _KNOWN_TYPES:
    EXTENSION_TYPES.setdefault(_type.extension, _type)
EXTENSION_TYPES.update(
    {
        "jpeg": KNOWN_TYPES["image/jpeg"],
        "htm": KNOWN_TYPES["text/html"],
        "markdown": KNOWN_TYPES["text/markdown"],
        "yml": KNOWN_TYPES["application/x-yaml"],
        "h": KNOWN_TYPES["text/x-csrc"],
        "hpp": KNOWN_TYPES["text/x-c++src"],
        "tgz": KNOWN_TYPES["application/gzip"],
        "mjs": KNOWN_TYPES["application/javascript"],
        "tsx": KNOWN_TYPES["application/typescript"],
        "jsx": KNOWN_TYPES["application/javascript"],
    }
)


@dataclass(frozen=True)
class FileSignature:
    """A magic number: byte pattern with ``None`` wildcards at a fixed offset."""

    mime_type: str
    pattern: tuple[int | None, ...]
    offset: int = 0

    def matches(self, data: bytes) -> bool:
        end = self.offset + len(self.pattern)
        if len(data) < end:
            return False
        window = data[self.offset : end]
        return all(expected is None or expected == actual for expected, actual in zip(self.pattern, window))


def _sig(mime_type: str, pattern: str, offset: int = 0) -> FileSignature:
    """Build a signature from hex pairs, ``??`` marks a wildcard byte."""
    values = tuple(None if part == "??" else int(part, 16) for part in pattern.split())
    return FileSignature(mime_type, values, offset)


# First structural match wins, so longer/more specific patterns come first
FILE_SIGNATURES: list[FileSignature] = [
    _sig("application/pdf", "25 50 44 46 2D"),
    _sig("application/zip", "50 4B 03 04"),
    _sig("application/zip", "50 4B 05 06"),
    _sig("application/zip", "50 4B 07 08"),
    _sig("application/msword", "D0 CF 11 E0 A1 B1 1A E1"),
    _sig("image/png", "89 50 4E 47 0D 0A 1A 0A"),
    _sig("image/jpeg", "FF D8 FF"),
    _sig("image/gif", "47 49 46 38"),
    _sig("image/webp", "52 49 46 46 ?? ?? ?? ?? 57 45 42 50"),
    _sig("audio/wav", "52 49 46 46 ?? ?? ?? ?? 57 41 56 45"),
    _sig("audio/mpeg", "49 44 33"),
    _sig("audio/mpeg", "FF FB"),
    _sig("audio/mpeg", "FF F3"),
    _sig("video/mp4", "66 74 79 70", offset=4),
    _sig("video/webm", "1A 45 DF A3"),
    _sig("font/ttf", "00 01 00 00 00"),
    _sig("font/otf", "4F 54 54 4F 00"),
    _sig("font/woff", "77 4F 46 46"),
    _sig("font/woff2", "77 4F 46 32"),
    _sig("application/x-rar-compressed", "52 61 72 21 1A 07"),
    _sig("application/gzip", "1F 8B 08"),
    _sig("application/x-7z-compressed", "37 7A BC AF 27 1C"),
    _sig("application/x-executable", "7F 45 4C 46"),
    _sig("application/java-vm", "CA FE BA BE"),
    _sig("application/x-msdownload", "4D 5A"),
    # Byte order marks (UTF-8, UTF-16 BE, UTF-16 LE)
    _sig("text/plain", "EF BB BF"),
    _sig("text/plain", "FE FF"),
    _sig("text/plain", "FF FE"),
]

_HTML_RE = re.compile(rb"<!doctype\s+html|<(?:html|head|body|title)[\s>]", re.IGNORECASE)
_XML_RE = re.compile(rb"^\s*<\?xml", re.IGNORECASE)
_ARCHIVE_WORDS = ("zip", "archive", "compressed", "tar", "rar")
_DOCUMENT_WORDS = ("document", "word", "pdf", "excel", "sheet", "powerpoint", "presentation", "rtf")


def normalize_mime_type(value: str | None) -> str:
    """Strip parameters such as ``charset`` and lowercase a Content-Type value."""
    if not value:
        return ""
    return value.split(";", 1)[0].strip().lower()


class ContentTypeClassifier:
    """Identifies a payload's media type.

    Priority: a recognized ``Content-Type`` header, then byte signatures,
    then a text/binary heuristic over the first kilobyte, then the path
    extension, and finally ``application/octet-stream``.
    """

    @classmethod
    def from_mime_type(cls, mime_type: str) -> ContentTypeInfo:
        """Describe a declared MIME type, synthesizing a descriptor if it is unknown."""
        normalized = normalize_mime_type(mime_type)
        if not normalized:
            return KNOWN_TYPES[OCTET_STREAM]
        known = KNOWN_TYPES.get(normalized)
        if known is not None:
            return known
        return cls._synthesize(normalized)

    @classmethod
    def from_path(cls, path: str) -> ContentTypeInfo:
        """Classify by file extension of a path or URL."""
        extension = get_path_extension(path)
        return EXTENSION_TYPES.get(extension, KNOWN_TYPES[OCTET_STREAM])

    @classmethod
    def from_buffer(cls, data: bytes | None) -> ContentTypeInfo:
        """Classify raw bytes by magic number, falling back to a text heuristic."""
        if not data:
            return KNOWN_TYPES[OCTET_STREAM]

        for signature in FILE_SIGNATURES:
            if signature.matches(data):
                return KNOWN_TYPES[signature.mime_type]

        sniffed = cls._sniff_text(data[:TEXT_SAMPLE_SIZE])
        if sniffed is not None:
            return KNOWN_TYPES[sniffed]

        return KNOWN_TYPES[OCTET_STREAM]

    @classmethod
    def from_response(
        cls,
        url: str,
        headers: Mapping[str, str] | None = None,
        body: bytes | None = None,
    ) -> ContentTypeInfo:
        """Classify an HTTP response.

        Args:
            url: Request or final URL, used for the extension fallback.
            headers: Response headers. Lookup is case-insensitive.
            body: Response body, if available.

        Returns:
            The best matching ContentTypeInfo.
        """
        declared = ""
        for key, value in (headers or {}).items():
            if key.lower() == "content-type":
                declared = normalize_mime_type(value)
                break

        # Octet-stream says nothing about the payload, keep sniffing
        if declared and declared != OCTET_STREAM and declared in KNOWN_TYPES:
            return KNOWN_TYPES[declared]

        if body:
            detected = cls.from_buffer(body)
            if detected.mime_type != OCTET_STREAM:
                return detected

        by_path = cls.from_path(url)
        if by_path.mime_type != OCTET_STREAM:
            return by_path

        if declared and declared != OCTET_STREAM:
            logger.debug(f"Unknown declared content type {declared!r} for {url}")
            return cls._synthesize(declared)

        return KNOWN_TYPES[OCTET_STREAM]

    @staticmethod
    def _sniff_text(sample: bytes) -> str | None:
        """Return a text MIME type if the sample looks like text, else None."""
        if sample.count(0) / len(sample) >= MAX_NUL_RATIO:
            return None
        try:
            decoded = sample.decode("utf-8")
        except UnicodeDecodeError as e:
            # A multi-byte character may be cut at the sample boundary
            if e.start < len(sample) - 3:
                return None
            decoded = sample[: e.start].decode("utf-8")

        if _XML_RE.search(sample):
            return "application/xml"
        if _HTML_RE.search(sample):
            return "text/html"

        stripped = decoded.strip()
        if stripped[:1] in ("{", "["):
            try:
                json.loads(stripped)
            except ValueError:
                pass
            else:
                return "application/json"
        return "text/plain"

    @staticmethod
    def _synthesize(mime_type: str) -> ContentTypeInfo:
        """Build a descriptor for a MIME type missing from the known table."""
        prefix, _, subtype = mime_type.partition("/")
        # e.g. "vnd.example+json" -> "json", "x-foo" -> "foo"
        extension = subtype.rsplit("+", 1)[-1].rsplit(".", 1)[-1]
        if extension.startswith("x-"):
            extension = extension[2:]

        facets: list[str] = []
        if prefix == "text" or subtype.endswith(("+json", "+xml")):
            facets.append("text")
        if prefix in ("image", "audio", "video", "font"):
            facets.append(prefix)
        if any(word in subtype for word in _ARCHIVE_WORDS):
            facets.append("archive")
        if prefix == "text" or any(word in subtype for word in _DOCUMENT_WORDS):
            facets.append("document")
        if "font" in subtype and "font" not in facets:
            facets.append("font")

        return _info(mime_type, extension or "bin", f"{mime_type} content", *facets)
