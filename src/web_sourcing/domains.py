"""Knowledge about well-known content domains."""

from __future__ import annotations

from dataclasses import dataclass, field

from web_sourcing.utils import extract_domain

DEFAULT_CATEGORY = "general"


@dataclass(frozen=True)
class DomainInfo:
    """Static description of a known site."""

    domain: str
    name: str
    categories: tuple[str, ...]
    default_content_type: str = "text/html"
    # Allowed subdomains; empty means any subdomain matches
    subdomains: tuple[str, ...] = field(default_factory=tuple)

    def matches(self, host: str) -> bool:
        if host == self.domain:
            return True
        if not host.endswith("." + self.domain):
            return False
        if not self.subdomains:
            return True
        subdomain = host[: -len(self.domain) - 1].split(".")[-1]
        return subdomain in self.subdomains

    @property
    def primary_category(self) -> str:
        return self.categories[0] if self.categories else DEFAULT_CATEGORY


KNOWN_DOMAINS: list[DomainInfo] = [
    DomainInfo(
        "github.com",
        "GitHub",
        ("code", "development", "version-control"),
        default_content_type="text/markdown",
        subdomains=("gist", "api"),
    ),
    DomainInfo("gitlab.com", "GitLab", ("code", "development", "devops"), default_content_type="text/markdown"),
    DomainInfo(
        "docs.microsoft.com",
        "Microsoft Docs",
        ("documentation", "microsoft", "cloud"),
        subdomains=("learn", "azure"),
    ),
    DomainInfo("learn.microsoft.com", "Microsoft Learn", ("documentation", "microsoft", "cloud")),
    DomainInfo("developer.mozilla.org", "MDN Web Docs", ("documentation", "web", "standards")),
    DomainInfo("docs.python.org", "Python Docs", ("documentation", "programming")),
    DomainInfo(
        "stackoverflow.com",
        "Stack Overflow",
        ("q&a", "programming"),
    ),
    DomainInfo("stackexchange.com", "Stack Exchange", ("q&a",)),
    DomainInfo("medium.com", "Medium", ("blogging", "articles")),
    DomainInfo("wikipedia.org", "Wikipedia", ("reference", "encyclopedia")),
    DomainInfo("arxiv.org", "arXiv", ("research", "papers")),
]


def detect_domain(url: str) -> DomainInfo | None:
    """Return the known domain entry a URL belongs to, if any."""
    host = extract_domain(url)
    if not host:
        return None
    for known in KNOWN_DOMAINS:
        if known.matches(host):
            return known
    return None


def category_for_url(url: str) -> str:
    """Primary content category of a URL, ``general`` for unknown sites."""
    known = detect_domain(url)
    return known.primary_category if known else DEFAULT_CATEGORY
