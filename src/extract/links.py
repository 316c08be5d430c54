"""Hyperlink harvesting."""

from urllib.parse import urljoin

from bs4 import BeautifulSoup

from src.extract.models import Link


EMPTY_LINK_TEXT = "[link]"


def extract_links(html: str, base_url: str) -> list[Link]:
    """Collect every anchor with an href, resolved against the base URL.

    Links are deduplicated by resolved href, keeping the first occurrence.
    Anchors without visible text get the placeholder "[link]".

    Args:
        html: Document source.
        base_url: URL used to resolve relative hrefs.

    Returns:
        Links in document order.
    """
    soup = BeautifulSoup(html, "lxml")
    seen: set[str] = set()
    links: list[Link] = []

    for anchor in soup.select("a[href]"):
        href = str(anchor.get("href", "")).strip()
        if not href or href.lower().startswith("javascript:"):
            continue

        resolved = urljoin(base_url, href)
        if resolved in seen:
            continue
        seen.add(resolved)

        text = anchor.get_text(" ", strip=True)
        links.append(Link(text=text or EMPTY_LINK_TEXT, href=resolved))

    return links
