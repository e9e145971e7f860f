"""Locating and downloading a site's favicon."""

from __future__ import annotations

import posixpath
from html.parser import HTMLParser
from typing import Callable, Optional, Union
from urllib.parse import quote, urlsplit, urlunsplit

_PATH_SAFE = "/%:@!$&'()*+,;="


class _IconLinkParser(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.hrefs: list[str] = []

    def handle_starttag(self, tag: str, attrs: list[tuple[str, Optional[str]]]) -> None:
        if tag != "link":
            return
        values = dict(attrs)
        if "rel" not in values or "icon" not in (values["rel"] or "").lower():
            return
        if "href" in values:
            self.hrefs.append(values["href"] or "")


def _path_join(segments: list[str]) -> str:
    present = [segment for segment in segments if segment]
    if not present:
        return ""
    cleaned = posixpath.normpath("/".join(present))
    if cleaned.startswith("//") and not cleaned.startswith("///"):
        cleaned = cleaned[1:]
    return cleaned


def _join_url(base: str, element: str) -> str:
    parts = urlsplit(base)
    segments = [parts.path, element]
    if not segments[0].startswith("/"):
        segments[0] = "/" + segments[0]
        joined = _path_join(segments)[1:]
    else:
        joined = _path_join(segments)
    if segments[-1].endswith("/") and not joined.endswith("/"):
        joined += "/"
    if parts.netloc and joined and not joined.startswith("/"):
        joined = "/" + joined
    return urlunsplit(
        (parts.scheme, parts.netloc, quote(joined, safe=_PATH_SAFE), parts.query, parts.fragment)
    )


def find_icon_urls(domain: str, body: Union[bytes, str]) -> list[str]:
    """List candidate favicon URLs: icon links in the page, then /favicon.ico."""
    text = body.decode("utf-8", errors="replace") if isinstance(body, bytes) else body
    default = _join_url(domain, "/favicon.ico")
    parser = _IconLinkParser()
    parser.feed(text)
    parser.close()
    return [_join_url(domain, href) for href in parser.hrefs] + [default]


def get_favicon_bytes(
    fetch: Callable[[str], bytes], domain: str, body: Union[bytes, str]
) -> Optional[bytes]:
    """Fetch the first candidate favicon that downloads; None if none does."""
    for url in find_icon_urls(domain, body):
        try:
            return fetch(url)
        except (OSError, ValueError):
            continue
    return None