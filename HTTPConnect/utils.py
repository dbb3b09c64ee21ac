import platform
import re
import socket
from typing import Mapping, Optional
from urllib.parse import urlencode, urlparse, ParseResult

from .exceptions import InvalidURL

CLIENT_NAME = "HTTPConnect"
CLIENT_VERSION = "1.0.0"

CONTENT_TYPE = "Content-Type"
PLAIN_TEXT_TYPE = "text/plain; charset=utf-8"
JSON_CONTENT_TYPE = "application/json; charset=utf-8"
XML_CONTENT_TYPE = "application/xml; charset=utf-8"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

JSON_CHECK = re.compile(r"(application|text)/(json|.*\+json|json-.*)(;|$)", re.IGNORECASE)
XML_CHECK = re.compile(r"(application|text)/(xml|.*\+xml)(;|$)", re.IGNORECASE)

_SCHEME_PREFIX = re.compile(r"^https?://", re.IGNORECASE)


def is_json_type(content_type: Optional[str]) -> bool:
    return bool(content_type) and JSON_CHECK.search(content_type) is not None


def is_xml_type(content_type: Optional[str]) -> bool:
    return bool(content_type) and XML_CHECK.search(content_type) is not None


def has_https_scheme(address: str) -> bool:
    return address[:8].lower() == "https://"


def resolve_url(address: str, use_ssl: bool,
                query_params: Optional[Mapping[str, str]] = None) -> ParseResult:
    """Normalize an address and parse it.

    Any leading http:// or https:// is dropped and the scheme is reapplied from
    ``use_ssl``. Query parameters are percent-encoded and appended; their order
    on the wire is not guaranteed.
    """
    if not isinstance(address, str) or not address.strip():
        raise InvalidURL(f"Invalid URL {address!r}: address is empty")

    bare = _SCHEME_PREFIX.sub("", address.strip(), count=1)
    if query_params:
        separator = '&' if '?' in bare else '?'
        bare = f"{bare}{separator}{urlencode(dict(query_params))}"

    raw = ("https://" if use_ssl else "http://") + bare
    try:
        parsed = urlparse(raw)
        # .port raises ValueError for non-numeric or out of range ports
        parsed.port
    except ValueError as e:
        raise InvalidURL(f"Invalid URL {raw!r}: {e}") from e

    if not parsed.hostname:
        raise InvalidURL(f"Invalid URL {raw!r}: no host")
    if any(ch.isspace() for ch in parsed.netloc):
        raise InvalidURL(f"Invalid URL {raw!r}: whitespace in host")
    return parsed


def canonical_header_key(key: str) -> str:
    """'content-type' -> 'Content-Type'."""
    return "-".join(part[:1].upper() + part[1:].lower() for part in key.strip().split("-"))


def debug_user_agent() -> str:
    """User-Agent sent in debug mode: client, platform, processor and host."""
    processor = platform.processor() or platform.machine() or "unknown"
    return (f"{CLIENT_NAME}/{CLIENT_VERSION}; {platform.platform()}; "
            f"{processor}; {socket.gethostname()}")
