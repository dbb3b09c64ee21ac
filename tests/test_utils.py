from urllib.parse import parse_qs

import pytest

from HTTPConnect.exceptions import InvalidURL
from HTTPConnect.utils import (
    canonical_header_key, debug_user_agent, is_json_type, is_xml_type, resolve_url,
)


@pytest.mark.parametrize("address", [
    "example.com/path",
    "http://example.com/path",
    "HTTPS://example.com/path",
])
def test_resolve_url_reapplies_scheme(address: str) -> None:
    assert resolve_url(address, use_ssl=False).geturl() == "http://example.com/path"
    assert resolve_url(address, use_ssl=True).geturl() == "https://example.com/path"


def test_resolve_url_appends_query_params() -> None:
    url = resolve_url("example.com/get", False, {"param1": "value 1", "param2": "a&b"})

    assert url.path == "/get"
    assert parse_qs(url.query) == {"param1": ["value 1"], "param2": ["a&b"]}


def test_resolve_url_extends_existing_query() -> None:
    url = resolve_url("http://example.com/get?a=1", False, {"b": "2"})

    assert parse_qs(url.query) == {"a": ["1"], "b": ["2"]}


def test_resolve_url_keeps_port() -> None:
    url = resolve_url("127.0.0.1:8080/post", False)

    assert url.hostname == "127.0.0.1"
    assert url.port == 8080


@pytest.mark.parametrize("address", ["", "   ", "http://", "http://host:notaport/x", "http://bad host/"])
def test_resolve_url_rejects_malformed(address: str) -> None:
    with pytest.raises(InvalidURL):
        resolve_url(address, False)


@pytest.mark.parametrize("content_type", [
    "application/json",
    "application/json; charset=utf-8",
    "TEXT/JSON",
    "application/vnd.api+json",
    "application/json-patch",
])
def test_is_json_type(content_type: str) -> None:
    assert is_json_type(content_type)


@pytest.mark.parametrize("content_type", [None, "", "text/plain", "application/jsonx", "application/xml"])
def test_is_not_json_type(content_type) -> None:
    assert not is_json_type(content_type)


def test_is_xml_type() -> None:
    assert is_xml_type("application/xml")
    assert is_xml_type("text/xml; charset=utf-8")
    assert is_xml_type("application/atom+xml")
    assert not is_xml_type("application/json")


def test_canonical_header_key() -> None:
    assert canonical_header_key("content-type") == "Content-Type"
    assert canonical_header_key("X-REQUEST-ID") == "X-Request-Id"


def test_debug_user_agent_names_client() -> None:
    assert debug_user_agent().startswith("HTTPConnect/1.0.0; ")
