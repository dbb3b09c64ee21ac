import io
import json
import logging
from dataclasses import dataclass
from typing import List

import pytest

from HTTPConnect.codec import Body, BodyKind, encode_body
from HTTPConnect.exceptions import BodyReadError, EncodeError
from HTTPConnect.utils import JSON_CONTENT_TYPE, XML_CONTENT_TYPE
from tests.utils import DESIRED_DATA, FakeStream


@dataclass
class Account:
    id: str
    country: str
    names: List[str]
    active: bool = True


@pytest.mark.parametrize("value, kind", [
    (None, BodyKind.NONE),
    (b"raw", BodyKind.BYTES),
    (bytearray(b"raw"), BodyKind.BYTES),
    ("text", BodyKind.TEXT),
    (io.BytesIO(b"stream"), BodyKind.STREAM),
    ({"a": 1}, BodyKind.STRUCTURED),
    ([1, 2], BodyKind.STRUCTURED),
    (Account("1", "GB", []), BodyKind.STRUCTURED),
    (42, BodyKind.SCALAR),
])
def test_body_kind_is_fixed_at_construction(value, kind) -> None:
    assert Body.of(value).kind is kind


def test_stream_is_drained() -> None:
    assert encode_body(Body.of(io.StringIO(DESIRED_DATA))) == DESIRED_DATA.encode()


def test_stream_read_failure() -> None:
    body = Body.of(FakeStream(read_error=OSError("boom")))

    with pytest.raises(BodyReadError):
        encode_body(body)


def test_bytes_and_text_ignore_content_type() -> None:
    assert encode_body(Body.of(DESIRED_DATA.encode()), "text/plain") == DESIRED_DATA.encode()
    assert encode_body(Body.of("héllo"), None) == "héllo".encode("utf-8")


def test_structured_value_with_json_content_type() -> None:
    payload = {"success": True, "data": "done!"}

    assert encode_body(Body.of(payload), JSON_CONTENT_TYPE) == json.dumps(payload).encode()


def test_dataclass_is_marshalled_as_json() -> None:
    account = Account("1", "GB", ["Sam"])

    encoded = encode_body(Body.of(account), "application/vnd.api+json")

    assert json.loads(encoded) == {"id": "1", "country": "GB", "names": ["Sam"], "active": True}


def test_unmarshallable_json_raises_encode_error() -> None:
    with pytest.raises(EncodeError):
        encode_body(Body.of({"when": object()}), JSON_CONTENT_TYPE)


def test_record_with_xml_content_type() -> None:
    encoded = encode_body(Body.of(Account("1", "GB", ["Sam", "Alex"])), XML_CONTENT_TYPE)

    assert encoded == (b"<Account><id>1</id><country>GB</country>"
                       b"<names>Sam</names><names>Alex</names><active>true</active></Account>")


def test_sequence_with_xml_content_type_is_dropped() -> None:
    assert encode_body(Body.of([1, 2]), XML_CONTENT_TYPE) == b""


def test_structured_value_without_matching_content_type_is_dropped(caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="HTTPConnect.codec"):
        assert encode_body(Body.of({"a": 1}), "text/plain") == b""

    assert "Dropping structured body" in caplog.text


def test_scalar_is_dropped() -> None:
    assert encode_body(Body.of(42), JSON_CONTENT_TYPE) == b""


def test_form_data_used_only_without_body() -> None:
    form = [("name", "Sam"), ("tag", "a"), ("tag", "b c")]

    assert encode_body(Body.of(None), None, form) == b"name=Sam&tag=a&tag=b+c"
    assert encode_body(Body.of("explicit"), None, form) == b"explicit"


def test_no_body_is_empty() -> None:
    assert encode_body(Body.of(None)) == b""
