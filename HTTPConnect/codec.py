"""Request body codec.

A body value is classified once, when it is attached to a request, into a
``Body`` with a fixed ``BodyKind``. ``encode_body`` then turns it into bytes
according to that kind and the request's content type.
"""

import dataclasses
import json
import logging
import xml.etree.ElementTree as ET
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Optional, Tuple
from urllib.parse import urlencode

from .exceptions import BodyReadError, EncodeError
from .utils import is_json_type, is_xml_type

logger = logging.getLogger(__name__)


class BodyKind(Enum):
    NONE = "none"
    STREAM = "stream"
    BYTES = "bytes"
    TEXT = "text"
    STRUCTURED = "structured"
    SCALAR = "scalar"


def _is_record(value: Any) -> bool:
    return (dataclasses.is_dataclass(value) and not isinstance(value, type)) or isinstance(value, Mapping)


@dataclass(frozen=True)
class Body:
    """A request body tagged with its kind."""
    kind: BodyKind
    value: Any = None

    @classmethod
    def of(cls, value: Any) -> "Body":
        if isinstance(value, Body):
            return value
        if value is None:
            return cls(BodyKind.NONE)
        if isinstance(value, (bytes, bytearray, memoryview)):
            return cls(BodyKind.BYTES, bytes(value))
        if isinstance(value, str):
            return cls(BodyKind.TEXT, value)
        if callable(getattr(value, "read", None)):
            return cls(BodyKind.STREAM, value)
        if _is_record(value) or isinstance(value, (list, tuple)):
            return cls(BodyKind.STRUCTURED, value)
        return cls(BodyKind.SCALAR, value)

    @property
    def is_empty(self) -> bool:
        return self.kind is BodyKind.NONE


NO_BODY = Body(BodyKind.NONE)


def _json_default(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def marshal_json(value: Any) -> bytes:
    try:
        return json.dumps(value, default=_json_default).encode('utf-8')
    except (TypeError, ValueError) as e:
        raise EncodeError(f"Could not marshal body as JSON: {e}") from e


def _fill_element(element: ET.Element, value: Any) -> None:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        value = {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
    if isinstance(value, Mapping):
        for key, child in value.items():
            if not isinstance(key, str):
                raise TypeError(f"XML element names must be strings, got {type(key).__name__}")
            items = child if isinstance(child, (list, tuple)) else [child]
            for item in items:
                _fill_element(ET.SubElement(element, key), item)
    elif value is None:
        return
    elif isinstance(value, bool):
        element.text = "true" if value else "false"
    else:
        element.text = str(value)


def marshal_xml(value: Any) -> bytes:
    tag = type(value).__name__ if dataclasses.is_dataclass(value) else "root"
    root = ET.Element(tag)
    try:
        _fill_element(root, value)
        return ET.tostring(root, encoding='utf-8', xml_declaration=False)
    except (TypeError, ValueError) as e:
        raise EncodeError(f"Could not marshal body as XML: {e}") from e


def drain_stream(stream: Any) -> bytes:
    try:
        data = stream.read()
    except (OSError, ValueError) as e:
        raise BodyReadError(f"Could not read request body stream: {e}") from e
    if data is None:
        return b""
    if isinstance(data, str):
        return data.encode('utf-8')
    return bytes(data)


def encode_form(form_data: Iterable[Tuple[str, str]]) -> bytes:
    return urlencode(list(form_data)).encode('ascii')


def encode_body(body: Body, content_type: Optional[str] = None,
                form_data: Optional[Iterable[Tuple[str, str]]] = None) -> bytes:
    """Resolve a body into the bytes that go on the wire.

    First match wins: stream, bytes, text, structured value under a JSON
    content type, record under an XML content type, form data when there is
    no body. Anything else becomes an empty body.
    """
    if body.kind is BodyKind.STREAM:
        return drain_stream(body.value)
    if body.kind is BodyKind.BYTES:
        return body.value
    if body.kind is BodyKind.TEXT:
        return body.value.encode('utf-8')
    if body.kind is BodyKind.STRUCTURED:
        if is_json_type(content_type):
            return marshal_json(body.value)
        if is_xml_type(content_type) and _is_record(body.value):
            return marshal_xml(body.value)
    if body.kind is BodyKind.NONE:
        form = list(form_data or ())
        return encode_form(form) if form else b""

    logger.warning(f"Dropping {body.kind.value} body of type {type(body.value).__name__}: "
                   f"no encoding for content type {content_type!r}")
    return b""
