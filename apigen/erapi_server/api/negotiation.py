"""
Content negotiation between the wire formats and instance values.

Supported formats are JSON and XML. Request bodies are decoded according
to ``Content-Type``; responses are encoded according to ``Accept``.

Invariants:
    - The format is never guessed from body content
    - JSON object bodies may carry bare-word values (``"type":book``),
      read as strings the way lenient JSON readers do
    - Absent ``Content-Type`` or ``Accept`` means JSON
    - Unsupported ``Content-Type`` -> UnsupportedMediaTypeError (400)
    - Unsupported ``Accept`` -> NotAcceptableError (406)
    - The response ``Content-Type`` is exactly the negotiated media type

Wire shapes:
    JSON instance:  {"id": 1, "price": 1.5, ...}
    JSON list:      {"items": [{...}, ...]}
    JSON errors:    {"errorMessages": ["...", ...]}
    XML instance:   <item><id>1</id><price>1.5</price></item>
    XML list:       <items><item>...</item></items>
    XML errors:     <errorMessages><errorMessage>...</errorMessage></errorMessages>
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any, Sequence
from xml.etree import ElementTree

import yaml

from ..errors import BadRequestError, NotAcceptableError, UnsupportedMediaTypeError
from ..schema.types import EntityDef
from ..store.instances import Instance

logger = logging.getLogger(__name__)


class MediaFormat(Enum):
    """Wire formats understood by the engine."""

    JSON = "application/json"
    XML = "application/xml"

    @property
    def media_type(self) -> str:
        return self.value


_MEDIA_TYPES: dict[str, MediaFormat] = {
    "application/json": MediaFormat.JSON,
    "application/xml": MediaFormat.XML,
    "text/xml": MediaFormat.XML,
}

_WILDCARDS = ("*/*", "application/*")


def _strip_parameters(media_type: str) -> str:
    return media_type.split(";", 1)[0].strip().lower()


def request_format(content_type: str | None) -> MediaFormat:
    """Resolve the request body format from ``Content-Type``.

    Raises:
        UnsupportedMediaTypeError: If the type is not JSON or XML
    """
    if not content_type or not content_type.strip():
        return MediaFormat.JSON
    fmt = _MEDIA_TYPES.get(_strip_parameters(content_type))
    if fmt is None:
        raise UnsupportedMediaTypeError(content_type)
    return fmt


def response_format(accept: str | None) -> MediaFormat:
    """Resolve the response format from ``Accept``.

    Candidates are ranked by q-value, ties keep header order.

    Raises:
        NotAcceptableError: If nothing listed can be produced
    """
    if not accept or not accept.strip():
        return MediaFormat.JSON

    candidates: list[tuple[float, int, str]] = []
    for position, part in enumerate(accept.split(",")):
        pieces = [p.strip() for p in part.split(";")]
        media_type = pieces[0].lower()
        if not media_type:
            continue
        quality = 1.0
        for param in pieces[1:]:
            key, _, value = param.partition("=")
            if key.strip().lower() == "q":
                try:
                    quality = float(value)
                except ValueError:
                    quality = 0.0
        if quality > 0:
            candidates.append((quality, position, media_type))

    for _, _, media_type in sorted(candidates, key=lambda c: (-c[0], c[1])):
        if media_type in _WILDCARDS:
            return MediaFormat.JSON
        fmt = _MEDIA_TYPES.get(media_type)
        if fmt is not None:
            return fmt

    raise NotAcceptableError(accept)


def decode_body(body: bytes | str | None, fmt: MediaFormat) -> dict[str, Any]:
    """Decode a request body into a field name -> value mapping.

    Raises:
        BadRequestError: If the body is missing or malformed
    """
    if isinstance(body, bytes):
        try:
            body = body.decode("utf-8")
        except UnicodeDecodeError:
            raise BadRequestError("Request body is not valid UTF-8") from None
    if body is None or not body.strip():
        raise BadRequestError("Request body is required")

    if fmt == MediaFormat.JSON:
        return _decode_json(body)
    return _decode_xml(body)


class _LenientJsonLoader(yaml.SafeLoader):
    """YAML flow reader used for JSON bodies with bare-word values."""


# Date-like bare words stay text.
_LenientJsonLoader.add_constructor(
    "tag:yaml.org,2002:timestamp", yaml.SafeLoader.construct_yaml_str
)


def _decode_json(body: str) -> dict[str, Any]:
    try:
        data = json.loads(body)
    except json.JSONDecodeError as e:
        data = _decode_lenient_json(body, e)
    except ValueError:
        raise BadRequestError("Invalid JSON body: number too large") from None
    except RecursionError:
        raise BadRequestError("Invalid JSON body: nested too deeply") from None
    if not isinstance(data, dict):
        raise BadRequestError("JSON body must be an object")
    return data


def _decode_lenient_json(body: str, error: json.JSONDecodeError) -> Any:
    """Read an object whose values may be unquoted words, e.g. ``"type":book``.

    Only bodies that open an object are retried; anything the lenient
    reader cannot parse reports the original JSON error.
    """
    if not body.lstrip().startswith("{"):
        raise BadRequestError(f"Invalid JSON body: {error.msg}") from None
    try:
        data = yaml.load(body, Loader=_LenientJsonLoader)
    except (yaml.YAMLError, ValueError, RecursionError):
        raise BadRequestError(f"Invalid JSON body: {error.msg}") from None
    if isinstance(data, dict) and not all(isinstance(key, str) for key in data):
        raise BadRequestError("JSON body field names must be strings")
    return data


def _decode_xml(body: str) -> dict[str, Any]:
    try:
        root = ElementTree.fromstring(body)
    except ElementTree.ParseError as e:
        raise BadRequestError(f"Invalid XML body: {e}") from None
    except (ValueError, RecursionError):
        raise BadRequestError("Invalid XML body") from None

    payload: dict[str, Any] = {}
    for child in root:
        if len(child):
            raise BadRequestError(f"Nested XML element not supported: {child.tag}")
        if child.tag in payload:
            raise BadRequestError(f"Duplicate XML element: {child.tag}")
        payload[child.tag] = (child.text or "").strip()
    return payload


def _xml_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _instance_element(instance: Instance) -> ElementTree.Element:
    element = ElementTree.Element(instance.entity.name)
    for name, value in instance.to_dict().items():
        ElementTree.SubElement(element, name).text = _xml_text(value)
    return element


def _to_bytes(element: ElementTree.Element) -> bytes:
    return ElementTree.tostring(element, encoding="utf-8", xml_declaration=False)


def encode_instance(instance: Instance, fmt: MediaFormat) -> bytes:
    if fmt == MediaFormat.JSON:
        return json.dumps(instance.to_dict()).encode("utf-8")
    return _to_bytes(_instance_element(instance))


def encode_collection(
    entity: EntityDef,
    instances: Sequence[Instance],
    fmt: MediaFormat,
) -> bytes:
    if fmt == MediaFormat.JSON:
        return json.dumps({entity.plural: [i.to_dict() for i in instances]}).encode("utf-8")
    root = ElementTree.Element(entity.plural)
    for instance in instances:
        root.append(_instance_element(instance))
    return _to_bytes(root)


def encode_errors(messages: Sequence[str], fmt: MediaFormat) -> bytes:
    if fmt == MediaFormat.JSON:
        return json.dumps({"errorMessages": list(messages)}).encode("utf-8")
    root = ElementTree.Element("errorMessages")
    for message in messages:
        ElementTree.SubElement(root, "errorMessage").text = message
    return _to_bytes(root)
