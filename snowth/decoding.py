"""
Decode helpers for node responses

Decode steps are plain callables taking the response body and headers. These
are the generic JSON and XML primitives the typed decoders build on.
"""

import json
import xml.etree.ElementTree as ET
from typing import Any, Mapping, Optional

from .errors import DecodeError, MalformedDocumentError


def decode_json(body: bytes, headers: Optional[Mapping[str, str]] = None) -> Any:
    """Decode a JSON response body"""
    if not body:
        raise DecodeError("Empty response body, expected JSON")
    try:
        return json.loads(body)
    except (ValueError, UnicodeDecodeError) as e:
        raise DecodeError(f"Unable to decode JSON response: {e}") from e


def decode_json_object(body: bytes, headers: Optional[Mapping[str, str]] = None) -> dict:
    """Decode a JSON response body that must be an object"""
    data = decode_json(body, headers)
    if not isinstance(data, dict):
        raise DecodeError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def parse_xml(body: bytes, root_tag: Optional[str] = None) -> ET.Element:
    """Parse an XML document, optionally checking the root element name"""
    if not body:
        raise MalformedDocumentError("Empty XML document")
    try:
        root = ET.fromstring(body)
    except ET.ParseError as e:
        raise MalformedDocumentError(f"Unable to parse XML document: {e}") from e
    if root_tag is not None and root.tag != root_tag:
        raise MalformedDocumentError(f"Expected <{root_tag}> document, got <{root.tag}>")
    return root


def int_attr(element: ET.Element, name: str, default: Optional[int] = None) -> int:
    """Read an integer attribute from an XML element"""
    value = element.get(name)
    if value is None:
        if default is None:
            raise MalformedDocumentError(f"<{element.tag}> is missing attribute '{name}'")
        return default
    try:
        return int(value)
    except ValueError as e:
        raise MalformedDocumentError(
            f"<{element.tag}> attribute '{name}' is not an integer: {value!r}") from e
