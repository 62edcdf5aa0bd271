# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""WebDAV XML bodies: PROPFIND/PROPPATCH parsing and multistatus rendering."""

from __future__ import annotations

import xml.etree.ElementTree as ET  # nosec B405
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from email.utils import format_datetime
from http import HTTPStatus
from typing import Final, Literal

from ..errors import InvalidArgumentError
from ..filesystem import (
    DAV_NAMESPACE,
    DISPLAYNAME,
    EntryStat,
    Property,
    PropertyName,
    PropertyPatch,
    PropStat,
)

ET.register_namespace("D", DAV_NAMESPACE)

PropfindMode = Literal["allprop", "propname", "prop"]

GETCONTENTLENGTH: Final = PropertyName(DAV_NAMESPACE, "getcontentlength")
GETCONTENTTYPE: Final = PropertyName(DAV_NAMESPACE, "getcontenttype")
GETETAG: Final = PropertyName(DAV_NAMESPACE, "getetag")
GETLASTMODIFIED: Final = PropertyName(DAV_NAMESPACE, "getlastmodified")
CREATIONDATE: Final = PropertyName(DAV_NAMESPACE, "creationdate")
RESOURCETYPE: Final = PropertyName(DAV_NAMESPACE, "resourcetype")

_DIRECTORY_LIVE: Final = (DISPLAYNAME, CREATIONDATE, GETLASTMODIFIED, RESOURCETYPE)
_FILE_LIVE: Final = (
    DISPLAYNAME,
    CREATIONDATE,
    GETLASTMODIFIED,
    RESOURCETYPE,
    GETCONTENTLENGTH,
    GETCONTENTTYPE,
    GETETAG,
)


def _dav(local: str) -> str:
    return f"{{{DAV_NAMESPACE}}}{local}"


@dataclass(slots=True, frozen=True)
class PropfindRequest:
    """Parsed PROPFIND body.

    An empty body is equivalent to ``<allprop/>``.
    """

    mode: PropfindMode = "allprop"
    names: tuple[PropertyName, ...] = ()


def _parse_document(body: bytes, root_local: str) -> ET.Element:
    try:
        root = ET.fromstring(body)  # nosec B314
    except ET.ParseError as error:
        msg = f"Malformed XML body: {error}"
        raise InvalidArgumentError(msg) from error
    if root.tag != _dav(root_local):
        msg = f"Expected a DAV:{root_local} document, got {root.tag}"
        raise InvalidArgumentError(msg)
    return root


def _name_of(element: ET.Element) -> PropertyName:
    if not element.tag.startswith("{"):
        return PropertyName("", element.tag)
    namespace, _, local = element.tag[1:].partition("}")
    return PropertyName(namespace, local)


def parse_propfind(body: bytes) -> PropfindRequest:
    """Parse a PROPFIND request body.

    Raises:
        InvalidArgumentError: The body is not a well-formed propfind document.
    """
    if not body.strip():
        return PropfindRequest()
    root = _parse_document(body, "propfind")
    if root.find(_dav("propname")) is not None:
        return PropfindRequest(mode="propname")
    prop = root.find(_dav("prop"))
    if prop is not None:
        return PropfindRequest(
            mode="prop", names=tuple(_name_of(child) for child in prop)
        )
    return PropfindRequest()


def parse_proppatch(body: bytes) -> tuple[PropertyPatch, ...]:
    """Parse a PROPPATCH body into patches, keeping document order.

    Raises:
        InvalidArgumentError: The body is not a well-formed propertyupdate.
    """
    root = _parse_document(body, "propertyupdate")
    patches: list[PropertyPatch] = []
    for instruction in root:
        if instruction.tag not in {_dav("set"), _dav("remove")}:
            continue
        removal = instruction.tag == _dav("remove")
        for prop in instruction.iter(_dav("prop")):
            for child in prop:
                value = None if removal else "".join(child.itertext())
                patches.append(PropertyPatch(_name_of(child), value))
    return tuple(patches)


def _http_date(stat: EntryStat) -> str:
    return format_datetime(stat.modified_at, usegmt=True)


def entity_tag(stat: EntryStat) -> str:
    """Weakly unique tag derived from size and modification time."""
    stamp = int(stat.modified_at.timestamp() * 1000)
    return f'"{stat.size:x}-{stamp:x}"'


def live_property_names(stat: EntryStat) -> tuple[PropertyName, ...]:
    """Names of computed properties for an entry kind."""
    return _DIRECTORY_LIVE if stat.is_directory else _FILE_LIVE


def _live_element(
    name: PropertyName, stat: EntryStat, content_type: str
) -> ET.Element | None:
    element = ET.Element(str(name))
    if name == DISPLAYNAME:
        element.text = stat.display_name
    elif name == RESOURCETYPE:
        if stat.is_directory:
            _ = ET.SubElement(element, _dav("collection"))
    elif name == GETLASTMODIFIED:
        element.text = _http_date(stat)
    elif name == CREATIONDATE:
        if stat.created_at is None:
            return None
        element.text = stat.created_at.isoformat().replace("+00:00", "Z")
    elif stat.is_directory:
        return None
    elif name == GETCONTENTLENGTH:
        element.text = str(stat.size)
    elif name == GETCONTENTTYPE:
        element.text = content_type
    elif name == GETETAG:
        element.text = entity_tag(stat)
    else:
        return None
    return element


def _dead_element(name: PropertyName, value: str | bytes) -> ET.Element:
    element = ET.Element(str(name) if name.namespace else name.local)
    element.text = (
        value.decode("utf-8", errors="replace") if isinstance(value, bytes) else value
    )
    return element


def _empty_element(name: PropertyName) -> ET.Element:
    return ET.Element(str(name) if name.namespace else name.local)


def status_line(status: int) -> str:
    return f"HTTP/1.1 {status} {HTTPStatus(status).phrase}"


def response_element(
    href: str, propstats: Mapping[int, Sequence[ET.Element]]
) -> ET.Element:
    """Build one ``<D:response>`` with a propstat per status code."""
    response = ET.Element(_dav("response"))
    ET.SubElement(response, _dav("href")).text = href
    for status, elements in sorted(propstats.items()):
        propstat = ET.SubElement(response, _dav("propstat"))
        prop = ET.SubElement(propstat, _dav("prop"))
        prop.extend(elements)
        ET.SubElement(propstat, _dav("status")).text = status_line(status)
    return response


def propfind_response(
    href: str,
    stat: EntryStat,
    properties: Sequence[Property],
    request: PropfindRequest,
    *,
    content_type: str,
) -> ET.Element:
    """Render one resource of a PROPFIND answer."""
    dead = {prop.name: prop.value for prop in properties if prop.name != DISPLAYNAME}
    live = live_property_names(stat)

    if request.mode == "propname":
        names = [*live, *dead]
        return response_element(href, {200: [_empty_element(name) for name in names]})

    found: list[ET.Element] = []
    missing: list[ET.Element] = []
    wanted = request.names if request.mode == "prop" else (*live, *dead)
    for name in wanted:
        if name in dead:
            found.append(_dead_element(name, dead[name]))
            continue
        element = _live_element(name, stat, content_type)
        if element is None:
            missing.append(_empty_element(name))
        else:
            found.append(element)

    propstats: dict[int, Sequence[ET.Element]] = {}
    if found:
        propstats[200] = found
    if missing:
        propstats[404] = missing
    return response_element(href, propstats)


def proppatch_response(href: str, statuses: Iterable[PropStat]) -> ET.Element:
    """Render the per-property outcome of a PROPPATCH batch."""
    grouped: dict[int, list[ET.Element]] = {}
    for stat in statuses:
        grouped.setdefault(int(stat.status), []).append(_empty_element(stat.name))
    return response_element(href, grouped)


def multistatus(responses: Iterable[ET.Element]) -> bytes:
    """Serialize a ``<D:multistatus>`` document."""
    root = ET.Element(_dav("multistatus"))
    root.extend(responses)
    return ET.tostring(root, encoding="utf-8", xml_declaration=True)


__all__ = [
    "PropfindRequest",
    "entity_tag",
    "live_property_names",
    "multistatus",
    "parse_propfind",
    "parse_proppatch",
    "proppatch_response",
    "propfind_response",
    "response_element",
    "status_line",
]
