"""Base JSON-API serializer.

Documents carry ``meta.created``/``meta.modified`` and a ``jsonapi``
version block. Relationships are rendered as resource linkage only; the
per-relationship ``self``/``related`` links defined by JSON:API are not
generated.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, ClassVar, Iterable, Optional

from isahub.config import get_settings

JSONAPI_MEDIA_TYPE = "application/vnd.api+json"
JSONAPI_VERSION = "1.0"


def _format_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


class SimpleBaseSerializer:
    """Serialize one object into a JSON-API document.

    Subclasses set ``type_name`` and list ``attributes``; ``relationships``
    maps a relationship name to ``(type_name, attribute)`` where the
    attribute holds one related object or an iterable of them.
    """

    type_name: ClassVar[str] = ""
    attributes: ClassVar[tuple[str, ...]] = ()
    relationships: ClassVar[dict[str, tuple[str, str]]] = {}

    def __init__(self, obj: Any, actor: Any = None):
        self.object = obj
        self.actor = actor

    @property
    def base_url(self) -> str:
        return get_settings().site_base_url.rstrip("/")

    def self_link(self) -> str:
        return f"{self.base_url}/{self.type_name}/{self.object.id}"

    def relationship_self_link(self, attribute_name: str) -> Optional[str]:
        return None

    def relationship_related_link(self, attribute_name: str) -> Optional[str]:
        return None

    def meta(self) -> dict[str, Any]:
        created = getattr(self.object, "created_at", None)
        updated = getattr(self.object, "updated_at", None)
        return {
            "created": _format_value(created) if created is not None else "",
            "modified": _format_value(updated) if updated is not None else "",
        }

    def jsonapi(self) -> dict[str, str]:
        return {"version": JSONAPI_VERSION}

    def serialize_attributes(self) -> dict[str, Any]:
        return {name: _format_value(getattr(self.object, name, None)) for name in self.attributes}

    def _relationship(self, name: str, type_name: str, attribute: str) -> dict[str, Any]:
        value = getattr(self.object, attribute, None)
        if value is None:
            entry: dict[str, Any] = {"data": None}
        elif isinstance(value, (list, tuple, set)):
            entry = {"data": [{"type": type_name, "id": item.id} for item in value]}
        else:
            entry = {"data": {"type": type_name, "id": value.id}}

        links = {
            key: link
            for key, link in (
                ("self", self.relationship_self_link(name)),
                ("related", self.relationship_related_link(name)),
            )
            if link is not None
        }
        if links:
            entry["links"] = links
        return entry

    def resource_object(self) -> dict[str, Any]:
        return {
            "type": self.type_name,
            "id": str(self.object.id),
            "attributes": self.serialize_attributes(),
            "relationships": {
                name: self._relationship(name, type_name, attribute)
                for name, (type_name, attribute) in self.relationships.items()
            },
            "links": {"self": self.self_link()},
            "meta": self.meta(),
        }

    def serialize(self) -> dict[str, Any]:
        return {
            "data": self.resource_object(),
            "meta": self.meta(),
            "jsonapi": self.jsonapi(),
        }

    @classmethod
    def serialize_many(cls, objects: Iterable[Any], actor: Any = None) -> dict[str, Any]:
        return {
            "data": [cls(obj, actor).resource_object() for obj in objects],
            "jsonapi": {"version": JSONAPI_VERSION},
        }
