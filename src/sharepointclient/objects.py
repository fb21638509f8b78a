"""SharePoint object classes built from verbose-OData payloads.

Every class takes ``(site, data)``, where ``data`` is the decoded JSON object.
Fields are reachable both as items (``item["Title"]``) and as snake_case
attributes (``item.title``). Unknown fields are kept as they are.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterator, Optional, Tuple

from sharepointclient.exceptions import SharepointError
from sharepointclient.registry import TypeRegistry

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACES = ("Data", "Utilities", "UserProfiles", "Publishing", "Taxonomy")


def camelize(name: str) -> str:
    """Translate a python attribute name into a SharePoint field name.

    >>> camelize("form_digest_value")
    'FormDigestValue'
    """
    return "".join(part[:1].upper() + part[1:] for part in name.split("_"))


def _is_deferred(value: Any) -> bool:
    return isinstance(value, dict) and "__deferred" in value


class SharepointObject:
    """Base class for objects returned by ``Site.query``.

    Parameters:
        site (Site): The site the object was read from.
        data (dict): The decoded JSON payload, ``__metadata`` included.
    """

    def __init__(self, site, data: Optional[Dict[str, Any]] = None):
        self.site = site
        self.updated_data: Dict[str, Any] = {}
        self.data: Dict[str, Any] = {
            key: self._convert(value) for key, value in (data or {}).items()
        }

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.type_name} {self.uri}>"

    def _convert(self, value: Any) -> Any:
        if _is_deferred(value) or not isinstance(value, dict):
            return value
        if "__metadata" in value:
            return self.site.registry.construct(self.site, value)
        if isinstance(value.get("results"), list):
            return [self._convert(item) for item in value["results"]]
        return value

    @property
    def metadata(self) -> Dict[str, Any]:
        return self.data.get("__metadata") or {}

    @property
    def uri(self) -> Optional[str]:
        return self.metadata.get("uri")

    @property
    def etag(self) -> Optional[str]:
        return self.metadata.get("etag")

    @property
    def type_name(self) -> Optional[str]:
        return self.metadata.get("type")

    def __contains__(self, key: str) -> bool:
        return key in self.updated_data or key in self.data

    def __getitem__(self, key: str) -> Any:
        if key in self.updated_data:
            return self.updated_data[key]
        value = self.data[key]
        if _is_deferred(value):
            # fetched once, then kept in place of the deferred marker
            logger.debug("Loading deferred property %s of %r", key, self)
            value = self.site.query("get", value["__deferred"]["uri"])
            self.data[key] = value
        return value

    def __setitem__(self, key: str, value: Any) -> None:
        self.updated_data[key] = value

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_") or "data" not in self.__dict__:
            raise AttributeError(name)
        for key in (name, camelize(name)):
            if key in self:
                return self[key]
        raise AttributeError(f"{type(self).__name__} has no field {name!r}")

    def get(self, key: str, default: Any = None) -> Any:
        return self[key] if key in self else default

    def _require_uri(self) -> str:
        uri = self.uri
        if not uri:
            raise SharepointError(
                f"{type(self).__name__} has no __metadata.uri and cannot be sent back to the server"
            )
        return uri

    @staticmethod
    def _http_method_hook(http_method: str, if_match: str):
        def hook(request):
            request.headers["X-HTTP-Method"] = http_method
            request.headers["IF-MATCH"] = if_match

        return hook

    def save(self) -> Any:
        """Send the fields changed through item assignment with a MERGE request.

        Returns:
            The raw response (usually empty), or None when nothing changed.
        """
        if not self.updated_data:
            return None
        body = {"__metadata": {"type": self.type_name}, **self.updated_data}
        result = self.site.query(
            "post",
            self._require_uri(),
            body,
            hook=self._http_method_hook("MERGE", self.etag or "*"),
        )
        self.data.update(self.updated_data)
        self.updated_data = {}
        return result

    def destroy(self) -> Any:
        """Delete the object on the server."""
        return self.site.query(
            "post", self._require_uri(), hook=self._http_method_hook("DELETE", "*")
        )

    def reload(self) -> "SharepointObject":
        """Re-read the object from its URI, dropping unsaved changes."""
        fresh = self.site.query("get", self._require_uri())
        if isinstance(fresh, SharepointObject):
            self.data = fresh.data
        self.updated_data = {}
        return self


class GenericSharepointObject(SharepointObject):
    """Fallback for payloads whose type has no registered class.

    Attributes:
        generic_type_name (str | None): The unresolved type name, e.g. ``"Bar"``
            for ``SP.Foo.Bar``.
        namespace (tuple[str, ...]): The namespace path it was found in.
    """

    def __init__(
        self,
        site,
        data: Optional[Dict[str, Any]],
        type_name: Optional[str],
        namespace: Tuple[str, ...] = (),
    ):
        self.generic_type_name = type_name
        self.namespace = tuple(namespace)
        super().__init__(site, data)

    def __repr__(self) -> str:
        qualified = ".".join(self.namespace + (self.generic_type_name or "?",))
        return f"<GenericSharepointObject {qualified} {self.uri}>"


default_registry = TypeRegistry(fallback=GenericSharepointObject)
for _namespace in DEFAULT_NAMESPACES:
    default_registry.declare_namespace(_namespace)


@default_registry.register("Web")
class Web(SharepointObject):
    def lists(self) -> list["List"]:
        return self.site.query("get", "lists")

    def get_list(self, title: str) -> "List":
        escaped = title.replace("'", "''")
        return self.site.query("get", f"lists/GetByTitle('{escaped}')")

    def current_user(self) -> "User":
        return self.site.query("get", "currentuser")


@default_registry.register("List")
class List(SharepointObject):
    @property
    def list_item_entity_type(self) -> Optional[str]:
        return self.data.get("ListItemEntityTypeFullName")

    def items(self) -> list["ListItem"]:
        return self.site.query("get", f"{self._require_uri()}/items")

    def add_item(self, fields: Dict[str, Any]) -> Any:
        """Create an item in this list; returns the created item."""
        body = {"__metadata": {"type": self.list_item_entity_type}, **fields}
        return self.site.query("post", f"{self._require_uri()}/items", body)


@default_registry.register("ListItem")
class ListItem(SharepointObject):
    pass


@default_registry.register("Folder")
class Folder(SharepointObject):
    def files(self) -> list["File"]:
        return self["Files"]

    def folders(self) -> list["Folder"]:
        return self["Folders"]


@default_registry.register("File")
class File(SharepointObject):
    def download(self) -> str:
        """Return the file content as sent by the server, without JSON decoding."""
        return self.site.query("get", f"{self._require_uri()}/$value", skip_json=True)


@default_registry.register("User")
class User(SharepointObject):
    pass


@default_registry.register("Group")
class Group(SharepointObject):
    pass


@default_registry.register("Field")
class Field(SharepointObject):
    pass


@default_registry.register("View")
class View(SharepointObject):
    pass


@default_registry.register("ContextWebInformation")
class ContextWebInformation(SharepointObject):
    """Answer to ``POST /_api/contextinfo``, holding the form digest.

    The digest is considered stale once it is within ``expiry_margin`` of the
    ``FormDigestTimeoutSeconds`` announced by the server.
    """

    expiry_margin = timedelta(seconds=60)

    def __init__(self, site, data: Optional[Dict[str, Any]] = None):
        super().__init__(site, data)
        self.acquired_at = datetime.now(tz=timezone.utc)

    @property
    def form_digest_value(self) -> Optional[str]:
        return self.data.get("FormDigestValue")

    @property
    def expires_at(self) -> Optional[datetime]:
        timeout = self.data.get("FormDigestTimeoutSeconds")
        if timeout is None:
            return None
        return self.acquired_at + timedelta(seconds=int(timeout))

    def is_up_to_date(self) -> bool:
        expires_at = self.expires_at
        return (
            expires_at is not None
            and datetime.now(tz=timezone.utc) + self.expiry_margin < expires_at
        )


class _Collection(SharepointObject):
    """Primitive collections: iterate over ``results``."""

    @property
    def values(self) -> list:
        return list(self.data.get("results") or [])

    def __iter__(self) -> Iterator[Any]:
        return iter(self.values)

    def __len__(self) -> int:
        return len(self.values)


@default_registry.register("CollectionString")
class CollectionString(_Collection):
    pass


@default_registry.register("CollectionInteger")
class CollectionInteger(_Collection):
    pass
