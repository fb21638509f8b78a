"""Registry mapping SharePoint ``__metadata.type`` names to Python classes.

Types are registered explicitly at import time::

    @default_registry.register("ListItem")
    class ListItem(SharepointObject):
        ...

    default_registry.declare_namespace("Data")

``SP.ListItem`` then resolves to ``ListItem``, while ``SP.Data.DocumentsItem``
resolves to the generic fallback inside the ``Data`` namespace.
"""

from __future__ import annotations

import re
from typing import Any, Callable, Dict, List, Optional, Tuple

from sharepointclient.exceptions import SharepointTypeLookupError

ObjectFactory = Callable[[Any, Dict[str, Any]], Any]

ROOT_NAMESPACE_PREFIX = re.compile(r"^SP\.")

# Generic collection spellings rewritten to flat names before splitting on "."
COLLECTION_ALIASES = (
    (re.compile(r"^Collection\(Edm\.String\)"), "CollectionString"),
    (re.compile(r"^Collection\(Edm\.Int32\)"), "CollectionInteger"),
)


def normalize_type_name(type_descriptor: str) -> Tuple[Tuple[str, ...], str]:
    """Split a metadata type into its namespace path and final type name.

    >>> normalize_type_name("SP.Data.DocumentsItem")
    (('Data',), 'DocumentsItem')
    >>> normalize_type_name("Collection(Edm.String)")
    ((), 'CollectionString')
    """
    type_name = ROOT_NAMESPACE_PREFIX.sub("", type_descriptor)
    for pattern, alias in COLLECTION_ALIASES:
        type_name = pattern.sub(alias, type_name)
    *path, name = type_name.split(".")
    return tuple(path), name


class TypeNamespace:
    """One level of the type tree: named types plus nested namespaces."""

    def __init__(self, name: str = "", parent: Optional["TypeNamespace"] = None):
        self.name = name
        self.parent = parent
        self._types: Dict[str, ObjectFactory] = {}
        self._namespaces: Dict[str, TypeNamespace] = {}

    def __repr__(self) -> str:
        return f"TypeNamespace({'.'.join(self.path) or '<root>'})"

    @property
    def path(self) -> Tuple[str, ...]:
        if self.parent is None:
            return ()
        return self.parent.path + (self.name,)

    @property
    def type_names(self) -> List[str]:
        return sorted(self._types)

    def declare_namespace(self, name: str) -> "TypeNamespace":
        """Return the nested namespace ``name``, creating it if needed."""
        if name not in self._namespaces:
            self._namespaces[name] = TypeNamespace(name, self)
        return self._namespaces[name]

    def get_namespace(self, name: str) -> "TypeNamespace":
        return self._namespaces[name]

    def add_type(self, name: str, factory: ObjectFactory) -> None:
        self._types[name] = factory

    def lookup(self, name: str) -> Optional[ObjectFactory]:
        return self._types.get(name)


class TypeRegistry:
    """Resolves metadata types to factories and builds objects from payloads.

    Parameters:
        fallback (callable, optional): Called as
            ``fallback(site, data, type_name, namespace=path)`` for type names
            that are not registered. Defaults to GenericSharepointObject.
    """

    def __init__(self, fallback: Optional[Callable[..., Any]] = None):
        self.root = TypeNamespace()
        self.fallback = fallback

    def declare_namespace(self, dotted_path: str) -> TypeNamespace:
        namespace = self.root
        for part in dotted_path.split("."):
            namespace = namespace.declare_namespace(part)
        return namespace

    def register(self, dotted_name: str, factory: Optional[ObjectFactory] = None):
        """Register ``factory`` under a dotted type name.

        Namespaces in the dotted name are declared on the way. Can be used as
        a class decorator when ``factory`` is omitted.
        """

        def decorator(obj: ObjectFactory) -> ObjectFactory:
            *path, name = dotted_name.split(".")
            namespace = self.declare_namespace(".".join(path)) if path else self.root
            namespace.add_type(name, obj)
            return obj

        if factory is not None:
            return decorator(factory)
        return decorator

    def resolve(self, type_descriptor: str) -> Tuple[TypeNamespace, str, Optional[ObjectFactory]]:
        """Find the namespace and factory for a raw metadata type.

        Raises:
            SharepointTypeLookupError: If a namespace segment is not registered.
        """
        path, name = normalize_type_name(type_descriptor)
        namespace = self.root
        for part in path:
            try:
                namespace = namespace.get_namespace(part)
            except KeyError:
                raise SharepointTypeLookupError(part, type_descriptor) from None
        return namespace, name, namespace.lookup(name)

    def construct(self, site: Any, data: Dict[str, Any]) -> Any:
        """Instantiate the object described by ``data["__metadata"]["type"]``.

        Errors raised by the registered class itself are not caught.
        """
        metadata = data.get("__metadata") or {}
        type_descriptor = metadata.get("type")
        if not type_descriptor:
            return self._fallback()(site, data, None)
        namespace, name, factory = self.resolve(type_descriptor)
        if factory is not None:
            return factory(site, data)
        return self._fallback()(site, data, name, namespace=namespace.path)

    def _fallback(self) -> Callable[..., Any]:
        if self.fallback is None:
            from sharepointclient.objects import GenericSharepointObject

            return GenericSharepointObject
        return self.fallback
