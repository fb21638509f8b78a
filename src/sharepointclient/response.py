"""Turns decoded verbose-OData documents into SharePoint objects."""

from __future__ import annotations

import enum
import logging
from typing import TYPE_CHECKING, Any, Dict, List, NamedTuple, Union

if TYPE_CHECKING:  # pragma: no cover
    from sharepointclient.registry import TypeRegistry

logger = logging.getLogger(__name__)

WRAPPER_KEY = "d"
RESULTS_KEY = "results"
METADATA_KEY = "__metadata"


class ResponseShape(enum.Enum):
    SINGLE = "single"
    SEQUENCE = "sequence"
    EMPTY = "empty"


class ClassifiedPayload(NamedTuple):
    shape: ResponseShape
    payload: Any


def classify_envelope(document: Dict[str, Any]) -> ClassifiedPayload:
    """Work out whether a response holds one object, a list of them or nothing.

    Property expansions such as ``{"d": {"GetContextWebInformation": {...}}}``
    carry no ``__metadata`` on ``d`` and are unwrapped by exactly one level,
    keeping the first key when there are several.
    """
    wrapped = document.get(WRAPPER_KEY)
    if isinstance(wrapped, dict) and RESULTS_KEY in wrapped:
        return ClassifiedPayload(ResponseShape.SEQUENCE, wrapped[RESULTS_KEY] or [])

    if isinstance(wrapped, dict) and METADATA_KEY not in wrapped:
        keys = list(wrapped)
        if len(keys) > 1:
            logger.debug("Unwrapping %r, ignoring %s", keys[0], ", ".join(keys[1:]))
        wrapped = wrapped[keys[0]] if keys else None
        if isinstance(wrapped, dict) and RESULTS_KEY in wrapped and METADATA_KEY not in wrapped:
            return ClassifiedPayload(ResponseShape.SEQUENCE, wrapped[RESULTS_KEY] or [])

    if wrapped is None or wrapped == {}:
        return ClassifiedPayload(ResponseShape.EMPTY, None)
    return ClassifiedPayload(ResponseShape.SINGLE, wrapped)


class ResponseMapper:
    """Maps decoded documents to objects through a TypeRegistry.

    Parameters:
        site: The Site handed to every constructed object.
        registry (TypeRegistry): Resolves ``__metadata.type`` to classes.
    """

    def __init__(self, site: Any, registry: "TypeRegistry"):
        self.site = site
        self.registry = registry

    def map(self, document: Dict[str, Any]) -> Union[Any, List[Any], None]:
        if not isinstance(document, dict) or WRAPPER_KEY not in document:
            # not a verbose OData envelope, e.g. odata=nometadata answers
            logger.debug("Response has no %r wrapper, returning it as decoded", WRAPPER_KEY)
            return document
        shape, payload = classify_envelope(document)
        if shape is ResponseShape.SEQUENCE:
            return [self.map_object(item) for item in payload]
        if shape is ResponseShape.SINGLE:
            return self.map_object(payload)
        return None

    def map_object(self, data: Any) -> Any:
        """Build one object; scalars (e.g. items of a string collection) pass through."""
        if not isinstance(data, dict):
            return data
        return self.registry.construct(self.site, data)

