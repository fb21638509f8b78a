"""Tests for the type registry."""

import pytest

from sharepointclient.exceptions import SharepointTypeLookupError
from sharepointclient.objects import (
    DEFAULT_NAMESPACES,
    GenericSharepointObject,
    ListItem,
    default_registry,
)
from sharepointclient.registry import TypeRegistry, normalize_type_name


@pytest.mark.parametrize(
    "descriptor, expected",
    [
        ("SP.ListItem", ((), "ListItem")),
        ("SP.Data.DocumentsItem", (("Data",), "DocumentsItem")),
        ("SP.Utilities.PrincipalInfo", (("Utilities",), "PrincipalInfo")),
        ("Collection(Edm.String)", ((), "CollectionString")),
        ("Collection(Edm.Int32)", ((), "CollectionInteger")),
        ("MS.FileServices.File", (("MS", "FileServices"), "File")),
        ("ListItem", ((), "ListItem")),
    ],
)
def test_normalize_type_name(descriptor, expected):
    assert normalize_type_name(descriptor) == expected


def test_only_leading_root_prefix_is_stripped():
    assert normalize_type_name("SP.Foo.SP") == (("Foo",), "SP")


class Recorder:
    def __init__(self, site, data):
        self.site = site
        self.data = data


@pytest.fixture
def registry():
    registry = TypeRegistry(fallback=GenericSharepointObject)
    registry.register("Thing", Recorder)
    return registry


def test_registered_type_gets_site_and_raw_data(registry):
    site = object()
    data = {"__metadata": {"type": "SP.Thing"}, "Unknown": [1, 2]}
    obj = registry.construct(site, data)
    assert isinstance(obj, Recorder)
    assert obj.site is site
    assert obj.data is data


def test_register_as_decorator_declares_namespaces(registry):
    @registry.register("Foo.Bar.Baz")
    class Baz(Recorder):
        pass

    namespace, name, factory = registry.resolve("SP.Foo.Bar.Baz")
    assert namespace.path == ("Foo", "Bar")
    assert name == "Baz"
    assert factory is Baz


def test_unknown_final_name_falls_back(registry):
    registry.declare_namespace("Foo")
    obj = registry.construct(None, {"__metadata": {"type": "SP.Foo.Bar"}})
    assert isinstance(obj, GenericSharepointObject)
    assert obj.generic_type_name == "Bar"
    assert obj.namespace == ("Foo",)


def test_unknown_namespace_is_a_lookup_error(registry):
    with pytest.raises(SharepointTypeLookupError) as exc_info:
        registry.construct(None, {"__metadata": {"type": "SP.Nope.Thing"}})
    assert isinstance(exc_info.value, LookupError)
    assert exc_info.value.namespace == "Nope"
    assert exc_info.value.type_descriptor == "SP.Nope.Thing"


def test_unknown_nested_namespace_is_a_lookup_error(registry):
    registry.declare_namespace("Foo")
    with pytest.raises(SharepointTypeLookupError, match="'Deep'"):
        registry.resolve("SP.Foo.Deep.Thing")


def test_constructor_errors_propagate(registry):
    def broken(site, data):
        raise ValueError("bad payload")

    registry.register("Broken", broken)
    with pytest.raises(ValueError, match="bad payload"):
        registry.construct(None, {"__metadata": {"type": "SP.Broken"}})


def test_payload_without_type_uses_untagged_fallback(registry):
    obj = registry.construct(None, {"Title": "x"})
    assert isinstance(obj, GenericSharepointObject)
    assert obj.generic_type_name is None


def test_registry_without_fallback_builds_generic_objects():
    registry = TypeRegistry()
    obj = registry.construct(None, {"__metadata": {"type": "SP.Thing"}, "Title": "x"})
    assert isinstance(obj, GenericSharepointObject)
    assert obj.generic_type_name == "Thing"
    assert obj.namespace == ()


def test_default_registry_contents():
    assert {"Web", "List", "ListItem", "ContextWebInformation", "CollectionString"} <= set(
        default_registry.root.type_names
    )
    for name in DEFAULT_NAMESPACES:
        assert default_registry.root.get_namespace(name).path == (name,)
    assert default_registry.resolve("SP.ListItem")[2] is ListItem
    assert default_registry.resolve("SP.Data.TasksListItem")[2] is None
