import pytest

from activator.errors import RevisionNotFoundError, ServiceNotFoundError
from activator.metadata import NamespacedName, Revision, Service, StaticMetadataLookup


def test_namespaced_name_round_trips_through_string():
    name = NamespacedName("default", "rev-1")

    assert str(name) == "default/rev-1"
    assert NamespacedName.parse("default/rev-1") == name


@pytest.mark.parametrize("value", ["", "default", "/rev-1", "default/"])
def test_namespaced_name_parse_rejects_malformed(value):
    assert NamespacedName.parse(value) is None


def test_revision_exposes_id_and_service_label():
    revision = Revision("default", "rev-1", labels={"serving.knative.dev/service": "shop"})

    assert revision.id == NamespacedName("default", "rev-1")
    assert revision.service_name == "shop"
    assert Revision("default", "rev-2").service_name == ""


@pytest.mark.asyncio
async def test_static_lookup_finds_and_forgets_revisions():
    lookup = StaticMetadataLookup()
    revision = Revision("default", "rev-1")
    lookup.add_revision(revision)

    assert await lookup.lookup_revision("default", "rev-1") is revision

    lookup.remove_revision("default", "rev-1")
    with pytest.raises(RevisionNotFoundError, match="default/rev-1"):
        await lookup.lookup_revision("default", "rev-1")


@pytest.mark.asyncio
async def test_static_lookup_services():
    lookup = StaticMetadataLookup()
    service = Service("default", "shop", annotations={"a": "b"})
    lookup.add_service(service)

    assert await lookup.lookup_service("default", "shop") is service
    with pytest.raises(ServiceNotFoundError):
        await lookup.lookup_service("other", "shop")
