import mongomock
import pytest
from fastapi.testclient import TestClient

import main
from errors import TransportError
from media import MediaCleanup
from properties import PropertyStore
from shortlists import ShortlistStore

CLOUD = "https://res.cloudinary.com/demo"


class FakeHost:
    """Stands in for MediaHost; records deletions and fails on demand."""

    def __init__(self):
        self.deleted = []
        self.fail_for = set()

    def delete(self, identifier, resource_kind="image"):
        if identifier in self.fail_for:
            raise TransportError(f"host unavailable for {identifier}")
        self.deleted.append((identifier, resource_kind))
        return {"result": "ok"}

    def destroy(self, identifier, resource_kind="image"):
        return self.delete(identifier, resource_kind)


@pytest.fixture
def mdb():
    return mongomock.MongoClient().db


@pytest.fixture
def host():
    return FakeHost()


@pytest.fixture
def property_store(mdb, host):
    return PropertyStore(mdb, MediaCleanup(host.delete))


@pytest.fixture
def shortlist_store(mdb):
    return ShortlistStore(mdb)


@pytest.fixture
def make_payload():
    def factory(title="Sunny flat", address="Kilimani, Nairobi", price=45000, **overrides):
        slug = title.lower().replace(" ", "-")
        payload = {
            "title": title,
            "address": address,
            "price": price,
            "category": "2Bedroom",
            "landlord_contact": "0712 000 000",
            "notes": "Near the mall",
            "media": [
                {
                    "url": f"{CLOUD}/image/upload/v1758465858/househunt/{slug}.jpg",
                    "host_id": f"househunt/{slug}",
                    "original_name": f"{slug}.jpg",
                    "byte_size": 2048,
                    "kind": "image",
                },
                {
                    "url": f"{CLOUD}/video/upload/v1758465860/househunt/{slug}-tour.mp4",
                    "host_id": f"househunt/{slug}-tour",
                    "kind": "video",
                    "duration_seconds": 12.5,
                },
            ],
        }
        payload.update(overrides)
        return payload

    return factory


@pytest.fixture
def client(mdb, host):
    main.app.dependency_overrides[main.get_media_host] = lambda: host
    main.app.dependency_overrides[main.get_property_store] = lambda: PropertyStore(mdb, MediaCleanup(host.delete))
    main.app.dependency_overrides[main.get_shortlist_store] = lambda: ShortlistStore(mdb)
    with TestClient(main.app) as c:
        yield c
    main.app.dependency_overrides.clear()
