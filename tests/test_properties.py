from datetime import datetime, timedelta, timezone

import pytest
from bson import ObjectId

from errors import NotFoundError, TransportError, ValidationError
from properties import normalize_property
from schemas import PropertyFilter

CLOUD = "https://res.cloudinary.com/demo"


def test_create_derives_url_lists(property_store, make_payload):
    prop_id = property_store.create(make_payload())
    prop = property_store.get(prop_id)

    assert prop.id == prop_id
    assert prop.availability == "available"
    assert prop.photos == [f"{CLOUD}/image/upload/v1758465858/househunt/sunny-flat.jpg"]
    assert prop.videos == [f"{CLOUD}/video/upload/v1758465860/househunt/sunny-flat-tour.mp4"]
    assert prop.created_at is not None


def test_create_requires_media_and_fields(property_store, make_payload, mdb):
    with pytest.raises(ValidationError):
        property_store.create(make_payload(media=[]))
    with pytest.raises(ValidationError):
        property_store.create(make_payload(title="   "))
    payload = make_payload()
    del payload["address"]
    with pytest.raises(ValidationError):
        property_store.create(payload)
    assert mdb["property"].count_documents({}) == 0


def test_get_unknown_and_malformed_ids(property_store):
    with pytest.raises(NotFoundError):
        property_store.get(str(ObjectId()))
    with pytest.raises(NotFoundError):
        property_store.get("not-an-id")


def test_update_stamps_and_rederives(property_store, make_payload):
    prop_id = property_store.create(make_payload())
    before = property_store.get(prop_id)

    property_store.update(prop_id, {
        "price": 50000,
        "media": [{"url": f"{CLOUD}/video/upload/v2/househunt/new-tour.mp4", "kind": "video"}],
    })
    after = property_store.get(prop_id)

    assert after.price == 50000
    assert after.photos == []
    assert after.videos == [f"{CLOUD}/video/upload/v2/househunt/new-tour.mp4"]
    assert after.updated_at >= before.updated_at
    assert after.title == before.title


def test_update_missing_property(property_store):
    with pytest.raises(NotFoundError):
        property_store.update(str(ObjectId()), {"notes": "x"})


def test_update_rejects_empty_media(property_store, make_payload):
    prop_id = property_store.create(make_payload())
    with pytest.raises(ValidationError):
        property_store.update(prop_id, {"media": []})


def test_toggle_availability(property_store, make_payload):
    prop_id = property_store.create(make_payload())
    assert property_store.toggle_availability(prop_id) == "taken"
    assert property_store.get(prop_id).availability == "taken"
    assert property_store.toggle_availability(prop_id) == "available"


def test_delete_cleans_up_media_first(property_store, make_payload, host, mdb):
    prop_id = property_store.create(make_payload())
    property_store.delete(prop_id)

    assert host.deleted == [("househunt/sunny-flat", "image"), ("househunt/sunny-flat-tour", "video")]
    assert mdb["property"].count_documents({}) == 0


def test_delete_proceeds_when_media_host_fails(property_store, make_payload, host, mdb):
    prop_id = property_store.create(make_payload())
    host.fail_for = {"househunt/sunny-flat"}
    property_store.delete(prop_id)

    assert host.deleted == [("househunt/sunny-flat-tour", "video")]
    with pytest.raises(NotFoundError):
        property_store.get(prop_id)


def test_delete_missing_property(property_store):
    with pytest.raises(NotFoundError):
        property_store.delete(str(ObjectId()))


def test_delete_uses_legacy_media_shapes(property_store, host, mdb):
    res = mdb["property"].insert_one({
        "title": "Legacy",
        "address": "Westlands",
        "price": 30000,
        "availability": "Available",
        "imageDetails": [{"url": f"{CLOUD}/image/upload/v1/old/pic.jpg", "publicId": "old/pic"}],
        "photos": [f"{CLOUD}/image/upload/v1/old/pic.jpg"],
    })
    property_store.delete(str(res.inserted_id))
    assert host.deleted == [("old/pic", "image")]


def test_delete_many_reports_each_id(property_store, make_payload, monkeypatch):
    ids = [property_store.create(make_payload(title=f"Home {i}")) for i in range(4)]
    failing = {ObjectId(ids[1]), ObjectId(ids[3])}
    real_delete_one = property_store.collection.delete_one

    def flaky_delete_one(query, *args, **kwargs):
        if query["_id"] in failing:
            raise TransportError("store unavailable")
        return real_delete_one(query, *args, **kwargs)

    monkeypatch.setattr(property_store.collection, "delete_one", flaky_delete_one)
    results = property_store.delete_many(ids + ["missing"])

    assert len(results) == 5
    assert [r.success for r in results] == [True, False, True, False, False]
    assert results[4].error
    remaining = {p.id for p in property_store.list()}
    assert ids[0] not in remaining and ids[2] not in remaining
    assert {ids[1], ids[3]} <= remaining


def test_get_many_preserves_order_and_skips_missing(property_store, make_payload):
    a = property_store.create(make_payload(title="A"))
    b = property_store.create(make_payload(title="B"))
    found = property_store.get_many([b, str(ObjectId()), "junk", a, b])
    assert [p.title for p in found] == ["B", "A"]


def test_search_filters_and_sorts_recent_first(property_store, make_payload, mdb):
    first = property_store.create(make_payload(title="Garden bungalow", address="Karen, Nairobi",
                                               price=90000, category="Bungalow"))
    second = property_store.create(make_payload(title="City studio", address="CBD, Nairobi", price=20000,
                                                category="Bedsitter", notes="close to the garden"))
    old = datetime.now(timezone.utc) - timedelta(days=3)
    mdb["property"].update_one({"_id": ObjectId(first)}, {"$set": {"created_at": old}})

    assert [p.id for p in property_store.search()] == [second, first]
    assert [p.id for p in property_store.search(PropertyFilter(q="GARDEN"))] == [second, first]
    assert [p.id for p in property_store.search(PropertyFilter(location="karen"))] == [first]
    assert [p.id for p in property_store.search(PropertyFilter(category="Bedsitter"))] == [second]
    assert [p.id for p in property_store.search(PropertyFilter(min_price=50000))] == [first]
    assert [p.id for p in property_store.search(PropertyFilter(max_price=50000))] == [second]
    assert [p.id for p in property_store.search(PropertyFilter(q="a.b*"))] == []


def test_search_availability_is_case_insensitive(property_store, make_payload, mdb):
    prop_id = property_store.create(make_payload())
    mdb["property"].update_one({"_id": ObjectId(prop_id)}, {"$set": {"availability": "Taken"}})
    assert [p.id for p in property_store.search(PropertyFilter(availability="taken"))] == [prop_id]
    assert property_store.search(PropertyFilter(availability="available")) == []


def test_migrate_availability(property_store, mdb):
    mdb["property"].insert_many([
        {"title": "a", "availability": "Available"},
        {"title": "b", "availability": "Taken"},
        {"title": "c", "availability": "taken"},
    ])
    assert property_store.migrate_availability() == 2
    assert sorted(d["availability"] for d in mdb["property"].find()) == ["available", "taken", "taken"]
    assert property_store.migrate_availability() == 0


def test_normalize_legacy_document():
    doc = {
        "_id": ObjectId(),
        "title": "Old record",
        "address": "Lavington",
        "price": "35000",
        "type": "2BR",
        "availability": "Taken",
        "landlordContact": "Jane",
        "mediaDetails": [
            {"url": f"{CLOUD}/image/upload/v1/h/a.jpg", "publicId": "h/a", "size": 10, "isVideo": False},
            {"url": f"{CLOUD}/video/upload/v1/h/b.mp4", "publicId": "h/b", "mediaType": "video", "duration": 8},
        ],
        "photos": ["stale"],
    }
    prop = normalize_property(doc)

    assert prop.availability == "taken"
    assert prop.category == "2BR"
    assert prop.landlord_contact == "Jane"
    assert prop.price == 35000
    assert [m.host_id for m in prop.media] == ["h/a", "h/b"]
    assert prop.media[1].duration_seconds == 8
    assert prop.photos == [f"{CLOUD}/image/upload/v1/h/a.jpg"]
    assert prop.videos == [f"{CLOUD}/video/upload/v1/h/b.mp4"]


def test_unreadable_documents_are_skipped(property_store, make_payload, mdb):
    good = property_store.create(make_payload(title="Readable"))
    bad = str(mdb["property"].insert_one({"title": None, "price": "", "address": "Kilimani"}).inserted_id)

    assert [p.id for p in property_store.list()] == [good]
    assert [p.id for p in property_store.search()] == [good]
    assert [p.id for p in property_store.search(PropertyFilter(location="kilimani"))] == [good]
    assert [p.id for p in property_store.get_many([bad, good])] == [good]


def test_get_unreadable_document_is_transport_error(property_store, mdb):
    bad = str(mdb["property"].insert_one({"title": None, "price": ""}).inserted_id)
    with pytest.raises(TransportError):
        property_store.get(bad)
