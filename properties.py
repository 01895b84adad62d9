import logging
import re
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import ValidationError as SchemaError
from pymongo import DESCENDING
from pymongo.database import Database
from pymongo.errors import PyMongoError

from database import create_document, get_documents, utcnow
from errors import DeleteResult, NotFoundError, TransportError, ValidationError
from media import MediaCleanup, derive_url_lists, normalize_media
from schemas import Property, PropertyCreate, PropertyFilter, PropertyUpdate

logger = logging.getLogger(__name__)

COLLECTION = "property"
AVAILABILITY_TOGGLE = {"available": "taken", "taken": "available"}
LEGACY_MEDIA_KEYS = ("mediaDetails", "imageDetails", "videoDetails", "image_details", "video_details")


def to_object_id(prop_id: str) -> ObjectId:
    try:
        return ObjectId(prop_id)
    except (InvalidId, TypeError):
        raise NotFoundError(f"Property {prop_id} not found")


def normalize_property(doc: Dict[str, Any]) -> Property:
    """Single canonical shape for whatever the collection holds."""
    doc = dict(doc)
    doc["id"] = str(doc.pop("_id"))
    availability = str(doc.get("availability") or "available").strip().lower()
    doc["availability"] = availability if availability in AVAILABILITY_TOGGLE else "available"
    if "type" in doc and "category" not in doc:
        doc["category"] = doc.pop("type")
    if "landlordContact" in doc and "landlord_contact" not in doc:
        doc["landlord_contact"] = doc.pop("landlordContact")
    for key in ("createdAt", "updatedAt"):
        if key in doc:
            doc.setdefault(key.replace("At", "_at"), doc.pop(key))
    media = normalize_media(doc)
    doc["media"] = media
    doc.update(derive_url_lists(media))
    for key in LEGACY_MEDIA_KEYS:
        doc.pop(key, None)
    return Property.model_validate(doc)


def normalize_readable(docs) -> List[Property]:
    """Normalize a batch, skipping documents that no longer fit the Property shape."""
    out = []
    for doc in docs:
        try:
            out.append(normalize_property(doc))
        except SchemaError as e:
            logger.warning("Skipping unreadable property %s: %s", doc.get("_id"), e)
    return out


class PropertyStore:
    def __init__(self, database: Database, cleanup: MediaCleanup):
        self.db = database
        self.collection = database[COLLECTION]
        self.cleanup = cleanup

    def _transport(self, action: str, e: Exception) -> TransportError:
        logger.error("Property store %s failed: %s", action, e)
        return TransportError(f"Property store {action} failed")

    def create(self, payload: Union[PropertyCreate, Dict[str, Any]]) -> str:
        if not isinstance(payload, PropertyCreate):
            try:
                payload = PropertyCreate.model_validate(payload)
            except SchemaError as e:
                raise ValidationError(str(e)) from e
        doc = payload.model_dump()
        doc.update(derive_url_lists(payload.media))
        try:
            new_id = create_document(COLLECTION, doc, database=self.db)
        except PyMongoError as e:
            raise self._transport("insert", e) from e
        logger.info("Created property %s (%d photos, %d videos)",
                    new_id, len(doc["photos"]), len(doc["videos"]))
        return new_id

    def list(self) -> List[Property]:
        try:
            return normalize_readable(get_documents(COLLECTION, database=self.db))
        except PyMongoError as e:
            raise self._transport("list", e) from e

    def search(self, filters: Optional[PropertyFilter] = None) -> List[Property]:
        """Filtered listing, most recent first."""
        f = filters or PropertyFilter()
        query: Dict[str, Any] = {}
        clauses = []
        if f.q and f.q.strip():
            pattern = re.escape(f.q.strip())
            clauses.append({"$or": [
                {"title": {"$regex": pattern, "$options": "i"}},
                {"notes": {"$regex": pattern, "$options": "i"}},
                {"address": {"$regex": pattern, "$options": "i"}},
            ]})
        if f.location and f.location.strip():
            clauses.append({"address": {"$regex": re.escape(f.location.strip()), "$options": "i"}})
        if f.category:
            clauses.append({"$or": [{"category": f.category}, {"type": f.category}]})
        if f.availability:
            clauses.append({"availability": {"$regex": f"^{re.escape(f.availability)}$", "$options": "i"}})
        if f.min_price is not None or f.max_price is not None:
            price_cond = {}
            if f.min_price is not None:
                price_cond["$gte"] = float(f.min_price)
            if f.max_price is not None:
                price_cond["$lte"] = float(f.max_price)
            clauses.append({"price": price_cond})
        if clauses:
            query["$and"] = clauses
        try:
            docs = self.collection.find(query).sort("created_at", DESCENDING)
            return normalize_readable(docs)
        except PyMongoError as e:
            raise self._transport("search", e) from e

    def get(self, prop_id: str) -> Property:
        oid = to_object_id(prop_id)
        try:
            doc = self.collection.find_one({"_id": oid})
        except PyMongoError as e:
            raise self._transport("read", e) from e
        if not doc:
            raise NotFoundError(f"Property {prop_id} not found")
        try:
            return normalize_property(doc)
        except SchemaError as e:
            raise self._transport("read", e) from e

    def get_many(self, prop_ids: List[str]) -> List[Property]:
        """Batch read. Unknown or malformed ids are skipped; order follows prop_ids."""
        oids = []
        for prop_id in prop_ids:
            try:
                oids.append(to_object_id(prop_id))
            except NotFoundError:
                continue
        if not oids:
            return []
        try:
            docs = list(self.collection.find({"_id": {"$in": oids}}))
        except PyMongoError as e:
            raise self._transport("batch read", e) from e
        by_id = {p.id: p for p in normalize_readable(docs)}
        out = []
        seen = set()
        for prop_id in prop_ids:
            if prop_id in by_id and prop_id not in seen:
                seen.add(prop_id)
                out.append(by_id[prop_id])
        return out

    def update(self, prop_id: str, fields: Union[PropertyUpdate, Dict[str, Any]]) -> None:
        if not isinstance(fields, PropertyUpdate):
            try:
                fields = PropertyUpdate.model_validate(fields)
            except SchemaError as e:
                raise ValidationError(str(e)) from e
        updates = fields.model_dump(exclude_none=True)
        if fields.media is not None:
            if not fields.media:
                raise ValidationError("A property needs at least one photo or video")
            updates.update(derive_url_lists(fields.media))
            unset = {key: "" for key in LEGACY_MEDIA_KEYS}
        else:
            unset = {}
        updates["updated_at"] = utcnow()
        change: Dict[str, Any] = {"$set": updates}
        if unset:
            change["$unset"] = unset
        oid = to_object_id(prop_id)
        try:
            res = self.collection.update_one({"_id": oid}, change)
        except PyMongoError as e:
            raise self._transport("update", e) from e
        if res.matched_count == 0:
            raise NotFoundError(f"Property {prop_id} not found")

    def toggle_availability(self, prop_id: str) -> str:
        prop = self.get(prop_id)
        new_status = AVAILABILITY_TOGGLE[prop.availability]
        self.update(prop_id, {"availability": new_status})
        return new_status

    def delete(self, prop_id: str) -> None:
        """Delete a property after best-effort removal of its host media."""
        oid = to_object_id(prop_id)
        try:
            doc = self.collection.find_one({"_id": oid})
        except PyMongoError as e:
            raise self._transport("read", e) from e
        if not doc:
            raise NotFoundError(f"Property {prop_id} not found")
        # raw document, so legacy media shapes are still visible to the cleanup
        deleted = self.cleanup.cleanup(doc)
        try:
            self.collection.delete_one({"_id": oid})
        except PyMongoError as e:
            raise self._transport("delete", e) from e
        logger.info("Deleted property %s (%d media removed from host)", prop_id, deleted)

    def delete_many(self, prop_ids: List[str]) -> List[DeleteResult]:
        results = []
        for prop_id in prop_ids:
            try:
                self.delete(prop_id)
                results.append(DeleteResult(prop_id, True))
            except Exception as e:
                logger.error("Failed to delete property %s: %s", prop_id, e)
                results.append(DeleteResult(prop_id, False, str(e)))
        successful = sum(1 for r in results if r.success)
        logger.info("Bulk delete completed: %d successful, %d failed", successful, len(results) - successful)
        return results

    def migrate_availability(self) -> int:
        """Rewrite legacy "Available"/"Taken" values to lowercase. Returns how many changed."""
        changed = 0
        try:
            for legacy, canonical in (("Available", "available"), ("Taken", "taken")):
                res = self.collection.update_many({"availability": legacy}, {"$set": {"availability": canonical}})
                changed += res.modified_count
        except PyMongoError as e:
            raise self._transport("migration", e) from e
        if changed:
            logger.info("Migrated availability casing on %d properties", changed)
        return changed
