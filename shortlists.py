import enum
import logging
import uuid
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional
from urllib.parse import quote, urlsplit

from bson import ObjectId
from bson.errors import InvalidId
from pymongo.database import Database
from pymongo.errors import PyMongoError

from database import create_document
from errors import NotFoundError, TransportError
from properties import PropertyStore
from schemas import (
    DEFAULT_SHORTLIST_NAME,
    Property,
    PublicProperty,
    PublicShortlistView,
    Shortlist,
    ShortlistView,
)

logger = logging.getLogger(__name__)

COLLECTION = "shortlist"
NOT_FOUND_MESSAGE = "Shortlist not found or has expired."
FAILED_MESSAGE = "Failed to load shortlist. Please try again."


def _serialize(doc) -> Shortlist:
    doc = dict(doc)
    doc["id"] = str(doc.pop("_id"))
    return Shortlist.model_validate(doc)


def unique_ids(ids: Iterable[str]) -> List[str]:
    seen = set()
    out = []
    for i in ids:
        if i and i not in seen:
            seen.add(i)
            out.append(i)
    return out


class ShortlistStore:
    def __init__(self, database: Database):
        self.collection = database[COLLECTION]
        self.db = database

    def create_shortlist(self, client_id: Optional[str], property_ids: Iterable[str],
                         client_name: Optional[str] = None) -> Shortlist:
        shortlist = Shortlist(
            # placeholder owner, not resolvable to a client record
            client_id=client_id or f"clients/{uuid.uuid4()}",
            client_name=client_name or DEFAULT_SHORTLIST_NAME,
            property_ids=unique_ids(property_ids),
            share_token=str(uuid.uuid4()),
            is_active=True,
        )
        doc = shortlist.model_dump(exclude={"id", "created_at"})
        try:
            new_id = create_document(COLLECTION, doc, database=self.db)
            created = self.collection.find_one({"_id": ObjectId(new_id)})
        except PyMongoError as e:
            logger.error("Shortlist insert failed: %s", e)
            raise TransportError("Shortlist store insert failed") from e
        logger.info("Created shortlist %s with %d properties", new_id, len(shortlist.property_ids))
        return _serialize(created)

    def get_by_token(self, token: str) -> Optional[Shortlist]:
        """Active shortlist for a share token. Unknown and deactivated tokens both give None."""
        if not token or not isinstance(token, str):
            return None
        try:
            doc = self.collection.find_one({"share_token": token, "is_active": True})
        except PyMongoError as e:
            logger.error("Shortlist lookup failed: %s", e)
            raise TransportError("Shortlist store lookup failed") from e
        return _serialize(doc) if doc else None

    def deactivate(self, shortlist_id: str) -> None:
        try:
            oid = ObjectId(shortlist_id)
        except (InvalidId, TypeError):
            raise NotFoundError(f"Shortlist {shortlist_id} not found")
        try:
            res = self.collection.update_one({"_id": oid}, {"$set": {"is_active": False}})
        except PyMongoError as e:
            logger.error("Shortlist deactivation failed: %s", e)
            raise TransportError("Shortlist store update failed") from e
        if res.matched_count == 0:
            raise NotFoundError(f"Shortlist {shortlist_id} not found")
        logger.info("Deactivated shortlist %s", shortlist_id)


class ResolutionState(str, enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    RESOLVED = "resolved"
    NOT_FOUND = "not_found"
    FAILED = "failed"


@dataclass
class ShortlistResolution:
    state: ResolutionState
    view: Optional[ShortlistView] = None
    message: Optional[str] = None


class ShortlistResolver:
    """Turns a share token into the shortlist with its properties. No caching."""

    def __init__(self, shortlists: ShortlistStore, properties: PropertyStore):
        self.shortlists = shortlists
        self.properties = properties
        self.state = ResolutionState.IDLE

    def resolve(self, token: str) -> ShortlistResolution:
        self.state = ResolutionState.LOADING
        try:
            shortlist = self.shortlists.get_by_token(token)
            if shortlist is None:
                return self._finish(ShortlistResolution(ResolutionState.NOT_FOUND, message=NOT_FOUND_MESSAGE))
            # properties deleted since sharing are dropped
            found = self.properties.get_many(shortlist.property_ids)
        except TransportError as e:
            logger.error("Failed to resolve shortlist token: %s", e)
            return self._finish(ShortlistResolution(ResolutionState.FAILED, message=FAILED_MESSAGE))
        view = ShortlistView(
            id=shortlist.id,
            client_name=shortlist.client_name,
            share_token=shortlist.share_token,
            created_at=shortlist.created_at,
            properties=found,
        )
        return self._finish(ShortlistResolution(ResolutionState.RESOLVED, view=view))

    def _finish(self, resolution: ShortlistResolution) -> ShortlistResolution:
        self.state = resolution.state
        return resolution


def general_area(address: Optional[str]) -> str:
    if not address or not address.strip():
        return "Nairobi Area"
    first = address.split(",")[0].strip()
    return first if first.endswith("Area") else f"{first} Area"


def public_property(prop: Property) -> PublicProperty:
    return PublicProperty(
        id=prop.id,
        title=prop.title,
        area=general_area(prop.address),
        price=prop.price,
        category=prop.category,
        availability=prop.availability,
        notes=prop.notes,
        photos=prop.photos,
        videos=prop.videos,
    )


def public_view(view: ShortlistView) -> PublicShortlistView:
    return PublicShortlistView(
        client_name=view.client_name,
        share_token=view.share_token,
        created_at=view.created_at,
        properties=[public_property(p) for p in view.properties],
    )


def generate_shareable_links(share_token: str, base_url: str) -> Dict[str, str]:
    url = f"{base_url.rstrip('/')}/shortlist/{share_token}"
    encoded = quote(url, safe="")
    return {
        "direct": url,
        "whatsapp": f"https://wa.me/?text={quote('Check out these properties I found for you: ')}{encoded}",
        "email": (
            "mailto:?subject=" + quote("Property Shortlist")
            + "&body=" + quote("I've created a shortlist of properties that might interest you. "
                               "Check them out here: ") + encoded
        ),
    }


def extract_share_token(url: str) -> Optional[str]:
    """Token from /shortlist/<token> or #/shortlist/<token>; query strings are ignored."""
    if not url:
        return None
    parts = urlsplit(url)
    for candidate in (parts.path, parts.fragment):
        if "/shortlist/" in candidate:
            token = candidate.split("/shortlist/", 1)[1]
            token = token.split("?", 1)[0].split("/", 1)[0]
            return token or None
    return None
