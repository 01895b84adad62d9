"""
Media host (Cloudinary) helpers.

- extract_media_id: URL -> host identifier
- collect_media_for_deletion / MediaCleanup: what to delete when a property goes away
- MediaHost: unsigned uploads, signed or proxied deletions
- upload_stream: batch upload reported as a stream of UploadEvent
"""

import logging
import re
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, List, NamedTuple, Optional, Tuple

import cloudinary
import cloudinary.exceptions
import cloudinary.uploader
import requests
from pydantic import ValidationError as SchemaError

import settings
from errors import TransportError, ValidationError
from schemas import MediaItem

logger = logging.getLogger(__name__)

_VERSION_SEGMENT = re.compile(r"^v\d+$")

IMAGE_TYPES = ("image/jpeg", "image/png", "image/webp", "image/gif")
VIDEO_TYPES = ("video/mp4", "video/webm", "video/mov", "video/avi", "video/quicktime")
MAX_IMAGE_BYTES = 10 * 1024 * 1024
MAX_VIDEO_BYTES = 50 * 1024 * 1024

UNIFIED_KEYS = ("media", "mediaDetails")
IMAGE_DETAIL_KEYS = ("image_details", "imageDetails")
VIDEO_DETAIL_KEYS = ("video_details", "videoDetails")


class MediaRef(NamedTuple):
    identifier: str
    resource_kind: str


# Codec

def extract_media_id(url: Any) -> Optional[str]:
    """
    https://res.cloudinary.com/<cloud>/image/upload/v1758465858/househunt/abc123.jpg
    -> househunt/abc123

    Returns None for anything that does not look like a host delivery URL.
    """
    try:
        if not isinstance(url, str) or not url:
            return None
        parts = url.split("/")
        if "upload" not in parts:
            return None
        start = parts.index("upload") + 1
        if start >= len(parts):
            return None
        if _VERSION_SEGMENT.match(parts[start]):
            start += 1
        path = "/".join(parts[start:])
        dot = path.rfind(".")
        if path.rfind("/") < dot < len(path) - 1:
            path = path[:dot]
        return path or None
    except Exception:
        logger.debug("Could not extract media id from %r", url, exc_info=True)
        return None


# Document shapes

def _first_list(doc: Dict[str, Any], keys: Tuple[str, ...]) -> Optional[list]:
    for key in keys:
        value = doc.get(key)
        if isinstance(value, list):
            return value
    return None


def _entry_kind(entry: Dict[str, Any], default: str) -> str:
    kind = entry.get("kind") or entry.get("mediaType") or entry.get("resource_type")
    if kind in ("image", "video"):
        return kind
    if entry.get("isVideo") is True:
        return "video"
    if entry.get("isVideo") is False:
        return "image"
    return default


def media_item_from_entry(entry: Any, default_kind: str = "image") -> Optional[MediaItem]:
    """Build a MediaItem from a stored entry, canonical or legacy camelCase."""
    if isinstance(entry, MediaItem):
        return entry
    if isinstance(entry, str):
        return MediaItem(url=entry, kind=default_kind)
    if not isinstance(entry, dict):
        return None
    url = entry.get("url") or entry.get("secure_url") or ""
    host_id = entry.get("host_id") or entry.get("hostId") or entry.get("publicId") or entry.get("public_id")
    if not (url or host_id):
        return None
    return MediaItem(
        url=url,
        host_id=host_id,
        original_name=entry.get("original_name") or entry.get("originalName"),
        byte_size=entry.get("byte_size") or entry.get("size") or entry.get("bytes"),
        width=entry.get("width"),
        height=entry.get("height"),
        duration_seconds=entry.get("duration_seconds") or entry.get("duration"),
        kind=_entry_kind(entry, default_kind),
    )


def _items(entries: Iterable[Any], default_kind: str) -> List[MediaItem]:
    out = []
    for entry in entries:
        try:
            item = media_item_from_entry(entry, default_kind)
        except SchemaError:
            logger.debug("Skipping malformed media entry %r", entry)
            continue
        if item is not None:
            out.append(item)
    return out


def media_strategies(doc: Dict[str, Any]) -> Iterator[List[MediaItem]]:
    """Candidate media lists in priority order: unified metadata, split metadata, bare URLs."""
    unified = _first_list(doc, UNIFIED_KEYS)
    if unified is not None:
        yield _items(unified, "image")

    images = _first_list(doc, IMAGE_DETAIL_KEYS)
    videos = _first_list(doc, VIDEO_DETAIL_KEYS)
    if images is not None or videos is not None:
        yield _items(images or [], "image") + _items(videos or [], "video")

    yield _items(doc.get("photos") or [], "image") + _items(doc.get("videos") or [], "video")


def normalize_media(doc: Dict[str, Any]) -> List[MediaItem]:
    for items in media_strategies(doc):
        if items:
            return items
    return []


def derive_url_lists(media: Iterable[MediaItem]) -> Dict[str, List[str]]:
    """photos/videos projections of the media list, kept in step at write time."""
    media = list(media)
    return {
        "photos": [m.url for m in media if m.kind == "image"],
        "videos": [m.url for m in media if m.kind == "video"],
    }


# Cleanup

def _refs(items: Iterable[MediaItem]) -> List[MediaRef]:
    refs = []
    for item in items:
        identifier = item.host_id or extract_media_id(item.url)
        if identifier:
            refs.append(MediaRef(identifier, item.kind))
    return refs


def collect_media_for_deletion(prop: Any) -> List[MediaRef]:
    if hasattr(prop, "model_dump"):
        prop = prop.model_dump()
    if not isinstance(prop, dict):
        return []
    for items in media_strategies(prop):
        refs = _refs(items)
        if refs:
            return refs
    return []


class MediaCleanup:
    """Best-effort deletion of host media. Never raises."""

    def __init__(self, deleter: Callable[[str, str], Any]):
        self.deleter = deleter

    def delete_all(self, refs: Iterable[MediaRef]) -> int:
        deleted = 0
        for ref in refs:
            try:
                self.deleter(ref.identifier, ref.resource_kind)
                deleted += 1
            except Exception as e:
                logger.warning("Failed to delete %s %s from media host: %s",
                               ref.resource_kind, ref.identifier, e)
        return deleted

    def cleanup(self, prop: Any) -> int:
        refs = collect_media_for_deletion(prop)
        logger.debug("Media to delete: %s", refs)
        if not refs:
            return 0
        return self.delete_all(refs)


# Host client

def validate_media_file(content_type: Optional[str], size: int) -> str:
    """Returns the resource kind for an acceptable upload, raises ValidationError otherwise."""
    content_type = (content_type or "").lower()
    if content_type in IMAGE_TYPES:
        if size > MAX_IMAGE_BYTES:
            raise ValidationError(f"Image too large: {size / 1024 / 1024:.1f}MB (max 10MB for images)")
        kind = "image"
    elif content_type in VIDEO_TYPES:
        if size > MAX_VIDEO_BYTES:
            raise ValidationError(f"File too large: {size / 1024 / 1024:.1f}MB (max 50MB)")
        kind = "video"
    else:
        raise ValidationError(f"Unsupported file type: {content_type or 'unknown'}")
    if size <= 0:
        raise ValidationError("Empty file")
    return kind


class MediaHost:
    API_BASE = "https://api.cloudinary.com/v1_1"

    def __init__(self, cloud_name: str = None, upload_preset: str = None, folder: str = None,
                 api_key: str = None, api_secret: str = None, delete_url: str = None,
                 timeout: float = None, session: requests.Session = None):
        self.cloud_name = settings.CLOUDINARY_CLOUD_NAME if cloud_name is None else cloud_name
        self.upload_preset = settings.CLOUDINARY_UPLOAD_PRESET if upload_preset is None else upload_preset
        self.folder = settings.CLOUDINARY_UPLOAD_FOLDER if folder is None else folder
        self.api_key = settings.CLOUDINARY_API_KEY if api_key is None else api_key
        self.api_secret = settings.CLOUDINARY_API_SECRET if api_secret is None else api_secret
        self.delete_url = settings.MEDIA_DELETE_URL if delete_url is None else delete_url
        self.timeout = settings.MEDIA_TIMEOUT if timeout is None else timeout
        self.session = session or requests.Session()

    def _endpoint(self, kind: str, action: str) -> str:
        if not self.cloud_name:
            raise TransportError("Media host is not configured (CLOUDINARY_CLOUD_NAME)")
        return f"{self.API_BASE}/{self.cloud_name}/{kind}/{action}"

    def _post(self, url: str, **kwargs) -> Dict[str, Any]:
        try:
            response = self.session.post(url, timeout=self.timeout, **kwargs)
            response.raise_for_status()
            return response.json()
        except requests.RequestException as e:
            logger.error("Media host request to %s failed: %s", url, e)
            raise TransportError(str(e)) from e
        except ValueError as e:
            raise TransportError(f"Invalid response from media host: {e}") from e

    def upload(self, filename: str, content: bytes, content_type: str) -> MediaItem:
        kind = validate_media_file(content_type, len(content))
        result = self._post(
            self._endpoint(kind, "upload"),
            files={"file": (filename, content, content_type)},
            data={"upload_preset": self.upload_preset, "folder": self.folder},
        )
        return MediaItem(
            url=result["secure_url"],
            host_id=result.get("public_id"),
            original_name=filename,
            byte_size=result.get("bytes"),
            width=result.get("width"),
            height=result.get("height"),
            duration_seconds=result.get("duration"),
            kind=kind,
        )

    def destroy(self, identifier: str, resource_kind: str = "image") -> Dict[str, Any]:
        """Signed deletion straight against the host. Needs API credentials."""
        if not (self.cloud_name and self.api_key and self.api_secret):
            raise TransportError("Media host credentials are not configured")
        try:
            result = cloudinary.uploader.destroy(
                identifier,
                resource_type=resource_kind,
                invalidate=True,
                cloud_name=self.cloud_name,
                api_key=self.api_key,
                api_secret=self.api_secret,
                timeout=self.timeout,
            )
        except cloudinary.exceptions.Error as e:
            logger.error("Media host destroy of %s failed: %s", identifier, e)
            raise TransportError(str(e)) from e
        # "not found" means it is already gone
        if result.get("result") not in ("ok", "not found"):
            raise TransportError(f"Media host refused to delete {identifier}: {result.get('result')}")
        return result

    def delete(self, identifier: str, resource_kind: str = "image") -> Dict[str, Any]:
        if self.api_key and self.api_secret:
            return self.destroy(identifier, resource_kind)
        return self._post(self.delete_url, json={"identifier": identifier, "resourceKind": resource_kind})


# Upload progress

@dataclass
class UploadFile:
    filename: str
    content_type: str
    content: bytes


@dataclass
class UploadEvent:
    index: int
    filename: str
    status: str  # started | completed | failed | cancelled
    percent: int = 0
    item: Optional[MediaItem] = None
    error: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        out = {"index": self.index, "filename": self.filename, "status": self.status, "percent": self.percent}
        if self.item is not None:
            out["item"] = self.item.model_dump()
        if self.error is not None:
            out["error"] = self.error
        return out


def upload_stream(host: MediaHost, files: List[UploadFile],
                  cancel: Optional[threading.Event] = None) -> Iterator[UploadEvent]:
    """Upload files one after another, yielding progress events. Checks `cancel` between files."""
    for index, f in enumerate(files):
        if cancel is not None and cancel.is_set():
            for rest, pending in enumerate(files[index:], start=index):
                yield UploadEvent(rest, pending.filename, "cancelled")
            return
        yield UploadEvent(index, f.filename, "started", 0)
        try:
            item = host.upload(f.filename, f.content, f.content_type)
        except (ValidationError, TransportError) as e:
            logger.warning("Upload of %s failed: %s", f.filename, e)
            yield UploadEvent(index, f.filename, "failed", 0, error=str(e))
            continue
        yield UploadEvent(index, f.filename, "completed", 100, item=item)
