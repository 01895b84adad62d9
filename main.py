import json
import logging
import logging.config
import os
import threading
from functools import lru_cache
from typing import List, Optional

from fastapi import Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.concurrency import run_in_threadpool

import media
import settings
from database import db
from errors import NotFoundError, TransportError, ValidationError
from properties import PropertyStore
from schemas import (
    BulkDeleteRequest,
    MediaDeleteRequest,
    PropertyCreate,
    PropertyFilter,
    PropertyUpdate,
    ShortlistCreate,
)
from shortlists import (
    FAILED_MESSAGE,
    NOT_FOUND_MESSAGE,
    ResolutionState,
    ShortlistResolver,
    ShortlistStore,
    generate_shareable_links,
    public_view,
)

logging.config.dictConfig(settings.LOGGING)
logger = logging.getLogger(__name__)

app = FastAPI(title="HouseHunt API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Dependencies

@lru_cache(maxsize=1)
def get_media_host() -> media.MediaHost:
    """One client, and so one requests session, for the whole process."""
    return media.MediaHost()


def get_property_store(host: media.MediaHost = Depends(get_media_host)) -> PropertyStore:
    return PropertyStore(db, media.MediaCleanup(host.delete))


def get_shortlist_store() -> ShortlistStore:
    return ShortlistStore(db)


# Errors

@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc) or "Not found"})


@app.exception_handler(ValidationError)
async def validation_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


@app.exception_handler(TransportError)
async def transport_handler(request: Request, exc: TransportError):
    return JSONResponse(status_code=503, content={"detail": "Service temporarily unavailable. Please try again."})


@app.get("/")
def root():
    return {"message": "HouseHunt API running"}


# Property CRUD
@app.get("/api/properties")
def list_properties(q: Optional[str] = None, location: Optional[str] = None, category: Optional[str] = None,
                    availability: Optional[str] = None, min_price: Optional[float] = None,
                    max_price: Optional[float] = None, store: PropertyStore = Depends(get_property_store)):
    filters = PropertyFilter(q=q, location=location, category=category, availability=availability,
                             min_price=min_price, max_price=max_price)
    return {"items": store.search(filters)}


@app.get("/api/properties/{prop_id}")
def get_property(prop_id: str, store: PropertyStore = Depends(get_property_store)):
    return store.get(prop_id)


@app.post("/api/properties", status_code=201)
def create_property(payload: PropertyCreate, store: PropertyStore = Depends(get_property_store)):
    new_id = store.create(payload)
    return store.get(new_id)


@app.patch("/api/properties/{prop_id}")
def update_property(prop_id: str, payload: PropertyUpdate, store: PropertyStore = Depends(get_property_store)):
    if not payload.model_dump(exclude_none=True):
        return {"message": "No changes"}
    store.update(prop_id, payload)
    return store.get(prop_id)


@app.post("/api/properties/{prop_id}/availability")
def toggle_availability(prop_id: str, store: PropertyStore = Depends(get_property_store)):
    return {"id": prop_id, "availability": store.toggle_availability(prop_id)}


@app.post("/api/properties/bulk-delete")
def bulk_delete(payload: BulkDeleteRequest, store: PropertyStore = Depends(get_property_store)):
    results = store.delete_many(payload.ids)
    successful = sum(1 for r in results if r.success)
    return {
        "results": [r.as_dict() for r in results],
        "successful": successful,
        "failed": len(results) - successful,
    }


@app.delete("/api/properties/{prop_id}")
def delete_property(prop_id: str, store: PropertyStore = Depends(get_property_store)):
    store.delete(prop_id)
    return {"deleted": True}


@app.post("/api/admin/migrate-availability")
def migrate_availability(store: PropertyStore = Depends(get_property_store)):
    return {"migrated": store.migrate_availability()}


# Media host
async def stream_upload_events(request: Request, host: media.MediaHost, batch: List[media.UploadFile]):
    """NDJSON upload progress. A client disconnect cancels the files not yet started."""
    cancel = threading.Event()
    events = media.upload_stream(host, batch, cancel)
    while True:
        if not cancel.is_set() and await request.is_disconnected():
            logger.info("Upload client disconnected, cancelling the rest of the batch")
            cancel.set()
        event = await run_in_threadpool(next, events, None)
        if event is None:
            break
        yield json.dumps(event.as_dict()) + "\n"


@app.post("/api/media/upload")
async def upload_media(request: Request, files: List[UploadFile] = File(...),
                       host: media.MediaHost = Depends(get_media_host)):
    batch = []
    for f in files:
        batch.append(media.UploadFile(
            filename=f.filename or "upload",
            content_type=f.content_type or "",
            content=await f.read(),
        ))

    logger.info("Uploading %d files to media host", len(batch))
    return StreamingResponse(stream_upload_events(request, host, batch), media_type="application/x-ndjson")


@app.post("/api/media/delete")
def delete_media(payload: MediaDeleteRequest, host: media.MediaHost = Depends(get_media_host)):
    result = host.destroy(payload.identifier, payload.resourceKind)
    return {"deleted": True, "result": result.get("result")}


# Shortlists
@app.post("/api/shortlists", status_code=201)
def create_shortlist(payload: ShortlistCreate, shortlists: ShortlistStore = Depends(get_shortlist_store)):
    shortlist = shortlists.create_shortlist(payload.client_id, payload.property_ids, payload.client_name)
    doc = shortlist.model_dump()
    doc["links"] = generate_shareable_links(shortlist.share_token, settings.FRONTEND_URL)
    return doc


@app.get("/api/shortlists/{token}")
def view_shortlist(token: str, shortlists: ShortlistStore = Depends(get_shortlist_store),
                   properties: PropertyStore = Depends(get_property_store)):
    resolution = ShortlistResolver(shortlists, properties).resolve(token)
    if resolution.state == ResolutionState.NOT_FOUND:
        raise HTTPException(404, NOT_FOUND_MESSAGE)
    if resolution.state == ResolutionState.FAILED:
        raise HTTPException(503, FAILED_MESSAGE)
    return public_view(resolution.view)


@app.delete("/api/shortlists/{shortlist_id}")
def deactivate_shortlist(shortlist_id: str, shortlists: ShortlistStore = Depends(get_shortlist_store)):
    shortlists.deactivate(shortlist_id)
    return {"deactivated": True}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
