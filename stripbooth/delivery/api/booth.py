# stripbooth/delivery/api/booth.py
from fastapi import APIRouter, Body, Request, Depends, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from fastapi.responses import JSONResponse, Response
from stripbooth.delivery.schemas.body import (
    AddStickerBody, CreateSessionBody, FilterBody, FinishBody, UpdateStickerBody,
)
from stripbooth.domain import catalog
from stripbooth.domain.booth_service import BoothService
from stripbooth.domain.errors import (
    AssetLoadFailure, BoothError, ComposeCancelled, FlattenInProgress, InsufficientPhotos, InvalidStickerValue,
    SessionNotFound, SessionNotReady, StickerNotFound, UnknownFilter, UnknownTemplate,
)
from stripbooth.config.settings import settings
from typing import List
import secrets
import logging
import traceback
import asyncio

router = APIRouter()
security = HTTPBasic()
logger = logging.getLogger("uvicorn.error")

ENDPOINT_TIMEOUT_SECONDS = 55

_STATUS_BY_ERROR = [
    ((SessionNotFound, StickerNotFound, UnknownTemplate), status.HTTP_404_NOT_FOUND),
    ((UnknownFilter, InvalidStickerValue, InsufficientPhotos), status.HTTP_422_UNPROCESSABLE_ENTITY),
    ((AssetLoadFailure,), status.HTTP_422_UNPROCESSABLE_ENTITY),
    ((FlattenInProgress, ComposeCancelled, SessionNotReady), status.HTTP_409_CONFLICT),
]

def verify_basic_auth(creds: HTTPBasicCredentials = Depends(security)) -> None:
    ok_user = secrets.compare_digest(creds.username, settings.BASIC_AUTH_USERNAME)
    ok_pass = secrets.compare_digest(creds.password, settings.BASIC_AUTH_PASSWORD)
    if not (ok_user and ok_pass):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Basic"},
        )

def get_service(request: Request) -> BoothService:
    service = getattr(request.app.state, "booth_service", None)
    if service is None:
        logger.error("Booth service not initialized")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is not ready. Please try again in a moment.",
        )
    return service

def to_http(e: BoothError) -> HTTPException:
    for kinds, code in _STATUS_BY_ERROR:
        if isinstance(e, kinds):
            detail = str(e)
            if isinstance(e, AssetLoadFailure):
                detail = f"{e} Please retry with another photo."
            return HTTPException(status_code=code, detail=detail)
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

def require_photo_count(template, photos: List[str]) -> None:
    # the composer copes with missing photos, but requests must bring enough
    if len(photos) < template.photo_count:
        raise InsufficientPhotos(
            f"Template '{template.id}' butuh {template.photo_count} foto, diterima {len(photos)}."
        )

def png_response(png: bytes, filename: str = None) -> Response:
    headers = {"Content-Disposition": f'attachment; filename="{filename}"'} if filename else None
    return Response(content=png, media_type="image/png", headers=headers)

# --- catalog ---

@router.get("/templates")
async def list_templates():
    return [t.model_dump() for t in catalog.TEMPLATES]

@router.get("/stickers")
async def list_stickers():
    return [s.model_dump() for s in catalog.STICKER_ASSETS]

# --- sessions ---

@router.post("/sessions", dependencies=[Depends(verify_basic_auth)], status_code=status.HTTP_201_CREATED)
async def create_session(body: CreateSessionBody, wait: bool = True, service: BoothService = Depends(get_service)):
    try:
        template = body.template or catalog.get_template(body.template_id)
        require_photo_count(template, body.photos)
        logger.info(f"=== ENDPOINT START create session (template={template.id}, photos={len(body.photos)}) ===")
        session = await asyncio.wait_for(
            service.create_session(template, body.photos, wait=wait),
            timeout=ENDPOINT_TIMEOUT_SECONDS,
        )
        logger.info(f"=== ENDPOINT SUCCESS session {session.id} ({session.status}) ===")
        return session.to_dict()
    except asyncio.TimeoutError:
        logger.error(f"=== ENDPOINT TIMEOUT create session after {ENDPOINT_TIMEOUT_SECONDS}s ===")
        raise HTTPException(status_code=504, detail="Compositing timed out")
    except BoothError as e:
        raise to_http(e)
    except Exception as e:
        logger.error(f"=== ENDPOINT ERROR create session: {e} ===\n{traceback.format_exc()}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error.",
        )

@router.get("/sessions/{session_id}")
async def get_session(session_id: str, service: BoothService = Depends(get_service)):
    try:
        return service.store.get(session_id).to_dict()
    except BoothError as e:
        raise to_http(e)

@router.put("/sessions/{session_id}/photos", dependencies=[Depends(verify_basic_auth)])
async def replace_photos(session_id: str, photos: List[str] = Body(..., min_length=1), service: BoothService = Depends(get_service)):
    try:
        require_photo_count(service.store.get(session_id).template, photos)
        await service.update_photos(session_id, photos)
        return service.store.get(session_id).to_dict()
    except BoothError as e:
        raise to_http(e)

@router.delete("/sessions/{session_id}", dependencies=[Depends(verify_basic_auth)])
async def discard_session(session_id: str, service: BoothService = Depends(get_service)):
    try:
        service.cancel_session(session_id)
        return {"session_id": session_id, "status": "cancelled"}
    except BoothError as e:
        raise to_http(e)

@router.get("/sessions/{session_id}/composite")
async def get_composite(session_id: str, service: BoothService = Depends(get_service)):
    try:
        return png_response(await service.composite_png(session_id))
    except BoothError as e:
        raise to_http(e)

@router.get("/sessions/{session_id}/preview")
async def get_preview(session_id: str, service: BoothService = Depends(get_service)):
    try:
        return png_response(await service.preview_png(session_id))
    except BoothError as e:
        raise to_http(e)

@router.put("/sessions/{session_id}/filter", dependencies=[Depends(verify_basic_auth)])
async def set_filter(session_id: str, body: FilterBody, service: BoothService = Depends(get_service)):
    try:
        session = service.store.get(session_id)
        session.set_filter(body.filter)
        return {"session_id": session_id, "filter": session.filter}
    except BoothError as e:
        raise to_http(e)

# --- stickers ---

@router.post("/sessions/{session_id}/stickers", dependencies=[Depends(verify_basic_auth)], status_code=status.HTTP_201_CREATED)
async def add_sticker(session_id: str, body: AddStickerBody, service: BoothService = Depends(get_service)):
    try:
        return service.store.get(session_id).stickers.add(body.glyph_type).to_dict()
    except BoothError as e:
        raise to_http(e)

@router.post("/sessions/{session_id}/stickers/{sticker_id}/select", dependencies=[Depends(verify_basic_auth)])
async def select_sticker(session_id: str, sticker_id: int, service: BoothService = Depends(get_service)):
    try:
        return service.store.get(session_id).stickers.select(sticker_id).to_dict()
    except BoothError as e:
        raise to_http(e)

@router.patch("/sessions/{session_id}/stickers/{sticker_id}", dependencies=[Depends(verify_basic_auth)])
async def update_sticker(session_id: str, sticker_id: int, body: UpdateStickerBody, service: BoothService = Depends(get_service)):
    try:
        layer = service.store.get(session_id).stickers
        sticker = layer.get(sticker_id)
        # the body is already finite; scale is the only bound left to check, apply it first
        if body.scale is not None:
            layer.set_scale(sticker_id, body.scale)
        if body.rotation is not None:
            layer.set_rotation(sticker_id, body.rotation)
        if body.x is not None or body.y is not None:
            layer.move(sticker_id, sticker.x if body.x is None else body.x, sticker.y if body.y is None else body.y)
        return sticker.to_dict()
    except BoothError as e:
        raise to_http(e)

@router.delete("/sessions/{session_id}/stickers/{sticker_id}", dependencies=[Depends(verify_basic_auth)])
async def remove_sticker(session_id: str, sticker_id: int, service: BoothService = Depends(get_service)):
    try:
        service.store.get(session_id).stickers.remove(sticker_id)
        return {"session_id": session_id, "removed": sticker_id}
    except BoothError as e:
        raise to_http(e)

# --- finish ---

@router.post("/sessions/{session_id}/finish", dependencies=[Depends(verify_basic_auth)])
async def finish_session(session_id: str, body: FinishBody, download: bool = False, service: BoothService = Depends(get_service)):
    logger.info(f"=== ENDPOINT START finish {session_id} ({body.decision}) ===")
    try:
        png, url = await asyncio.wait_for(
            service.finish(session_id, body.decision),
            timeout=ENDPOINT_TIMEOUT_SECONDS,
        )
        logger.info(f"=== ENDPOINT SUCCESS finish {session_id} ===")
        if download:
            return png_response(png, filename=f"strip-{session_id}.png")
        return JSONResponse(status_code=200, content={"session_id": session_id, "decision": body.decision, "url": url})
    except asyncio.TimeoutError:
        logger.error(f"=== ENDPOINT TIMEOUT finish {session_id} after {ENDPOINT_TIMEOUT_SECONDS}s ===")
        raise HTTPException(status_code=504, detail="Flattening timed out")
    except BoothError as e:
        raise to_http(e)
    except Exception as e:
        logger.error(f"=== ENDPOINT ERROR finish {session_id}: {e} ===\n{traceback.format_exc()}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error.",
        )
