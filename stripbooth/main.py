# stripbooth/main.py
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from concurrent.futures import ThreadPoolExecutor
import threading
import logging
import os

from stripbooth.config.settings import settings
from stripbooth.delivery.api.booth import router
from stripbooth.domain.booth_service import BoothService

logger = logging.getLogger("uvicorn.error")

# --- Lazy service bootstrap state ---
_service_lock = threading.Lock()
_service_ready = False

def _ensure_service(app: FastAPI) -> None:
    global _service_ready
    with _service_lock:  # Always acquire lock first
        if getattr(app.state, "booth_service", None) is not None:
            _service_ready = True
            return
        logger.info("Memulai inisialisasi BoothService (lazy-init)...")
        app.state.booth_service = BoothService(executor=app.state.executor)
        _service_ready = True
        logger.info("Inisialisasi service selesai.")

@asynccontextmanager
async def lifespan(app: FastAPI):
    global _service_ready
    max_workers = min(settings.MAX_WORKERS, os.cpu_count() or 1)  # Conservative limit
    app.state.executor = ThreadPoolExecutor(max_workers=max_workers)
    logger.info(f"Booth service '{settings.PROJECT_NAME}' dimulai (mode: {settings.ENVIRONMENT}).")
    logger.info(f"Shared ThreadPoolExecutor dibuat dengan {max_workers} workers.")
    yield
    app.state.booth_service = None
    _service_ready = False
    logger.info("Menutup ThreadPoolExecutor...")
    app.state.executor.shutdown(wait=True)
    logger.info("Booth service berhenti.")

app = FastAPI(
    title="Strip Booth Compositing Service",
    description="Composites photos into framed or generated strips, with stickers and colour filters baked into the final image",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_HOSTS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Lazy-load only for API routes
@app.middleware("http")
async def lazy_boot(request: Request, call_next):
    if request.url.path.startswith(settings.API_V1_STR):
        _ensure_service(request.app)
    return await call_next(request)

@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    # the raw input is not echoed: Infinity/NaN cannot be rendered as JSON
    errors = [{"loc": list(e["loc"]), "msg": e["msg"], "type": e["type"]} for e in exc.errors()]
    logger.warning(f"Validasi request gagal pada {request.url.path}: {len(errors)} error")
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": errors})

app.include_router(router, prefix=settings.API_V1_STR)

@app.get("/")
async def root():
    return {"message": "Strip Booth Compositing Service", "version": "1.0.0", "status": "ok"}

@app.get("/health")
async def health_check(request: Request):
    service = getattr(request.app.state, "booth_service", None)
    return {
        "status": "ok",
        "service": "Strip Booth 1.0",
        "service_ready": _service_ready,
        "active_sessions": len(service.store) if service is not None else 0,
    }
