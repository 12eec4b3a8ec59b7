# stripbooth/domain/booth_service.py
import asyncio
import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Tuple

import psutil
from PIL import Image

from stripbooth.delivery.schemas.body import TemplateDescriptor
from stripbooth.domain.collage_composer import CollageComposer, CompositeResult
from stripbooth.domain.errors import AssetLoadFailure, BoothError, ComposeCancelled
from stripbooth.domain.flattener import render_preview
from stripbooth.domain.session import EditingSession, SessionStore
from stripbooth.domain.sticker_layer import Sticker
from stripbooth.infrastructure.assets.loader import AssetLoader
from stripbooth.infrastructure.cloudinary.upload_file import cloudinary_commit_sink
from stripbooth.infrastructure.cv import image_process

CommitSink = Callable[[bytes, str, str], Optional[str]]

# --- PENGATURAN LOGGER ---
logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(message)s', '%Y-%m-%d %H:%M:%S')
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False # Mencegah log ganda ke root logger

def _memory_mb() -> Optional[float]:
    try:
        return psutil.Process(os.getpid()).memory_info().rss / 1024 / 1024
    except Exception as mem_error:
        logger.warning(f"Could not get memory info: {mem_error}")
        return None

class BoothService:
    def __init__(
        self,
        executor: ThreadPoolExecutor,
        loader: Optional[AssetLoader] = None,
        composer: Optional[CollageComposer] = None,
        commit_sink: CommitSink = cloudinary_commit_sink,
        store: Optional[SessionStore] = None,
    ):
        self.executor = executor
        self.loader = loader or AssetLoader()
        self.composer = composer or CollageComposer()
        self.commit_sink = commit_sink
        self.store = store or SessionStore()

    # --- compose ---

    def _decode_many(self, blobs: List[Optional[bytes]], kind: str) -> List[Optional[Image.Image]]:
        images = []
        for idx, blob in enumerate(blobs):
            if blob is None:
                images.append(None)
                continue
            try:
                images.append(image_process.decode_image(blob))
            except (OSError, ValueError, Image.DecompressionBombError) as e:
                logger.warning(f"Gagal decode {kind} #{idx}: {type(e).__name__}")
                images.append(None)
        return images

    async def _fetch(self, template: TemplateDescriptor, photo_sources: List[str]):
        frame_sources = [template.frame_url] if template.frame_url else []
        return await asyncio.gather(
            self.loader.load_many(photo_sources),
            self.loader.load_many(frame_sources),
        )

    async def compose(self, session: EditingSession, photo_sources: Optional[List[str]] = None) -> CompositeResult:
        """One composing pass; photo_sources replace the session's only once the pass commits."""
        template = session.template
        sources = list(photo_sources) if photo_sources is not None else list(session.photo_sources)
        token = session.begin_pass()
        start = time.perf_counter()
        logger.info(f"=== START COMPOSE session {session.id} pass {token} (template '{template.id}') ===")
        memory_mb = _memory_mb()
        if memory_mb is not None:
            logger.info(f"Memory usage at start: {memory_mb:.1f}MB for session {session.id}")

        # Tahap 1: unduh semua aset sebelum deteksi / penempatan
        fetch = asyncio.ensure_future(self._fetch(template, sources[: template.photo_count]))
        session.pending_fetch = fetch
        try:
            photo_bytes, frame_bytes = await fetch
        except asyncio.CancelledError:
            if session.cancelled or not session.is_current(token):
                raise ComposeCancelled(f"session {session.id} dibatalkan saat mengunduh aset") from None
            raise
        finally:
            if session.pending_fetch is fetch:
                session.pending_fetch = None

        if not session.is_current(token):
            raise ComposeCancelled(f"pass {token} untuk session {session.id} sudah usang")
        logger.info(f"Tahap 1/3: Download selesai ({time.perf_counter() - start:.2f}s) untuk session {session.id}")

        # Tahap 2: decode
        loop = asyncio.get_running_loop()
        photos = await loop.run_in_executor(self.executor, self._decode_many, photo_bytes, "foto")
        frames = await loop.run_in_executor(self.executor, self._decode_many, frame_bytes, "frame")
        usable = [p for p in photos if p is not None]
        if not usable:
            raise AssetLoadFailure("Tidak ada foto yang berhasil dimuat, silakan coba lagi.")
        frame = frames[0] if frames else None

        # Tahap 3: compositing
        result = await loop.run_in_executor(self.executor, self.composer.compose, template, usable, frame)
        if not session.commit_base(token, result.image, result.mode, result.slots):
            raise ComposeCancelled(f"pass {token} untuk session {session.id} dibuang")
        session.photo_sources = sources

        logger.info(
            f"=== COMPOSE SELESAI session {session.id}: mode={result.mode} "
            f"{result.image.size[0]}x{result.image.size[1]} dalam {time.perf_counter() - start:.2f}s ==="
        )
        return result

    async def _compose_in_background(self, session: EditingSession) -> None:
        try:
            await self.compose(session)
        except ComposeCancelled as e:
            logger.info(str(e))
        except BoothError as e:
            session.error = str(e)
            logger.warning(f"Compose gagal untuk session {session.id}: {e}")
        except Exception as e:
            session.error = "Terjadi kesalahan internal saat compositing."
            logger.error(f"Compose error untuk session {session.id}: {e}", exc_info=True)

    async def create_session(self, template: TemplateDescriptor, photo_sources: List[str], wait: bool = True) -> EditingSession:
        self.store.sweep()
        session = self.store.add(EditingSession(template, photo_sources))
        if not wait:
            session.compose_task = asyncio.ensure_future(self._compose_in_background(session))
            return session
        try:
            await self.compose(session)
        except BaseException:
            session.cancel()
            self.store.forget(session.id)
            raise
        return session

    async def update_photos(self, session_id: str, photo_sources: List[str]) -> CompositeResult:
        """Replace the photos and redraw the base; any older pass is discarded."""
        session = self.store.get(session_id)
        return await self.compose(session, photo_sources)

    def cancel_session(self, session_id: str) -> None:
        self.store.discard(session_id)
        logger.info(f"Session {session_id} dibatalkan.")

    # --- output ---

    async def composite_png(self, session_id: str) -> bytes:
        base = self.store.get(session_id).require_base()
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, image_process.encode_png, base)

    def _preview_png(self, base: Image.Image, filter_name: str) -> bytes:
        return image_process.encode_png(render_preview(base, filter_name))

    async def preview_png(self, session_id: str) -> bytes:
        session = self.store.get(session_id)
        base = session.require_base()
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, self._preview_png, base, session.filter)

    def _flatten_png(self, session: EditingSession, base: Image.Image, filter_name: str, stickers: List[Sticker]) -> bytes:
        final = session.flattener.flatten(base, filter_name, stickers)
        return image_process.encode_png(final)

    async def finish(self, session_id: str, decision: str = "save") -> Tuple[bytes, Optional[str]]:
        session = self.store.get(session_id)
        base = session.require_base()
        # snapshot so edits arriving mid-flatten do not leak into this bake
        stickers = [Sticker(**s.to_dict()) for s in session.stickers]
        loop = asyncio.get_running_loop()

        start = time.perf_counter()
        png = await loop.run_in_executor(self.executor, self._flatten_png, session, base, session.filter, stickers)
        url = await loop.run_in_executor(self.executor, self.commit_sink, png, decision, session.id)
        self.store.discard(session_id)
        logger.info(f"Session {session_id} selesai ({decision}) dalam {time.perf_counter() - start:.2f}s.")
        return png, url
