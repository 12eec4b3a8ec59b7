# stripbooth/infrastructure/assets/loader.py
import asyncio
import base64
import logging
import os
from typing import List, Optional

import aiofiles
import aiohttp

from stripbooth.config.settings import settings

logger = logging.getLogger(__name__)

class AssetLoader:
    """Fetches raw image bytes from URLs, local files or base64 payloads."""

    def __init__(self, assets_dir: str = settings.ASSETS_DIR, timeout: int = settings.REQUEST_TIMEOUT):
        self.assets_dir = assets_dir
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    def _local_path(self, src: str) -> Optional[str]:
        if os.path.isfile(src):
            return src
        # site-relative urls such as "/uploads/frame.png"
        candidate = os.path.join(self.assets_dir, src.lstrip("/"))
        if os.path.isfile(candidate):
            return candidate
        return None

    async def load_bytes(self, src: str, session: aiohttp.ClientSession) -> Optional[bytes]:
        try:
            if src.startswith(("http://", "https://")):
                async with session.get(src, timeout=self.timeout) as response:
                    response.raise_for_status()
                    return await response.read()
            path = self._local_path(src)
            if path:
                async with aiofiles.open(path, "rb") as f:
                    return await f.read()
            if src.startswith("data:image"):
                _, encoded = src.split(",", 1)
                return base64.b64decode(encoded + "===")
            return base64.b64decode(src + "===")
        except Exception as e:
            logger.warning(f"Gagal memuat gambar dari sumber '{src[:70]}...': {type(e).__name__}")
            return None

    async def load_many(self, sources: List[str]) -> List[Optional[bytes]]:
        async with aiohttp.ClientSession() as session:
            tasks = [self.load_bytes(src, session) for src in sources]
            return await asyncio.gather(*tasks)
