# stripbooth/infrastructure/cloudinary/upload_file.py
from io import BytesIO
from typing import Dict, Optional
from urllib.parse import urlparse
import logging
import cloudinary, cloudinary.uploader
from stripbooth.config.settings import settings

logger = logging.getLogger(__name__)

def credentials_from_settings(cfg=settings) -> Dict[str, Optional[str]]:
    """cloud_name / api_key / api_secret, taken from CLOUDINARY_URL when it is set."""
    if cfg.CLOUDINARY_URL:
        url = urlparse(cfg.CLOUDINARY_URL)
        cloud_name = url.netloc.rpartition("@")[2]
        if url.scheme != "cloudinary" or not cloud_name:
            raise ValueError("CLOUDINARY_URL must look like cloudinary://<api_key>:<api_secret>@<cloud_name>")
        return {"cloud_name": cloud_name, "api_key": url.username, "api_secret": url.password}
    return {
        "cloud_name": cfg.CLOUDINARY_CLOUD_NAME,
        "api_key": cfg.CLOUDINARY_API_KEY,
        "api_secret": cfg.CLOUDINARY_API_SECRET,
    }

# Configure once (supports CLOUDINARY_URL or split vars)
cloudinary.config(**credentials_from_settings(), secure=True)

def upload_png_bytes(
    png: bytes,
    public_id: str,
    folder: str = settings.CLOUDINARY_FOLDER,
    overwrite: bool = True,
    tags: Optional[list[str]] = None,
) -> str:
    res = cloudinary.uploader.upload(
        BytesIO(png),
        resource_type="image",
        folder=folder,
        public_id=public_id,
        overwrite=overwrite,
        format="png",            # keep alpha, final extension in Cloudinary
        tags=tags or [],
    )
    return res["secure_url"]

def cloudinary_commit_sink(png: bytes, decision: str, public_id: str) -> Optional[str]:
    """Default commit sink: upload on save, nothing on cancel."""
    if decision != "save":
        logger.info(f"Strip {public_id} dibatalkan, tidak diunggah.")
        return None
    return upload_png_bytes(png, public_id=public_id, tags=["strip"])
