import re
from typing import Optional, Tuple
from uuid import uuid4

from uagents import Context
from uagents_core.storage import ExternalStorage

from .config import AGENTVERSE_API_KEY, STORAGE_URL

_LABEL_UNSAFE = re.compile(r"[^a-z0-9]+")

_storage: Optional[ExternalStorage] = None


def external_storage() -> Optional[ExternalStorage]:
    global _storage
    if _storage is None and AGENTVERSE_API_KEY:
        _storage = ExternalStorage(api_token=AGENTVERSE_API_KEY, storage_url=STORAGE_URL)
    return _storage


def qr_asset_name(label: Optional[str] = None) -> str:
    """
    Asset file name for a QR image, tagged with the address or tx hash it encodes.
    """
    slug = _LABEL_UNSAFE.sub("-", (label or "").lower()).strip("-")[:42]
    if not slug:
        return f"qr_{uuid4().hex}.png"
    return f"qr_{slug}_{uuid4().hex[:8]}.png"


def upload_png_to_storage(
    ctx: Context,
    sender: str,
    png_bytes: bytes,
    label: Optional[str] = None,
    mime: str = "image/png",
) -> Tuple[Optional[str], Optional[str], Optional[str]]:
    """
    Upload a QR image and grant `sender` read access.
    Returns (asset_id, asset_uri, error); error is None on success.
    """
    asset_name = qr_asset_name(label)
    storage = external_storage()
    if not storage:
        ctx.logger.error(f"External storage not configured (AGENTVERSE_API_KEY missing), skipping {asset_name}")
        return None, None, "storage_not_configured"
    try:
        asset_id = storage.create_asset(name=asset_name, content=png_bytes, mime_type=mime)
    except RuntimeError as err:
        ctx.logger.error(f"Creating {asset_name} failed: {err}")
        return None, None, f"create_failed:{err}"
    try:
        storage.set_permissions(asset_id=asset_id, agent_address=sender)
    except Exception as err:
        ctx.logger.warning(f"Could not share {asset_name} with {sender}: {err}")
    ctx.logger.info(f"Uploaded {asset_name} as {asset_id}")
    return asset_id, f"agent-storage://{storage.storage_url}/{asset_id}", None
