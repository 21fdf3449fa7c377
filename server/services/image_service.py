"""
Upload Storage Service
Writes, exposes and expires images under the uploads directory
"""
import re
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional

import config
from errors import StorageError
from models import AttachedFile, FilePart

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def make_token(receipt_time: datetime) -> str:
    """Per-request filename prefix: receipt time in ms plus a random suffix"""
    return f"{int(receipt_time.timestamp() * 1000)}-{uuid.uuid4().hex[:6]}"


def safe_filename(name: str) -> str:
    """Strip directories and anything that is awkward in a URL"""
    name = Path(name.replace("\\", "/")).name
    name = _UNSAFE_CHARS.sub("_", name).strip("._")
    return name or "image"


def write_upload(stored_name: str, content: bytes) -> Path:
    """Write bytes into the uploads directory and return the path"""
    filepath = config.UPLOADS_DIR / stored_name
    try:
        with open(filepath, 'wb') as f:
            f.write(content)
    except OSError as e:
        raise StorageError(f"Failed to store {stored_name}: {e}")
    return filepath


def store_part(part: FilePart, token: str, index: int) -> AttachedFile:
    """Persist an uploaded file part"""
    stored_name = f"{token}-{index}-{safe_filename(part.original_name)}"
    filepath = write_upload(stored_name, part.content)
    print(f"[Storage] Saved {part.field_name} -> {stored_name} ({len(part.content)} bytes)")
    return AttachedFile(
        field_name=part.field_name,
        original_name=part.original_name,
        stored_name=stored_name,
        size_bytes=len(part.content),
        storage_path=filepath,
    )


def store_remote_image(content: bytes, ref: str, token: str) -> str:
    """Persist bytes fetched from the device, returning the stored name"""
    stored_name = f"{token}-remote-{safe_filename(ref)}"
    write_upload(stored_name, content)
    print(f"[Storage] Saved remote {ref} -> {stored_name} ({len(content)} bytes)")
    return stored_name


def upload_url(base_url: str, stored_name: str) -> str:
    """Public URL of a stored file"""
    return f"{base_url.rstrip('/')}/uploads/{stored_name}"


def delete_upload(path: Path) -> bool:
    """Best-effort delete; never raises"""
    try:
        path.unlink()
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        print(f"[Storage] WARNING: Could not delete {path.name}: {e}")
        return False


def sweep_expired_uploads(max_age_hours: float, now: Optional[float] = None) -> int:
    """Delete uploads older than max_age_hours. Returns number deleted.

    Runs alongside ingest, so files may vanish between listing and delete.
    """
    now = now if now is not None else time.time()
    cutoff = now - max_age_hours * 3600
    deleted = 0

    for path in config.UPLOADS_DIR.iterdir():
        try:
            if not path.is_file() or path.stat().st_mtime >= cutoff:
                continue
        except FileNotFoundError:
            continue
        if delete_upload(path):
            deleted += 1

    if deleted:
        print(f"[Cleanup] Removed {deleted} uploads older than {max_age_hours}h")
    return deleted
