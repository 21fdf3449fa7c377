"""
Image Resolver
Decides which stored or fetched image fills each role of a record
"""
import asyncio
from concurrent.futures import Executor
from typing import Dict, List, Optional

import config
from errors import FetchError
from models import AttachedFile, DetectionPayload, ResolvedImages
from services.device_client import fetch_remote_image, resource_url
from services.image_service import delete_upload, store_remote_image, upload_url

# Role -> accepted field names, preferred name first
ROLE_FIELDS = {
    "origin_pic": ("originPic", "origin"),
    "body_pic": ("bodyPic", "body"),
    "face_pic": ("facePic", "face"),
    "person_photo": ("personPhoto", "photo"),
}

# Dropped for unrecognized events unless RETAIN_UNRECOGNIZED_IMAGES is set
DISPOSABLE_ROLES = ("origin_pic", "body_pic")


def match_roles(attachments: List[AttachedFile]) -> Dict[str, Optional[AttachedFile]]:
    """Assign attached files to roles by field name.

    Devices are inconsistent about naming, so the face role falls back to
    the first file no other role claimed.
    """
    claimed = set()
    matched: Dict[str, Optional[AttachedFile]] = {}

    for role, names in ROLE_FIELDS.items():
        matched[role] = None
        for name in names:
            index = next(
                (i for i, f in enumerate(attachments) if f.field_name == name and i not in claimed),
                None,
            )
            if index is not None:
                claimed.add(index)
                matched[role] = attachments[index]
                break

    if matched["face_pic"] is None:
        for i, f in enumerate(attachments):
            if i not in claimed:
                matched["face_pic"] = f
                break

    return matched


def discard_attachments(attachments: List[AttachedFile]):
    """Best-effort removal of files stored for a request that failed"""
    for attached in attachments:
        delete_upload(attached.storage_path)


class ImageResolver:
    """Resolves image roles for one detection event"""

    def __init__(
        self,
        executor: Optional[Executor] = None,
        timeout: Optional[float] = None,
        retain_unrecognized: Optional[bool] = None,
    ):
        self.executor = executor
        self.timeout = config.DEVICE_FETCH_TIMEOUT if timeout is None else timeout
        self.retain_unrecognized = (
            config.RETAIN_UNRECOGNIZED_IMAGES if retain_unrecognized is None else retain_unrecognized
        )

    async def fetch(self, device_ip: str, ref: str) -> Optional[bytes]:
        """Fetch a device resource off the event loop; None on failure"""
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(
            self.executor,
            lambda: fetch_remote_image(device_ip, ref, self.timeout),
        )
        try:
            # Hard bound on the whole fetch, whatever the worker thread is doing
            return await asyncio.wait_for(future, self.timeout)
        except asyncio.TimeoutError:
            url = resource_url(device_ip, ref)
            print(f"[Resolver] WARNING: {url} took longer than {self.timeout}s - image left empty")
            return None
        except FetchError as e:
            print(f"[Resolver] WARNING: {e.message} - image left empty")
            return None

    async def _fetch_and_store(self, device_ip: str, ref: str, token: str, base_url: str) -> Optional[str]:
        content = await self.fetch(device_ip, ref)
        if content is None:
            return None
        stored_name = await asyncio.to_thread(store_remote_image, content, ref, token)
        return upload_url(base_url, stored_name)

    async def resolve(
        self,
        payload: DetectionPayload,
        attachments: List[AttachedFile],
        recognized: bool,
        base_url: str,
        token: str,
    ) -> ResolvedImages:
        matched = match_roles(attachments)

        if not recognized and not self.retain_unrecognized:
            for role in DISPOSABLE_ROLES:
                attached = matched[role]
                if attached is not None:
                    if await asyncio.to_thread(delete_upload, attached.storage_path):
                        print(f"[Resolver] Deleted {attached.stored_name} (unrecognized event)")
                    matched[role] = None

        urls = {
            role: upload_url(base_url, attached.stored_name) if attached else None
            for role, attached in matched.items()
        }

        # Roles with no attached file may still be fetched from the device
        device_ip = str(payload.device_ip).strip() if payload.device_ip else ""
        remote = {}
        if device_ip:
            refs = payload.image_refs
            if urls["face_pic"] is None and refs.face_pic_ref:
                remote["face_pic"] = refs.face_pic_ref
            if urls["person_photo"] is None and refs.photo_ref:
                remote["person_photo"] = refs.photo_ref

        if remote:
            results = await asyncio.gather(*(
                self._fetch_and_store(device_ip, ref, token, base_url) for ref in remote.values()
            ))
            urls.update(zip(remote.keys(), results))

        return ResolvedImages(capture_pic=payload.image_refs.capture_pic, **urls)
