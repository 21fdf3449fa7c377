"""
Recognition State Builder
Maps a decoded payload and its images onto the latest-recognition record
"""
from datetime import datetime
from typing import Optional

from models import (
    DetectionPayload,
    DeviceInfo,
    RecognitionMetadata,
    RecognitionRecord,
    RecognizedRecord,
    ResolvedImages,
    UnrecognizedRecord,
)


def _present(value: Optional[str]) -> bool:
    return value is not None and value.strip() != ""


def is_recognized(payload: DetectionPayload) -> bool:
    """Recognized iff both personId and name are non-empty"""
    return _present(payload.person_id) and _present(payload.name)


def build_record(payload: DetectionPayload, images: ResolvedImages, receipt_time: datetime) -> RecognitionRecord:
    """Build the record for one event. timestamp is always the server receipt time."""
    device_info = DeviceInfo(
        device_ip=payload.device_ip,
        device_name=payload.device_name,
        device_no=payload.device_no,
        capture_time=payload.capture_time,
        track_id=payload.track_id,
    )

    if not is_recognized(payload):
        return UnrecognizedRecord(
            timestamp=receipt_time,
            device_info=device_info,
            images=images,
            raw=payload.raw,
        )

    return RecognizedRecord(
        name=payload.name,
        person_id=payload.person_id,
        person_code=payload.person_code,
        group_name=payload.group_name,
        capture_time=payload.capture_time,
        device_info=device_info,
        timestamp=receipt_time,
        images=images,
        metadata=RecognitionMetadata(
            tenant_id=payload.tenant_id,
            capture_id=payload.capture_id,
            device_id=payload.device_id,
            recog_device_id=payload.recog_device_id,
            recog_device_no=payload.recog_device_no,
            track_id=payload.track_id,
            scene_code=payload.scene_code,
        ),
        body_attributes=payload.body_attributes,
        raw=payload.raw,
    )
