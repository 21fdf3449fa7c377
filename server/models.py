# server/models.py
"""
Data Models
Wire names are camelCase (the device and the dashboard both speak it)
"""
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class BodyAttributes(WireModel):
    # Opaque device enums, passed through without validation
    gender: Any = None
    age: Any = None
    upper_color: Any = None
    upper_type: Any = None
    bottom_color: Any = None
    bottom_type: Any = None
    hair: Any = None
    hat: Any = None
    hat_color: Any = None
    glasses: Any = None  # wire key is "glassess"
    mask: Any = None


class ImageRefs(WireModel):
    """Remote resource names, only meaningful together with deviceIp"""
    face_pic_ref: Optional[str] = None
    photo_ref: Optional[str] = None
    capture_pic: Optional[str] = None  # full URL supplied by the device, passed through


class DetectionPayload(WireModel):
    """Normalized view of one detection event"""
    # Identity
    person_id: Optional[str] = None
    name: Optional[str] = None
    person_code: Optional[str] = None
    group_name: Optional[str] = None

    # Event correlation
    capture_time: Optional[str] = None
    track_id: Optional[str] = None
    scene_code: Optional[str] = None

    # Device / session metadata, verbatim
    device_ip: Any = None
    device_name: Any = None
    device_no: Any = None
    device_id: Any = None
    recog_device_id: Any = None
    recog_device_no: Any = None
    tenant_id: Any = None
    capture_id: Any = None

    body_attributes: BodyAttributes = Field(default_factory=BodyAttributes)
    image_refs: ImageRefs = Field(default_factory=ImageRefs)
    raw: Dict[str, Any] = Field(default_factory=dict)

    @field_validator(
        "person_id", "name", "person_code", "group_name",
        "capture_time", "track_id", "scene_code",
        mode="before",
    )
    @classmethod
    def _stringify(cls, value):
        # Devices send numeric ids as JSON numbers
        if value is None or isinstance(value, str):
            return value
        return str(value)


class FilePart(BaseModel):
    """A file part read from the request, not yet stored"""
    field_name: str
    original_name: str
    content: bytes
    content_type: Optional[str] = None


class AttachedFile(BaseModel):
    """An uploaded image after it has been written to the upload directory"""
    field_name: str
    original_name: str
    stored_name: str
    size_bytes: int
    storage_path: Path


class RequestKind(str, Enum):
    MULTIPART = "multipart"
    FORM = "form"
    JSON = "json"
    BINARY = "binary"
    EMPTY = "empty"


class DecodedRequest(BaseModel):
    kind: RequestKind
    payload: DetectionPayload
    parts: List[FilePart] = []


class ResolvedImages(WireModel):
    origin_pic: Optional[str] = None
    body_pic: Optional[str] = None
    face_pic: Optional[str] = None
    person_photo: Optional[str] = None
    capture_pic: Optional[str] = None


class DeviceInfo(WireModel):
    device_ip: Any = None
    device_name: Any = None
    device_no: Any = None
    capture_time: Optional[str] = None
    track_id: Optional[str] = None


class RecognitionMetadata(WireModel):
    tenant_id: Any = None
    capture_id: Any = None
    device_id: Any = None
    recog_device_id: Any = None
    recog_device_no: Any = None
    track_id: Optional[str] = None
    scene_code: Optional[str] = None


WAITING_MESSAGE = "Waiting for first recognition..."
NO_MATCH_MESSAGE = "No user match"


class WaitingRecord(WireModel):
    """Sentinel held until the first ingest completes"""
    status: Literal["waiting"] = "waiting"
    recognized: Literal[False] = False
    message: str = WAITING_MESSAGE
    timestamp: datetime


class UnrecognizedRecord(WireModel):
    status: Literal["unrecognized"] = "unrecognized"
    recognized: Literal[False] = False
    message: str = NO_MATCH_MESSAGE
    timestamp: datetime
    device_info: DeviceInfo
    images: ResolvedImages
    raw: Dict[str, Any]


class RecognizedRecord(WireModel):
    status: Literal["recognized"] = "recognized"
    recognized: Literal[True] = True
    name: str
    person_id: str
    person_code: Optional[str] = None
    group_name: Optional[str] = None
    capture_time: Optional[str] = None
    device_info: DeviceInfo
    timestamp: datetime
    images: ResolvedImages
    metadata: RecognitionMetadata
    body_attributes: BodyAttributes
    raw: Dict[str, Any]


RecognitionRecord = Union[WaitingRecord, UnrecognizedRecord, RecognizedRecord]
