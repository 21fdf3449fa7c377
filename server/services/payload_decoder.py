"""
Payload Decoder
Turns an inbound webhook request into a DetectionPayload, whatever its encoding
"""
import json
import mimetypes
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import parse_qsl

from fastapi import Request
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException

import config
from errors import DecodeError, MalformedEnvelope, PayloadTooLarge
from models import DecodedRequest, DetectionPayload, FilePart, RequestKind

# Devices put the JSON-encoded event array in one of these form fields
ENVELOPE_FIELDS = ("data", "json")

# Top-level wire keys copied onto DetectionPayload by exact name
PAYLOAD_KEYS = (
    "personId", "name", "personCode", "groupName",
    "captureTime", "trackId", "sceneCode",
    "deviceIp", "deviceName", "deviceNo", "deviceId",
    "recogDeviceId", "recogDeviceNo", "tenantId", "captureId",
)

BODY_KEYS = (
    "gender", "age", "upperColor", "upperType", "bottomColor", "bottomType",
    "hair", "hat", "hatColor", "mask",
)
# The device misspells this one; the correct spelling is only a fallback
GLASSES_KEYS = ("glassess", "glasses")

FACE_REF_KEYS = ("facePicRef", "facePic")
PHOTO_REF_KEYS = ("photoRef", "photo")


def classify_content_type(content_type: Optional[str]) -> RequestKind:
    """Pick the decoding branch from the transport-declared content type.

    Must run before the body is touched: a binary body consumed by the
    form parser cannot be read again.
    """
    media_type = (content_type or "").split(";")[0].strip().lower()
    if media_type == "multipart/form-data":
        return RequestKind.MULTIPART
    if media_type in ("application/x-www-form-urlencoded", "text/plain"):
        return RequestKind.FORM
    if media_type == "application/json" or media_type.endswith("+json"):
        return RequestKind.JSON
    return RequestKind.BINARY


def parse_envelope(field: str, value: str) -> Dict[str, Any]:
    """Decode an envelope value into the event object.

    An array yields its first element ({} when empty). A bare object is
    taken as the event itself. Anything else is malformed.
    """
    try:
        decoded = json.loads(value)
    except (ValueError, TypeError):
        raise MalformedEnvelope(field)

    if isinstance(decoded, list):
        event = decoded[0] if decoded else {}
    else:
        event = decoded

    if not isinstance(event, dict):
        raise MalformedEnvelope(field)
    return event


def extract_event(fields: Mapping[str, str]) -> Dict[str, Any]:
    """Find the event object among plain form fields"""
    for field in ENVELOPE_FIELDS:
        value = fields.get(field)
        if value is not None and value.strip():
            return parse_envelope(field, value)
    # No envelope: the form fields are the event
    return dict(fields)


def _first_string(event: Mapping[str, Any], keys) -> Optional[str]:
    for key in keys:
        value = event.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def map_event(event: Mapping[str, Any]) -> DetectionPayload:
    """Map wire keys onto DetectionPayload; raw keeps every key"""
    values = {key: event[key] for key in PAYLOAD_KEYS if key in event}

    body = {key: event[key] for key in BODY_KEYS if key in event}
    for key in GLASSES_KEYS:
        if key in event:
            body["glasses"] = event[key]
            break
    values["bodyAttributes"] = body

    values["imageRefs"] = {
        "facePicRef": _first_string(event, FACE_REF_KEYS),
        "photoRef": _first_string(event, PHOTO_REF_KEYS),
        "capturePic": _first_string(event, ("capturePic",)),
    }
    values["raw"] = dict(event)
    return DetectionPayload.model_validate(values)


def _check_size(field: str, content: bytes):
    if len(content) > config.MAX_UPLOAD_BYTES:
        raise PayloadTooLarge(field, len(content), config.MAX_UPLOAD_BYTES)


async def _read_form(request: Request):
    fields: Dict[str, str] = {}
    parts: List[FilePart] = []
    try:
        form = await request.form()
    except StarletteHTTPException as e:
        raise DecodeError(f"Malformed form body: {e.detail}")

    for key, value in form.multi_items():
        if isinstance(value, UploadFile):
            content = await value.read()
            if key in ENVELOPE_FIELDS:
                # Some firmware sends the envelope as a file part
                fields[key] = content.decode("utf-8", errors="replace")
                continue
            _check_size(key, content)
            parts.append(FilePart(
                field_name=key,
                original_name=value.filename or key,
                content=content,
                content_type=value.content_type,
            ))
        else:
            fields[key] = value
    return fields, parts


async def decode_request(request: Request) -> DecodedRequest:
    """Decode any supported request encoding into a DecodedRequest"""
    content_type = request.headers.get("content-type")
    kind = classify_content_type(content_type)

    if kind == RequestKind.MULTIPART:
        fields, parts = await _read_form(request)
        return DecodedRequest(kind=kind, payload=map_event(extract_event(fields)), parts=parts)

    body = await request.body()

    if kind == RequestKind.FORM:
        if (content_type or "").lower().startswith("text/plain"):
            fields = dict(parse_qsl(body.decode("utf-8", errors="replace"), keep_blank_values=True))
        else:
            fields, _ = await _read_form(request)
        return DecodedRequest(kind=kind, payload=map_event(extract_event(fields)))

    if not body.strip():
        return DecodedRequest(kind=RequestKind.EMPTY, payload=map_event({}))

    if kind == RequestKind.JSON:
        event = parse_envelope("body", body.decode("utf-8", errors="replace"))
        return DecodedRequest(kind=kind, payload=map_event(event))

    # Opaque binary: no identity fields, the blob becomes a generic attachment
    _check_size("binary", body)
    media_type = (content_type or "").split(";")[0].strip()
    extension = mimetypes.guess_extension(media_type) if media_type else None
    part = FilePart(
        field_name="binary",
        original_name=f"binary{extension or '.bin'}",
        content=body,
        content_type=media_type or None,
    )
    return DecodedRequest(kind=kind, payload=map_event({}), parts=[part])
