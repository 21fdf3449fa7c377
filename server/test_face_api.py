"""
End-to-end tests for the webhook and latest-record endpoints
"""
import asyncio
import json
import time
from concurrent.futures import ThreadPoolExecutor

import requests

import config
import services.device_client as device_client
import services.image_service as image_service
import services.ingest_service as ingest_service
from errors import StorageError

INGEST_URL = "/api/face-recognition"
LATEST_URL = "/api/face-recognition/latest"


class DeviceResponse:
    """Streamed 200 response from the camera"""
    status_code = 200

    def __init__(self, content):
        self.content = content

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def iter_content(self, chunk_size=1):
        yield self.content


RECOGNIZED_EVENT = {
    "personId": "1001",
    "name": "Ana Silva",
    "personCode": "EMP-1001",
    "groupName": "Staff",
    "captureTime": "2024-05-01 08:59:59",
    "deviceIp": "192.168.1.64",
    "deviceName": "Front Door",
    "deviceNo": "FD-01",
    "trackId": "trk-5",
    "tenantId": "tenant-1",
    "gender": "female",
    "glassess": "no",
}


def _post_event(client, event, files=None):
    return client.post(INGEST_URL, data={"data": json.dumps([event])}, files=files)


def test_latest_starts_with_waiting_sentinel(client):
    response = client.get(LATEST_URL)
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "waiting"
    assert body["recognized"] is False
    assert body["message"] == "Waiting for first recognition..."
    assert body["timestamp"]


def test_latest_is_idempotent(client):
    _post_event(client, RECOGNIZED_EVENT)
    assert client.get(LATEST_URL).content == client.get(LATEST_URL).content


def test_recognized_multipart_round_trip(client):
    files = {
        "originPic": ("origin.jpg", b"origin-bytes", "image/jpeg"),
        "bodyPic": ("body.jpg", b"body-bytes", "image/jpeg"),
        "facePic": ("face.jpg", b"face-bytes", "image/jpeg"),
    }
    response = _post_event(client, RECOGNIZED_EVENT, files=files)

    assert response.status_code == 200
    assert response.json() == {"success": True, "recognized": True, "name": "Ana Silva"}

    record = client.get(LATEST_URL).json()
    assert record["status"] == "recognized"
    assert record["personId"] == "1001"
    assert record["personCode"] == "EMP-1001"
    assert record["captureTime"] == "2024-05-01 08:59:59"
    assert record["timestamp"] != record["captureTime"]
    assert record["deviceInfo"]["deviceName"] == "Front Door"
    assert record["metadata"]["tenantId"] == "tenant-1"
    assert record["bodyAttributes"]["glasses"] == "no"
    assert record["raw"]["glassess"] == "no"

    for role, content in (("originPic", b"origin-bytes"), ("bodyPic", b"body-bytes"), ("facePic", b"face-bytes")):
        image = client.get(record["images"][role])
        assert image.status_code == 200
        assert image.content == content


def test_malformed_envelope_leaves_state_unchanged(client):
    _post_event(client, RECOGNIZED_EVENT)
    before = client.get(LATEST_URL).json()

    response = client.post(INGEST_URL, data={"data": "{not json"})

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Invalid JSON in data field"}
    assert client.get(LATEST_URL).json() == before


def test_malformed_envelope_stores_no_files(client, uploads_dir):
    response = client.post(
        INGEST_URL,
        data={"data": "{not json"},
        files={"facePic": ("face.jpg", b"face", "image/jpeg")},
    )
    assert response.status_code == 400
    assert list(uploads_dir.iterdir()) == []


def test_unrecognized_event_cleans_up_origin_and_body(client, uploads_dir):
    files = {
        "originPic": ("origin.jpg", b"origin-bytes", "image/jpeg"),
        "bodyPic": ("body.jpg", b"body-bytes", "image/jpeg"),
    }
    response = _post_event(client, {"personId": "1001", "deviceIp": "192.168.1.64"}, files=files)

    assert response.status_code == 200
    assert response.json() == {"success": True, "recognized": False}

    record = client.get(LATEST_URL).json()
    assert record["status"] == "unrecognized"
    assert record["message"] == "No user match"
    assert record["images"]["originPic"] is None
    assert record["images"]["bodyPic"] is None
    assert record["deviceInfo"]["deviceIp"] == "192.168.1.64"
    assert list(uploads_dir.iterdir()) == []


def test_remote_fetch_timeout_still_succeeds(client, monkeypatch):
    def timeout_get(url, timeout, stream):
        assert timeout == config.DEVICE_FETCH_TIMEOUT
        raise requests.Timeout("device did not answer")

    monkeypatch.setattr(device_client.requests, "get", timeout_get)
    event = dict(RECOGNIZED_EVENT, facePicRef="face_20240501.jpg")

    response = _post_event(client, event)

    assert response.status_code == 200
    assert response.json()["recognized"] is True
    record = client.get(LATEST_URL).json()
    assert record["images"]["facePic"] is None
    assert record["name"] == "Ana Silva"


def test_remote_face_is_served_from_uploads(client, monkeypatch):
    requested = []

    def fake_get(url, timeout, stream):
        requested.append(url)
        return DeviceResponse(b"device-face")

    monkeypatch.setattr(device_client.requests, "get", fake_get)
    event = dict(RECOGNIZED_EVENT, facePicRef="face_20240501.jpg")

    _post_event(client, event)

    assert requested == ["http://192.168.1.64/resource/face_20240501.jpg"]
    record = client.get(LATEST_URL).json()
    assert client.get(record["images"]["facePic"]).content == b"device-face"


def test_urlencoded_fields_without_envelope(client):
    response = client.post(INGEST_URL, data={"personId": "55", "name": "Rui", "deviceNo": "D2"})

    assert response.json() == {"success": True, "recognized": True, "name": "Rui"}
    record = client.get(LATEST_URL).json()
    assert record["deviceInfo"]["deviceNo"] == "D2"


def test_json_envelope_in_json_field(client):
    response = client.post(INGEST_URL, data={"json": json.dumps([RECOGNIZED_EVENT])})
    assert response.json()["recognized"] is True


def test_json_body(client):
    response = client.post(INGEST_URL, json=[RECOGNIZED_EVENT])
    assert response.json() == {"success": True, "recognized": True, "name": "Ana Silva"}


def test_binary_body_is_stored_as_unrecognized_face(client):
    response = client.post(INGEST_URL, content=b"\xff\xd8raw-jpeg", headers={"content-type": "image/jpeg"})

    assert response.status_code == 200
    assert response.json() == {"success": True, "recognized": False}
    record = client.get(LATEST_URL).json()
    assert record["status"] == "unrecognized"
    assert client.get(record["images"]["facePic"]).content == b"\xff\xd8raw-jpeg"


def test_empty_body_is_unrecognized(client):
    response = client.post(INGEST_URL, content=b"", headers={"content-type": "application/octet-stream"})
    assert response.json() == {"success": True, "recognized": False}


def test_oversized_file_is_rejected(client, monkeypatch):
    monkeypatch.setattr(config, "MAX_UPLOAD_BYTES", 4)
    response = _post_event(client, RECOGNIZED_EVENT, files={"facePic": ("face.jpg", b"too-big", "image/jpeg")})

    assert response.status_code == 413
    assert response.json()["success"] is False
    assert client.get(LATEST_URL).json()["status"] == "waiting"


def test_storage_failure_is_server_error_without_state_change(client, monkeypatch):
    def broken_write(stored_name, content):
        raise StorageError(f"Failed to store {stored_name}: disk full")

    working_write = image_service.write_upload
    monkeypatch.setattr(image_service, "write_upload", broken_write)
    response = _post_event(client, RECOGNIZED_EVENT, files={"facePic": ("face.jpg", b"face", "image/jpeg")})

    assert response.status_code == 500
    assert response.json()["success"] is False
    assert "disk full" in response.json()["error"]
    assert client.get(LATEST_URL).json()["status"] == "waiting"

    # Process keeps serving
    monkeypatch.setattr(image_service, "write_upload", working_write)
    assert _post_event(client, RECOGNIZED_EVENT, files={"facePic": ("face.jpg", b"face", "image/jpeg")}).status_code == 200


def test_latest_record_is_fully_replaced(client):
    _post_event(client, RECOGNIZED_EVENT)
    _post_event(client, {"personId": "2002", "name": "Bruno"})

    record = client.get(LATEST_URL).json()
    assert record["name"] == "Bruno"
    assert record["personCode"] is None
    assert record["metadata"]["tenantId"] is None


def test_health(client):
    assert client.get("/health").json() == {"status": "ok", "service": "face-recognition-webhook"}


def test_dashboard_page(client):
    response = client.get("/")
    assert response.status_code == 200
    assert "/api/face-recognition/latest" in response.text


def test_unparseable_device_ip_degrades_face_to_null(client):
    event = dict(RECOGNIZED_EVENT, deviceIp="x" * 300, facePicRef="f.jpg")

    response = _post_event(client, event)

    assert response.status_code == 200
    assert response.json() == {"success": True, "recognized": True, "name": "Ana Silva"}
    record = client.get(LATEST_URL).json()
    assert record["images"]["facePic"] is None
    assert record["deviceInfo"]["deviceIp"] == "x" * 300


def test_concurrent_ingests_never_mix_records(client, monkeypatch):
    alice = {"personId": "A", "name": "Alice", "personCode": "code-A", "groupName": "group-A",
             "deviceIp": "10.0.0.1", "deviceName": "cam-A", "facePicRef": "a.jpg"}
    bruno = {"personId": "B", "name": "Bruno", "personCode": "code-B", "groupName": "group-B",
             "deviceIp": "10.0.0.2", "deviceName": "cam-B"}

    def slow_get(url, timeout, stream):
        time.sleep(0.5)
        return DeviceResponse(b"alice-face")

    monkeypatch.setattr(device_client.requests, "get", slow_get)

    with ThreadPoolExecutor(max_workers=2) as pool:
        responses = list(pool.map(lambda event: _post_event(client, event), [alice, bruno]))

    assert [r.status_code for r in responses] == [200, 200]
    record = client.get(LATEST_URL).json()
    expected = alice if record["personId"] == "A" else bruno
    assert record["name"] == expected["name"]
    assert record["personCode"] == expected["personCode"]
    assert record["groupName"] == expected["groupName"]
    assert record["deviceInfo"]["deviceName"] == expected["deviceName"]
    assert record["raw"] == expected
    assert (record["images"]["facePic"] is not None) == (expected is alice)


def test_uploads_are_written_off_the_event_loop(client, monkeypatch):
    on_loop = []
    real_store_part = ingest_service.store_part

    def recording_store_part(part, token, index):
        try:
            asyncio.get_running_loop()
            on_loop.append(True)
        except RuntimeError:
            on_loop.append(False)
        return real_store_part(part, token, index)

    monkeypatch.setattr(ingest_service, "store_part", recording_store_part)
    response = _post_event(client, RECOGNIZED_EVENT, files={"facePic": ("face.jpg", b"face", "image/jpeg")})

    assert response.status_code == 200
    assert on_loop == [False]
