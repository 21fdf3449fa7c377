"""
Device Side-Channel Client
Fetches images the camera references by name instead of uploading
"""
import time

import requests

import config
from errors import FetchError

CHUNK_SIZE = 64 * 1024


def resource_url(device_ip: str, ref: str) -> str:
    return f"http://{device_ip}/resource/{ref}"


def _read_body(response, url: str, deadline: float, timeout: float) -> bytes:
    # requests' timeout bounds each socket wait, not the whole download
    chunks = []
    size = 0
    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
        chunks.append(chunk)
        size += len(chunk)
        if size > config.MAX_UPLOAD_BYTES:
            raise FetchError(url, f"body larger than {config.MAX_UPLOAD_BYTES} bytes")
        if time.monotonic() > deadline:
            raise FetchError(url, f"timed out after {timeout}s")
    return b"".join(chunks)


def fetch_remote_image(device_ip: str, ref: str, timeout: float = None) -> bytes:
    """GET an image from the device. Raises FetchError on any failure.

    Blocking; run it in an executor from async code.
    """
    url = resource_url(device_ip, ref)
    timeout = config.DEVICE_FETCH_TIMEOUT if timeout is None else timeout
    deadline = time.monotonic() + timeout

    try:
        with requests.get(url, timeout=timeout, stream=True) as response:
            if not 200 <= response.status_code < 300:
                raise FetchError(url, f"HTTP {response.status_code}")
            content = _read_body(response, url, deadline, timeout)
    except FetchError:
        raise
    except requests.Timeout:
        raise FetchError(url, f"timed out after {timeout}s")
    except Exception as e:
        # Malformed device hosts surface as urllib3 parse errors, not RequestException
        raise FetchError(url, str(e))

    if not content:
        raise FetchError(url, "empty body")

    print(f"[Device] Fetched {url} ({len(content)} bytes)")
    return content
