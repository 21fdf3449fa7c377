"""
Webhook Errors
Each error carries the HTTP status the ingest endpoint answers with
"""


class WebhookError(Exception):
    """Base class for ingest pipeline errors"""
    status_code = 500

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class DecodeError(WebhookError):
    """Request could not be turned into a detection payload"""
    status_code = 400


class MalformedEnvelope(DecodeError):
    """JSON envelope field did not parse to an event object"""

    def __init__(self, field: str):
        super().__init__(f"Invalid JSON in {field} field")
        self.field = field


class PayloadTooLarge(DecodeError):
    """An uploaded part exceeds MAX_UPLOAD_BYTES"""
    status_code = 413

    def __init__(self, field: str, size: int, limit: int):
        super().__init__(f"File too large in {field} field ({size} > {limit} bytes)")
        self.field = field


class StorageError(WebhookError):
    """Local upload directory could not be written"""
    status_code = 500


class FetchError(WebhookError):
    """Device side-channel fetch failed; callers degrade the image to absent"""
    status_code = 502

    def __init__(self, url: str, reason: str):
        super().__init__(f"Failed to fetch {url}: {reason}")
        self.url = url
        self.reason = reason
