"""
Ingest Service
Decode -> resolve images -> build record -> publish, for one webhook call
"""
import asyncio
from datetime import datetime, timezone
from typing import List

from fastapi import Request

from models import AttachedFile, RecognitionRecord
from services.image_resolver import ImageResolver, discard_attachments
from services.image_service import make_token, store_part
from services.payload_decoder import decode_request
from services.recognition_builder import build_record, is_recognized
from state_store import LatestStateStore


class IngestService:
    """Runs the pipeline; the store only ever sees a fully built record"""

    def __init__(self, store: LatestStateStore, resolver: ImageResolver):
        self.store = store
        self.resolver = resolver

    async def ingest(self, request: Request, base_url: str) -> RecognitionRecord:
        receipt_time = datetime.now(timezone.utc)

        # DecodeError propagates before anything is stored
        decoded = await decode_request(request)
        payload = decoded.payload
        recognized = is_recognized(payload)
        print(f"[Ingest] {decoded.kind.value} request, {len(decoded.parts)} file(s), "
              f"personId={payload.person_id!r} name={payload.name!r}")

        token = make_token(receipt_time)
        attachments: List[AttachedFile] = []
        try:
            for index, part in enumerate(decoded.parts):
                attachments.append(await asyncio.to_thread(store_part, part, token, index))
            images = await self.resolver.resolve(payload, attachments, recognized, base_url, token)
            record = build_record(payload, images, receipt_time)
        except Exception:
            await asyncio.to_thread(discard_attachments, attachments)
            raise

        self.store.set(record)
        print(f"[Ingest] Saved {record.status.upper()}" + (f": {record.name}" if recognized else ""))
        return record
