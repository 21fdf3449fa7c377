"""
Face Recognition Webhook Server - Main Application
Receives camera detection callbacks and serves the latest recognition
"""
import asyncio
from contextlib import asynccontextmanager
from concurrent.futures import ThreadPoolExecutor
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

import config
from routers import dashboard, face_api
from services.image_resolver import ImageResolver
from services.image_service import sweep_expired_uploads
from services.ingest_service import IngestService
from state_store import LatestStateStore


async def sweep_uploads_periodically(interval_seconds: float, max_age_hours: float):
    """Expire old uploads until cancelled"""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await asyncio.to_thread(sweep_expired_uploads, max_age_hours)
        except Exception as e:
            print(f"[Cleanup] ERROR: Sweep failed: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    # Device fetches block on network I/O for up to DEVICE_FETCH_TIMEOUT, keep them off the event loop
    executor = ThreadPoolExecutor(max_workers=config.DEVICE_FETCH_WORKERS, thread_name_prefix="device_fetch")
    app.state.device_fetch_executor = executor
    app.state.ingest_service = IngestService(app.state.latest_store, ImageResolver(executor=executor))
    sweep_task = asyncio.create_task(
        sweep_uploads_periodically(config.SWEEP_INTERVAL_SECONDS, config.UPLOAD_RETENTION_HOURS)
    )

    print("=" * 70)
    print("  Face Recognition Webhook - Starting")
    print("=" * 70)
    print(f"  Uploads directory: {config.UPLOADS_DIR}")
    print(f"  Device fetch timeout: {config.DEVICE_FETCH_TIMEOUT}s ({executor._max_workers} workers)")
    print(f"  Upload retention: {config.UPLOAD_RETENTION_HOURS}h")
    print(f"  Keep unrecognized images: {config.RETAIN_UNRECOGNIZED_IMAGES}")
    print("=" * 70)
    print("[Startup] Server ready and accepting connections")
    yield
    # Shutdown
    sweep_task.cancel()
    try:
        await sweep_task
    except asyncio.CancelledError:
        pass
    print("[Shutdown] Shutting down device fetch executor...")
    executor.shutdown(wait=True)
    print("[Shutdown] Server shutting down")


def create_app() -> FastAPI:
    app = FastAPI(title="Face Recognition Webhook", lifespan=lifespan)
    app.state.latest_store = LatestStateStore()

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        # Headers only; the body belongs to the route
        print(f"[HTTP] {request.method} {request.url.path} ({request.headers.get('content-type', '-')})")
        return await call_next(request)

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        return {"status": "ok", "service": "face-recognition-webhook"}

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Uploaded images are world-readable
    app.mount("/uploads", StaticFiles(directory=str(config.UPLOADS_DIR)), name="uploads")

    # Include routers
    app.include_router(dashboard.router, tags=["Dashboard"])
    app.include_router(face_api.router, prefix="/api", tags=["Face Recognition"])
    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=config.HOST, port=config.PORT)
