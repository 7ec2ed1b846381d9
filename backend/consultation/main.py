"""
Consultation Backend - Main Application

This is the entry point for the FastAPI application.
It handles:
- REST API endpoints under /api/chat (conversations, messages, partners, billing)
- WebSocket gateway for real-time messaging, typing and call signaling
- Background tasks for presence cleanup and session summary delivery
"""
from contextlib import asynccontextmanager
import json
import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from consultation.api import router as api_router
from consultation.api.websocket import router as ws_router
from consultation.config.constants import SUMMARY_CHANNEL_PREFIX
from consultation.config.redis import get_redis, close_redis
from consultation.models.database import init_db, utcnow
from consultation.services.connection import connection_registry, conversation_room
from consultation.services.conversation.exceptions import ConsultationError
from consultation.services.metrics import render_latest
from consultation.services.presence_service import presence_service

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def subscribe_to_summaries():
    """Background task relaying finished session summaries to conversation rooms."""
    redis = await get_redis()
    pubsub = redis.pubsub()
    await pubsub.psubscribe(f"{SUMMARY_CHANNEL_PREFIX}*")

    logger.info("Subscribed to summary channels")

    try:
        async for message in pubsub.listen():
            if message["type"] == "pmessage":
                try:
                    data = json.loads(message["data"])
                    conversation_id = data.get("conversation_id")
                    if conversation_id:
                        await connection_registry.emit_to_room(
                            conversation_room(conversation_id), "conversation:summary", data
                        )
                except Exception as e:
                    logger.error(f"Error processing summary message: {e}")
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.error(f"Summary subscription error: {e}")
    finally:
        await pubsub.aclose()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events using the modern FastAPI pattern.
    """
    # === STARTUP ===
    logger.info("Starting Consultation Backend...")

    await init_db()

    tasks = []
    try:
        await get_redis()
        logger.info("Redis connected")
        tasks.append(asyncio.create_task(presence_service.run_cleanup_loop()))
        tasks.append(asyncio.create_task(subscribe_to_summaries()))
        logger.info("Background presence cleanup and summary subscription started")
    except Exception as e:
        logger.error(f"Redis unavailable, background tasks not started: {e}")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down...")
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
    await close_redis()


app = FastAPI(
    title="Consultation Backend",
    description="Billed real-time consultations between users and partners",
    version="1.0.0",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=r"http://(localhost|127\.0\.0\.1)(:\d+)?",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ConsultationError)
async def consultation_error_handler(request: Request, exc: ConsultationError):
    """Render domain errors as {success: false, message, code}."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.message, "code": exc.code},
    )


# Include REST API routes
app.include_router(api_router, prefix="/api")

# Include WebSocket routes
app.include_router(ws_router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Consultation Backend",
        "version": "1.0.0",
        "status": "running"
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "ok",
        "timestamp": utcnow().isoformat(),
        "total_connections": connection_registry.get_total_connections(),
        "active_rooms": connection_registry.get_room_count(),
    }


@app.get("/metrics")
async def metrics():
    """Prometheus scrape endpoint."""
    body, content_type = render_latest()
    return Response(content=body, media_type=content_type)
