"""
FastAPI Server for the Holder Watch dashboard.

Provides:
- Socket.io server for real-time nice/naughty list updates
- REST endpoints for state, wallet checks and admin controls
- Helius webhook receiver for incremental buy/sell events
"""

import hmac
import logging
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
import socketio

from ingestion.config import TrackerConfig, DEFAULT_CONFIG
from logic.errors import RateLimitRejection, UnauthorizedError, ValidationError
from api.broadcast import SocketIOSubscriber
from api.tracker_service import TrackerService

logger = logging.getLogger("holder-watch-api")


class VerifySecretRequest(BaseModel):
    password: Optional[str] = None


class UpdateCARequest(BaseModel):
    password: Optional[str] = None
    contractAddress: Optional[str] = None


class FetchHoldersRequest(BaseModel):
    password: Optional[str] = None
    mintAddress: Optional[str] = None


def create_sio(service: TrackerService) -> socketio.AsyncServer:
    """Socket.io server whose connections are hub subscribers."""
    sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins="*")

    @sio.event
    async def connect(sid, environ, auth=None):
        service.hub.subscribe(SocketIOSubscriber(sio, sid))

    @sio.event
    async def disconnect(sid, *args):
        service.hub.unsubscribe(sid)

    return sio


def create_app(service: Optional[TrackerService] = None, config: TrackerConfig = DEFAULT_CONFIG) -> FastAPI:
    """Build the FastAPI app around a tracker service."""
    service = service or TrackerService(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifecycle events: open provider sessions, stop timers on shutdown."""
        await service.start()
        logger.info("✅ Tracker service started")
        yield
        await service.stop()
        logger.info("👋 Shutdown complete")

    app = FastAPI(lifespan=lifespan)
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Error mapping
    @app.exception_handler(UnauthorizedError)
    async def unauthorized_handler(request: Request, exc: UnauthorizedError):
        return JSONResponse(status_code=401, content={"error": "Unauthorized"})

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(RateLimitRejection)
    async def rate_limit_handler(request: Request, exc: RateLimitRejection):
        return JSONResponse(
            status_code=429,
            content={
                "error": str(exc),
                "retryAfter": exc.retry_after,
                "nextRefresh": exc.next_refresh_ms,
            },
            headers={"Retry-After": str(exc.retry_after)},
        )

    # Routes
    @app.get("/api/state")
    async def get_state():
        """Current counts, capped lists and recent activity."""
        return service.get_state()

    @app.get("/api/wallet/{address}")
    async def check_wallet(address: str):
        """Nice/naughty standing of a single wallet."""
        return service.query_single_address(address)

    @app.get("/api/status")
    async def get_status():
        return service.get_status()

    @app.post("/api/verify-secret")
    async def verify_secret(request: VerifySecretRequest):
        return {"valid": service.verify_secret(request.password)}

    @app.post("/api/update-ca")
    async def update_ca(request: UpdateCARequest):
        return service.set_tracked_address(request.password, request.contractAddress)

    @app.post("/api/fetch-holders")
    async def fetch_holders(request: FetchHoldersRequest):
        """Fetch holders through the provider chain and reconcile the ledger."""
        return await service.trigger_refresh(request.password, request.mintAddress)

    @app.post("/webhook/helius")
    async def helius_webhook(request: Request):
        """Enhanced-transaction webhook; always acknowledged once authorized."""
        token = service.config.webhook_auth_token
        if token and not hmac.compare_digest(request.headers.get("authorization", "").encode(), token.encode()):
            raise UnauthorizedError("Bad webhook token")

        try:
            payload = await request.json()
        except ValueError as e:
            logger.warning(f"Invalid webhook JSON: {e}")
            return {"received": True, "applied": 0}

        applied = service.handle_webhook(payload)
        logger.info(f"📨 Webhook: {applied} transactions applied")
        return {"received": True, "applied": applied}

    return app


# Default application: FastAPI routes with Socket.io at /socket.io
tracker_service = TrackerService()
app = create_app(tracker_service)
sio = create_sio(tracker_service)
asgi_app = socketio.ASGIApp(sio, other_asgi_app=app, socketio_path="socket.io")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(asgi_app, host="0.0.0.0", port=DEFAULT_CONFIG.port)
