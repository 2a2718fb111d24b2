#!/usr/bin/env python3
"""
Holder Watch - live nice list / naughty list for a Solana token

Main entry point that starts the API server:
- Holder snapshots: provider fallback chain + ledger reconciliation
- Webhook ingestion: incremental buy/sell events
- Real-time broadcast: Socket.io push to connected viewers

Usage:
    python main.py                      # Serve on $PORT (default 3000)
    python main.py --port 8000          # Serve on a custom port
    python main.py --mint <address>     # Start tracking a token immediately
"""

import argparse
import logging
import os

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Configure logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("holder-watch")


def build_asgi_app(config):
    """FastAPI app with Socket.io mounted in front of it."""
    import socketio

    from api.server import create_app, create_sio
    from api.tracker_service import TrackerService

    service = TrackerService(config)
    app = create_app(service, config)
    sio = create_sio(service)
    return socketio.ASGIApp(sio, other_asgi_app=app, socketio_path="socket.io")


def main():
    """Main entry point."""
    from ingestion.config import TrackerConfig

    parser = argparse.ArgumentParser(
        description="Holder Watch - nice/naughty list server"
    )
    parser.add_argument("--host", default="0.0.0.0", help="Bind address")
    parser.add_argument("--port", type=int, default=None, help="Listen port (default: $PORT or 3000)")
    parser.add_argument("--mint", default=None, help="Token mint or pool address to track at startup")
    args = parser.parse_args()

    config = TrackerConfig()
    if args.port:
        config.port = args.port
    if args.mint:
        config.token_mint = args.mint

    logger.info("🎅 Holder Watch starting...")
    if not config.helius_api_key:
        logger.warning("⚠️ HELIUS_API_KEY not set; Helius provider disabled, public RPC fallback only")
    else:
        logger.info("✅ Helius API key loaded")
    if config.admin_secret == "admin123":
        logger.warning("⚠️ TRACKER_SECRET not set; using the default admin secret")

    import uvicorn

    logger.info(f"🚀 Server running at http://localhost:{config.port}")
    logger.info(f"📡 Socket.io available at ws://localhost:{config.port}/socket.io")
    uvicorn.run(build_asgi_app(config), host=args.host, port=config.port, log_level=LOG_LEVEL.lower())


if __name__ == "__main__":
    main()
