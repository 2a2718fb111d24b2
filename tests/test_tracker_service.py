"""Tests for the tracker service control surface and the HTTP API."""

import asyncio
import random
import pytest
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

from fastapi.testclient import TestClient

from ingestion.config import TrackerConfig
from ingestion.events import HolderRecord
from ingestion.fetcher import FetchResult
from logic.errors import RateLimitRejection, UnauthorizedError, ValidationError
from logic.ledger import MessageType
from api.server import create_app
from api.tracker_service import TrackerService


SECRET = "s3cret"
MINT = "Mint" + "1" * 40
POOL = "P" * 44
WALLET_X = "X" * 44
WALLET_Y = "Y" * 44
WALLET_Z = "Z" * 44
T0 = datetime(2024, 12, 1, 12, 0, tzinfo=timezone.utc)


class RecordingSubscriber:
    def __init__(self, sid):
        self.id = sid
        self.received = []

    async def send(self, message):
        self.received.append(message)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def config():
    return TrackerConfig(admin_secret=SECRET, token_mint=None, webhook_auth_token="")


@pytest.fixture
def fetcher():
    f = MagicMock()
    f.start = AsyncMock()
    f.close = AsyncMock()
    f.token_info = {}
    f.fetch_holders = AsyncMock(return_value=FetchResult(
        holders=[HolderRecord(WALLET_X, 3_000_000), HolderRecord(WALLET_Y, 1_000_000)],
        token_mint=MINT,
        pool_address=POOL,
        provider="birdeye",
    ))
    return f


@pytest.fixture
def service(config, fetcher):
    return TrackerService(config, fetcher=fetcher, rng=random.Random(1))


@pytest.fixture
def client(config, service):
    """HTTP client; lifespan is not run so no timers or sessions start."""
    return TestClient(create_app(service, config))


# ============================================================================
# Unit Tests - Control operations
# ============================================================================

class TestControlOperations:
    """Tests for TrackerService control methods."""

    def test_verify_secret(self, service):
        assert service.verify_secret(SECRET)
        assert not service.verify_secret("wrong")
        assert not service.verify_secret(None)
        assert not service.verify_secret("sécret")

    @pytest.mark.asyncio
    async def test_trigger_refresh(self, service, fetcher):
        response = await service.trigger_refresh(SECRET, MINT)

        assert response["success"]
        assert response["holdersCount"] == 2
        assert response["tokenMint"] == MINT
        assert response["poolAddress"] == POOL
        assert response["provider"] == "birdeye"
        assert response["holders"][0]["address"] == WALLET_X
        assert service.contract_address == POOL
        assert service.ingestor.token_mint == MINT
        assert len(service.ledger.holders) == 2
        await service.stop()

    @pytest.mark.asyncio
    async def test_trigger_refresh_rejects_bad_secret(self, service, fetcher):
        with pytest.raises(UnauthorizedError):
            await service.trigger_refresh("nope", MINT)
        fetcher.fetch_holders.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_trigger_refresh_rejects_bad_address(self, service, fetcher):
        with pytest.raises(ValidationError):
            await service.trigger_refresh(SECRET, "not-an-address")
        with pytest.raises(ValidationError):
            await service.trigger_refresh(SECRET, None)
        fetcher.fetch_holders.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_trigger_refresh_rate_limited(self, service):
        await service.trigger_refresh(SECRET, MINT)

        with pytest.raises(RateLimitRejection) as exc:
            await service.trigger_refresh(SECRET, MINT)

        assert 0 < exc.value.wait_seconds <= service.config.refresh_interval_seconds
        await service.stop()

    @pytest.mark.asyncio
    async def test_set_tracked_address_broadcasts(self, service):
        sub = RecordingSubscriber("s1")
        service.hub.subscribe(sub)

        response = service.set_tracked_address(SECRET, MINT)
        await service.hub.drain()

        assert response == {"success": True, "contractAddress": MINT}
        assert sub.received[-1] == {"type": "CA_UPDATE", "data": {"contractAddress": MINT}}
        assert service.initial_state()["contractAddress"] == MINT

    def test_set_tracked_address_unauthorized(self, service):
        with pytest.raises(UnauthorizedError):
            service.set_tracked_address("wrong", MINT)
        assert service.contract_address is None

    def test_query_single_address(self, service):
        service.ledger.record_buy(WALLET_X, 500, T0)
        service.ledger.record_buy(WALLET_Y, 10, T0)
        service.ledger.record_sell(WALLET_Y, 10, T0)

        nice = service.query_single_address(WALLET_X)
        naughty = service.query_single_address(WALLET_Y)
        unknown = service.query_single_address(WALLET_Z)

        assert nice["status"] == "NICE" and nice["isNice"] and nice["balance"] == 500
        assert nice["firstSeen"] == int(T0.timestamp() * 1000)
        assert naughty["status"] == "NAUGHTY" and naughty["isNaughty"]
        assert naughty["lastActivity"] == int(T0.timestamp() * 1000)
        assert unknown["status"] == "UNKNOWN"
        assert unknown["balance"] == 0
        assert not unknown["isNice"] and not unknown["isNaughty"]

    def test_query_invalid_address(self, service):
        with pytest.raises(ValidationError):
            service.query_single_address("0OIl")

    @pytest.mark.asyncio
    async def test_webhook_updates_projection(self, service):
        sub = RecordingSubscriber("s1")
        service.hub.subscribe(sub)
        service.ingestor.token_mint = MINT

        applied = service.handle_webhook([{
            "signature": "sig-1",
            "type": "SWAP",
            "feePayer": WALLET_Z,
            "timestamp": 1733054400,
            "tokenTransfers": [{"mint": MINT, "tokenAmount": 20, "toUserAccount": WALLET_Z}],
        }])
        await service.hub.drain()

        assert applied == 1
        assert [m["type"] for m in sub.received] == [
            "INITIAL_STATE", "BUY", "ACTIVITY", "LISTS_UPDATE", "STATS_UPDATE",
        ]
        assert sub.received[-1]["data"]["niceCount"] == 1

    @pytest.mark.asyncio
    async def test_start_without_mint(self, service, fetcher):
        await service.start()
        fetcher.start.assert_awaited_once()
        fetcher.fetch_holders.assert_not_awaited()
        await service.stop()
        fetcher.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stop_cancels_pending_bootstrap(self, fetcher):
        """Stopping mid-bootstrap cancels and awaits the initial fetch."""
        release = asyncio.Event()

        async def slow_fetch(address):
            await release.wait()

        fetcher.fetch_holders = AsyncMock(side_effect=slow_fetch)
        service = TrackerService(
            TrackerConfig(admin_secret=SECRET, token_mint=MINT),
            fetcher=fetcher,
            rng=random.Random(1),
        )

        await service.start()
        task = service._bootstrap_task
        await asyncio.sleep(0)
        await service.stop()

        assert task.cancelled()
        assert service._bootstrap_task is None
        assert service.contract_address is None
        fetcher.close.assert_awaited_once()


# ============================================================================
# Integration Tests - HTTP API
# ============================================================================

class TestHttpApi:
    """Tests for the FastAPI routes."""

    def test_state(self, client, service):
        service.ledger.record_buy(WALLET_X, 2_000_000, T0)

        body = client.get("/api/state").json()

        assert body["niceCount"] == 1
        assert body["niceList"][0]["points"] == 2

    def test_wallet_lookup(self, client):
        assert client.get(f"/api/wallet/{WALLET_X}").json()["status"] == "UNKNOWN"

    def test_wallet_lookup_invalid(self, client):
        response = client.get("/api/wallet/bad")
        assert response.status_code == 400

    def test_verify_secret(self, client):
        assert client.post("/api/verify-secret", json={"password": SECRET}).json() == {"valid": True}
        assert client.post("/api/verify-secret", json={"password": "x"}).json() == {"valid": False}

    def test_update_ca_unauthorized(self, client):
        response = client.post("/api/update-ca", json={"password": "x", "contractAddress": MINT})
        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

    def test_update_ca(self, client, service):
        response = client.post("/api/update-ca", json={"password": SECRET, "contractAddress": MINT})
        assert response.status_code == 200
        assert service.contract_address == MINT

    def test_fetch_holders_bad_address(self, client):
        response = client.post("/api/fetch-holders", json={"password": SECRET, "mintAddress": "bad"})
        assert response.status_code == 400

    def test_fetch_holders_rate_limited(self, client, service):
        service.scheduler.tracked_mint = MINT
        service.scheduler.last_refresh = service.scheduler.clock()
        service.scheduler.last_refresh_wall = 1_700_000_000.0

        response = client.post("/api/fetch-holders", json={"password": SECRET, "mintAddress": MINT})

        assert response.status_code == 429
        body = response.json()
        assert 0 < body["retryAfter"] <= 180
        assert body["nextRefresh"] == 1_700_000_180_000
        assert response.headers["Retry-After"] == str(body["retryAfter"])

    def test_webhook(self, client, service):
        service.ingestor.token_mint = MINT
        payload = [{
            "signature": "sig-1",
            "feePayer": WALLET_Z,
            "timestamp": 1733054400,
            "tokenTransfers": [{"mint": MINT, "tokenAmount": 20, "toUserAccount": WALLET_Z}],
        }]

        response = client.post("/webhook/helius", json=payload)

        assert response.json() == {"received": True, "applied": 1}
        assert WALLET_Z in service.ledger.holders

    def test_webhook_auth_token(self, fetcher):
        config = TrackerConfig(admin_secret=SECRET, token_mint=None, webhook_auth_token="hook-token")
        client = TestClient(create_app(TrackerService(config, fetcher=fetcher), config))

        assert client.post("/webhook/helius", json=[]).status_code == 401
        ok = client.post("/webhook/helius", json=[], headers={"Authorization": "hook-token"})
        assert ok.json() == {"received": True, "applied": 0}

    def test_status(self, client):
        body = client.get("/api/status").json()
        assert body["holders"] == 0
        assert body["websocket_clients"] == 0
