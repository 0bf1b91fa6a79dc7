import json

import aiohttp
import pytest

from errors import ChainClientError
from services.solana_rpc_client import SolanaRpcClient, ws_url_from_rpc


class FakeResponse:
    def __init__(self, payload):
        self._payload = payload
        self.status = 200

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    def raise_for_status(self):
        return None

    async def json(self):
        return self._payload


class FakeSession:
    def __init__(self, responses):
        self._responses = list(responses)
        self.requests = []

    def post(self, url, json, timeout):
        self.requests.append(json)
        if not self._responses:
            raise AssertionError("No more fake responses configured")
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return FakeResponse(response)


class FakeMessage:
    def __init__(self, data, msg_type=aiohttp.WSMsgType.TEXT):
        self.type = msg_type
        self.data = data


class FakeWebSocket:
    def __init__(self, messages):
        self._messages = list(messages)
        self.sent = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def send_json(self, payload):
        self.sent.append(payload)

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self._messages:
            raise StopAsyncIteration
        return self._messages.pop(0)


class FakeWsSession:
    def __init__(self, websocket):
        self.websocket = websocket
        self.urls = []

    def ws_connect(self, url, heartbeat=None):
        self.urls.append(url)
        return self.websocket


def test_ws_url_from_rpc():
    assert ws_url_from_rpc("https://api.mainnet-beta.solana.com") == "wss://api.mainnet-beta.solana.com"
    assert ws_url_from_rpc("http://localhost:8899") == "ws://localhost:8899"


@pytest.mark.asyncio
async def test_get_balance_returns_lamports():
    session = FakeSession([{"jsonrpc": "2.0", "id": 1, "result": {"context": {"slot": 1}, "value": 250_000_000}}])
    client = SolanaRpcClient(session, rpc_url="http://mock-rpc")

    assert await client.get_balance("wallet") == 250_000_000
    assert session.requests[0]["method"] == "getBalance"


@pytest.mark.asyncio
async def test_rpc_error_payload_raises():
    session = FakeSession([{"jsonrpc": "2.0", "id": 1, "error": {"code": -32601, "message": "Method not found"}}])
    client = SolanaRpcClient(session, rpc_url="http://mock-rpc", retry_delay=0.0)

    with pytest.raises(ChainClientError) as excinfo:
        await client.get_version()
    assert excinfo.value.code == -32601
    assert len(session.requests) == 1


@pytest.mark.asyncio
async def test_block_not_yet_available_is_retried():
    block = {"blockTime": 1_700_000_000, "transactions": []}
    session = FakeSession([
        {"jsonrpc": "2.0", "id": 1, "error": {"code": -32004, "message": "Block not available for slot 5"}},
        {"jsonrpc": "2.0", "id": 2, "result": block},
    ])
    client = SolanaRpcClient(session, rpc_url="http://mock-rpc", retry_delay=0.0)

    assert await client.get_block(5) == block
    assert [request["method"] for request in session.requests] == ["getBlock", "getBlock"]


@pytest.mark.asyncio
async def test_block_never_available_raises_after_retries():
    not_available = {"jsonrpc": "2.0", "id": 1, "error": {"code": -32004, "message": "Block not available"}}
    session = FakeSession([not_available] * 3)
    client = SolanaRpcClient(session, rpc_url="http://mock-rpc", retries=3, retry_delay=0.0)

    with pytest.raises(ChainClientError) as excinfo:
        await client.get_block(5)
    assert excinfo.value.code == -32004
    assert len(session.requests) == 3


@pytest.mark.asyncio
@pytest.mark.parametrize("code", [-32007, -32009])
async def test_skipped_slot_returns_no_block(code):
    session = FakeSession([{"jsonrpc": "2.0", "id": 1, "error": {"code": code, "message": "slot skipped"}}])
    client = SolanaRpcClient(session, rpc_url="http://mock-rpc", retry_delay=0.0)

    assert await client.get_block(123) is None
    assert len(session.requests) == 1


@pytest.mark.asyncio
async def test_transient_failures_are_retried():
    session = FakeSession([
        aiohttp.ClientConnectionError("reset"),
        {"jsonrpc": "2.0", "id": 2, "result": {"solana-core": "1.18.0"}},
    ])
    client = SolanaRpcClient(session, rpc_url="http://mock-rpc", retry_delay=0.0)

    assert await client.get_version() == {"solana-core": "1.18.0"}
    assert len(session.requests) == 2


@pytest.mark.asyncio
async def test_retries_are_bounded():
    session = FakeSession([aiohttp.ClientConnectionError("down")] * 3)
    client = SolanaRpcClient(session, rpc_url="http://mock-rpc", retries=3, retry_delay=0.0)

    with pytest.raises(ChainClientError):
        await client.get_version()
    assert len(session.requests) == 3


@pytest.mark.asyncio
async def test_send_transaction_is_never_retried():
    session = FakeSession([aiohttp.ClientConnectionError("down")])
    client = SolanaRpcClient(session, rpc_url="http://mock-rpc", retries=3, retry_delay=0.0)

    with pytest.raises(ChainClientError):
        await client.send_transaction("dHg=")
    assert len(session.requests) == 1


@pytest.mark.asyncio
async def test_simulate_transaction_returns_value():
    session = FakeSession([{"jsonrpc": "2.0", "id": 1, "result": {"context": {}, "value": {"err": None, "logs": ["ok"]}}}])
    client = SolanaRpcClient(session, rpc_url="http://mock-rpc")

    result = await client.simulate_transaction("dHg=")

    assert result == {"err": None, "logs": ["ok"]}
    assert session.requests[0]["params"][1]["sigVerify"] is False


@pytest.mark.asyncio
async def test_subscribe_slots_yields_notifications_then_raises_on_close():
    messages = [
        FakeMessage(json.dumps({"jsonrpc": "2.0", "id": 1, "result": 42})),
        FakeMessage(json.dumps({"jsonrpc": "2.0", "method": "slotNotification", "params": {"result": {"slot": 100, "parent": 99}}})),
        FakeMessage("not json"),
        FakeMessage(json.dumps({"jsonrpc": "2.0", "method": "slotNotification", "params": {"result": {"slot": 101, "parent": 100}}})),
        FakeMessage(None, aiohttp.WSMsgType.CLOSED),
    ]
    websocket = FakeWebSocket(messages)
    session = FakeWsSession(websocket)
    client = SolanaRpcClient(session, rpc_url="https://mock-rpc")

    slots = []
    with pytest.raises(ChainClientError):
        async for slot in client.subscribe_slots():
            slots.append(slot)

    assert slots == [100, 101]
    assert session.urls == ["wss://mock-rpc"]
    assert websocket.sent[0]["method"] == "slotSubscribe"
