import pytest
from solders.keypair import Keypair

from errors import QuoteError, QuoteRejectedError
from services.jupiter_client import JupiterClient


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
    def __init__(self, get_responses=None, post_responses=None):
        self._get_responses = list(get_responses or [])
        self._post_responses = list(post_responses or [])
        self.get_calls = []
        self.post_calls = []

    def get(self, url, params=None, timeout=None):
        self.get_calls.append((url, params))
        return FakeResponse(self._get_responses.pop(0))

    def post(self, url, json=None, timeout=None):
        self.post_calls.append((url, json))
        return FakeResponse(self._post_responses.pop(0))


class FakeRpcClient:
    def __init__(self):
        self.sent = []

    async def send_transaction(self, tx_base64):
        self.sent.append(tx_base64)
        return "signature-1"


def _client(session, rpc_client=None):
    return JupiterClient(session, rpc_client or FakeRpcClient(), rate_limit_delay=0.0)


@pytest.mark.asyncio
async def test_best_quote_passes_raw_amount_and_slippage():
    session = FakeSession(get_responses=[{"outAmount": "1500", "routePlan": []}])
    quote = await _client(session).best_quote("mint-a", "mint-b", 1000)

    assert quote["outAmount"] == "1500"
    url, params = session.get_calls[0]
    assert url.endswith("/quote")
    assert params["amount"] == "1000"
    assert params["slippageBps"] == "50"


@pytest.mark.asyncio
async def test_best_quote_rejects_output_below_minimum():
    session = FakeSession(get_responses=[{"outAmount": "900"}])
    with pytest.raises(QuoteRejectedError):
        await _client(session).best_quote("mint-a", "mint-b", 1000, min_out_raw=950)


@pytest.mark.asyncio
async def test_malformed_quote_raises_quote_error():
    session = FakeSession(get_responses=[{"error": "no route"}])
    with pytest.raises(QuoteError):
        await _client(session).best_quote("mint-a", "mint-b", 1000)


@pytest.mark.asyncio
async def test_token_info_requires_decimals():
    session = FakeSession(get_responses=[{"address": "mint-a", "decimals": 6}, {"address": "mint-b"}])
    client = _client(session)

    assert (await client.token_info("mint-a"))["decimals"] == 6
    with pytest.raises(QuoteError):
        await client.token_info("mint-b")


@pytest.mark.asyncio
async def test_build_swap_transaction_sets_priority_fee_only_when_given():
    session = FakeSession(post_responses=[{"swapTransaction": "AAA="}, {"swapTransaction": "BBB="}])
    client = _client(session)

    await client.build_swap_transaction({"outAmount": "1"}, "pubkey")
    await client.build_swap_transaction({"outAmount": "1"}, "pubkey", priority_fee=1000)

    assert "computeUnitPriceMicroLamports" not in session.post_calls[0][1]
    assert session.post_calls[1][1]["computeUnitPriceMicroLamports"] == 1000


@pytest.mark.asyncio
async def test_missing_swap_transaction_raises():
    session = FakeSession(post_responses=[{"error": "bad quote"}])
    with pytest.raises(QuoteError):
        await _client(session).build_swap_transaction({"outAmount": "1"}, "pubkey")


@pytest.mark.asyncio
async def test_swap_with_priority_fee_signs_and_sends(monkeypatch):
    session = FakeSession(post_responses=[{"swapTransaction": "AAA="}])
    rpc_client = FakeRpcClient()
    client = _client(session, rpc_client)
    signer = Keypair()
    signed_inputs = []

    def fake_sign(swap_transaction_b64, keypair):
        signed_inputs.append((swap_transaction_b64, keypair))
        return "signed-tx"

    monkeypatch.setattr("services.jupiter_client.sign_transaction", fake_sign)

    signature = await client.swap_with_priority_fee({"outAmount": "1"}, signer, 2500)

    assert signature == "signature-1"
    assert signed_inputs == [("AAA=", signer)]
    assert rpc_client.sent == ["signed-tx"]
    assert session.post_calls[0][1]["userPublicKey"] == str(signer.pubkey())
    assert session.post_calls[0][1]["computeUnitPriceMicroLamports"] == 2500
