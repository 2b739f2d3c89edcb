from unittest.mock import AsyncMock

import aiohttp
import pytest
from hexbytes import HexBytes
from web3 import AsyncHTTPProvider
from web3.exceptions import BadResponseFormat, BlockNotFound

from blockdash.errors import NetworkError, ParseError
from blockdash.ethereum.client import RpcClient

from conftest import NODE_URL


class FakeEth:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.requested = []

    async def _respond(self):
        if self.error is not None:
            raise self.error
        return self.result

    @property
    def block_number(self):
        return self._respond()

    @property
    def chain_id(self):
        return self._respond()

    def get_block(self, identifier):
        self.requested.append(identifier)
        return self._respond()


class FakeWeb3:
    def __init__(self, eth, connected=True):
        self.eth = eth
        self.connected = connected

    async def is_connected(self):
        if isinstance(self.connected, Exception):
            raise self.connected
        return self.connected


def make_client(config, **kwargs):
    return RpcClient(config, w3=FakeWeb3(FakeEth(**kwargs)))


def block_data(number=5):
    return {
        "number": number,
        "timestamp": 1700000000,
        "hash": HexBytes("0x" + "ab" * 32),
        "parentHash": HexBytes("0x" + "cd" * 32),
    }


def test_client_builds_web3_without_network(config):
    client = RpcClient(config)
    assert client.node_url == NODE_URL
    assert client.w3 is not None


@pytest.mark.asyncio
async def test_get_block_number(config):
    assert await make_client(config, result=1000000).get_block_number() == 1000000


@pytest.mark.asyncio
async def test_transport_failure_raises_network_error(config):
    cause = aiohttp.ClientConnectionError("connection refused")
    client = make_client(config, error=cause)

    with pytest.raises(NetworkError) as excinfo:
        await client.get_block_number()

    assert excinfo.value.cause is cause
    assert excinfo.value.__cause__ is cause


@pytest.mark.asyncio
async def test_rpc_error_response_raises_network_error(config):
    client = make_client(config, error=ValueError({"code": -32000, "message": "header not found"}))
    with pytest.raises(NetworkError):
        await client.get_block_number()


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", ["0x10", None, -1, True])
async def test_malformed_block_number_raises_parse_error(config, payload):
    with pytest.raises(ParseError):
        await make_client(config, result=payload).get_block_number()


@pytest.mark.asyncio
async def test_formatter_failure_raises_parse_error(config):
    client = make_client(config, error=ValueError("invalid literal for int() with base 16"))
    with pytest.raises(ParseError):
        await client.get_block_number()


@pytest.mark.asyncio
async def test_get_block_by_number(config):
    client = make_client(config, result=block_data(5))

    block = await client.get_block(5)

    assert block.number == 5
    assert block.hash == "0x" + "ab" * 32
    assert client.w3.eth.requested == [5]


@pytest.mark.asyncio
async def test_get_block_by_hash_uses_hexbytes(config):
    client = make_client(config, result=block_data())
    block_hash = "0x" + "ab" * 32

    await client.get_block(block_hash)

    assert client.w3.eth.requested == [HexBytes(block_hash)]


@pytest.mark.asyncio
@pytest.mark.parametrize("tag", ["newest", "0x1234", -1])
async def test_get_block_rejects_invalid_identifier(config, tag):
    client = make_client(config, result=block_data())
    with pytest.raises(ValueError):
        await client.get_block(tag)
    assert client.w3.eth.requested == []


@pytest.mark.asyncio
async def test_missing_block_raises_network_error(config):
    client = make_client(config, error=BlockNotFound("Block with id: 'latest' not found."))
    with pytest.raises(NetworkError):
        await client.get_block("latest")


@pytest.mark.asyncio
async def test_malformed_block_raises_parse_error(config):
    client = make_client(config, result={"number": 5})
    with pytest.raises(ParseError):
        await client.get_block("latest")


@pytest.mark.asyncio
async def test_get_chain_id(config):
    assert await make_client(config, result=3).get_chain_id() == 3


@pytest.mark.asyncio
async def test_is_connected_never_raises(config):
    client = RpcClient(config, w3=FakeWeb3(FakeEth(), connected=aiohttp.ClientError("down")))
    assert await client.is_connected() is False
    client = RpcClient(config, w3=FakeWeb3(FakeEth(), connected=True))
    assert await client.is_connected() is True


@pytest.mark.asyncio
async def test_bad_response_format_raises_parse_error(config):
    client = make_client(config, error=BadResponseFormat("The response was in an unexpected format"))
    with pytest.raises(ParseError):
        await client.get_block("latest")


@pytest.mark.asyncio
async def test_aclose_disconnects_http_provider(config):
    client = RpcClient(config)
    client.w3.provider.disconnect = AsyncMock()

    await client.aclose()

    client.w3.provider.disconnect.assert_awaited_once()
    assert isinstance(client.w3.provider, AsyncHTTPProvider)
