import json
from unittest.mock import AsyncMock

import pytest

from blockdash.errors import ConfigurationError
from blockdash.ethereum.client import RpcClient
from blockdash.ethereum.contract import ContractHandle

from conftest import CONTRACT_ADDRESS, TOKEN_ABI


class RecordingWeb3:
    """Fails the test if anything touches the node or builds a contract."""

    class _Eth:
        def contract(self, **kwargs):
            raise AssertionError("contract() must not be reached")

    def __init__(self):
        self.eth = self._Eth()


@pytest.fixture
def client(config):
    return RpcClient(config)


def test_create_binds_abi_and_address(client):
    handle = ContractHandle.create(TOKEN_ABI, CONTRACT_ADDRESS, client, "ropsten")

    assert handle.address == CONTRACT_ADDRESS
    assert handle.contract.address == CONTRACT_ADDRESS
    assert handle.read_functions == ["name", "totalSupply"]
    assert handle.events == ["Transfer"]


def test_create_accepts_json_abi_and_lowercase_address(client):
    handle = ContractHandle.create(json.dumps(TOKEN_ABI), CONTRACT_ADDRESS.lower(), client)
    assert handle.address == CONTRACT_ADDRESS


def test_from_config(config, client):
    handle = ContractHandle.from_config(config, client)
    assert handle.describe() == {
        "address": CONTRACT_ADDRESS,
        "network": "ropsten",
        "read_functions": ["name", "totalSupply"],
        "events": ["Transfer"],
    }


@pytest.mark.parametrize("address", [
    "0xABC",
    "5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed",
    "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAeZ",
    "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAeD",
    None,
])
def test_invalid_address_fails_before_any_network_call(config, address):
    client = RpcClient(config, w3=RecordingWeb3())
    with pytest.raises(ConfigurationError):
        ContractHandle.create(TOKEN_ABI, address, client)


@pytest.mark.parametrize("abi", [
    "not json",
    {"type": "function"},
    ["name"],
    [{"type": "function", "inputs": []}],
    [{"type": "storage", "name": "x"}],
    [{"type": "function", "name": "f", "inputs": [{"name": "a"}]}],
])
def test_malformed_abi_is_rejected(config, abi):
    client = RpcClient(config, w3=RecordingWeb3())
    with pytest.raises(ConfigurationError):
        ContractHandle.create(abi, CONTRACT_ADDRESS, client)


def test_client_without_web3_is_rejected():
    class Detached:
        pass

    with pytest.raises(ConfigurationError):
        ContractHandle.create(TOKEN_ABI, CONTRACT_ADDRESS, Detached())


@pytest.mark.asyncio
async def test_call_view_function_delegates_to_client(client):
    handle = ContractHandle.create(TOKEN_ABI, CONTRACT_ADDRESS, client)
    client.call = AsyncMock(return_value="Token")

    assert await handle.call("name") == "Token"

    function, block = client.call.await_args.args
    assert function.fn_name == "name"
    assert block == "latest"


@pytest.mark.asyncio
async def test_call_rejects_unknown_and_state_changing_functions(client):
    handle = ContractHandle.create(TOKEN_ABI, CONTRACT_ADDRESS, client)
    client.call = AsyncMock()

    with pytest.raises(ConfigurationError):
        await handle.call("mint")
    with pytest.raises(ConfigurationError):
        await handle.call("transfer", CONTRACT_ADDRESS, 1)
    client.call.assert_not_awaited()
