import asyncio
from typing import Any, List

import pytest
from web3 import AsyncHTTPProvider, AsyncWeb3

from blockdash.config import EndpointConfig
from blockdash.state import BlockSnapshot
from blockdash.utils.blockchain_client import BlockchainClient

NODE_URL = "http://node.local:8545"
CONTRACT_ADDRESS = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"

TOKEN_ABI = [
    {
        "type": "function",
        "name": "name",
        "inputs": [],
        "outputs": [{"name": "", "type": "string"}],
        "stateMutability": "view",
    },
    {
        "type": "function",
        "name": "totalSupply",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
    },
    {
        "type": "function",
        "name": "transfer",
        "inputs": [{"name": "to", "type": "address"}, {"name": "value", "type": "uint256"}],
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
    },
    {
        "type": "event",
        "name": "Transfer",
        "inputs": [
            {"name": "from", "type": "address", "indexed": True},
            {"name": "to", "type": "address", "indexed": True},
            {"name": "value", "type": "uint256", "indexed": False},
        ],
        "anonymous": False,
    },
]


def make_block(number: int) -> BlockSnapshot:
    return BlockSnapshot(
        number=number,
        timestamp=1_600_000_000 + number,
        hash=f"0x{number:064x}",
        parent_hash=f"0x{max(number - 1, 0):064x}",
    )


class FakeClient(BlockchainClient):
    """In-memory client; each poll pops the next result (int or exception)."""

    def __init__(self, results: List[Any] = (), chain_id: int = 3):
        super().__init__(NODE_URL)
        self.w3 = AsyncWeb3(AsyncHTTPProvider(NODE_URL))
        self.results = list(results)
        self.chain_id = chain_id
        self.last = None
        self.number_calls = 0
        self.block_calls: List[Any] = []
        self.closed = False

    async def get_block_number(self) -> int:
        self.number_calls += 1
        result = self.results.pop(0) if self.results else self.last
        if isinstance(result, BaseException):
            raise result
        self.last = result
        return result

    async def get_block(self, tag="latest") -> BlockSnapshot:
        self.block_calls.append(tag)
        return make_block(tag)

    async def get_chain_id(self) -> int:
        return self.chain_id

    async def call(self, contract_function, block="latest"):
        raise NotImplementedError

    async def aclose(self) -> None:
        self.closed = True


class ManualTicker:
    """Stand-in for ``asyncio.sleep`` that only returns when ticked."""

    def __init__(self):
        self.delays: List[float] = []
        self._ticks: "asyncio.Queue[None]" = asyncio.Queue()

    async def sleep(self, delay: float) -> None:
        self.delays.append(delay)
        await self._ticks.get()

    def tick(self) -> None:
        self._ticks.put_nowait(None)


async def settle(rounds: int = 20) -> None:
    """Let pending tasks run until they block."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def config() -> EndpointConfig:
    return EndpointConfig(
        provider_url=NODE_URL,
        network_name="ropsten",
        contract_address=CONTRACT_ADDRESS,
        abi=TOKEN_ABI,
        poll_interval=20.0,
        network_id=3,
    )
