"""Ethereum JSON-RPC client implementation."""
import asyncio
import logging
from typing import Any, Optional

import aiohttp
from hexbytes import HexBytes
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import BadResponseFormat, Web3Exception

from blockdash.config import EndpointConfig
from blockdash.errors import NetworkError, ParseError
from blockdash.state import BlockSnapshot
from blockdash.utils.blockchain_client import BlockchainClient, BlockTag

logger = logging.getLogger(__name__)

BLOCK_TAGS = ("latest", "earliest", "pending", "safe", "finalized")

_TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, OSError, Web3Exception)


def _is_rpc_error(exc: ValueError) -> bool:
    # Older web3 releases raise JSON-RPC error objects as ValueError({'code': ..., 'message': ...})
    return bool(exc.args) and isinstance(exc.args[0], dict) and "code" in exc.args[0]


class RpcClient(BlockchainClient):
    """Read-only client for an Ethereum node over HTTP JSON-RPC.

    The client never retries and has no deadline of its own apart from the
    optional HTTP ``request_timeout``; callers decide on retry policy.
    """

    def __init__(self, config: EndpointConfig, w3: Optional[AsyncWeb3] = None):
        """Initialize the client.

        Args:
            config: Endpoint configuration, provides the node URL
            w3: Pre-built web3 instance, mainly for tests
        """
        super().__init__(config.provider_url)
        self.config = config
        if w3 is None:
            request_kwargs = {}
            if config.request_timeout is not None:
                request_kwargs["timeout"] = aiohttp.ClientTimeout(total=config.request_timeout)
            w3 = AsyncWeb3(AsyncHTTPProvider(config.provider_url, request_kwargs=request_kwargs))
        self.w3 = w3

    async def _request(self, what: str, awaitable: Any) -> Any:
        try:
            return await awaitable
        except BadResponseFormat as e:
            raise ParseError(f"Malformed {what} response: {e}") from e
        except ValueError as e:
            if _is_rpc_error(e):
                raise NetworkError(f"Node rejected {what}: {e}", cause=e) from e
            raise ParseError(f"Malformed {what} response: {e}") from e
        except _TRANSPORT_ERRORS as e:
            raise NetworkError(f"Error requesting {what} from {self.node_url}: {e}", cause=e) from e

    async def is_connected(self) -> bool:
        """Check whether the node answers."""
        try:
            return bool(await self.w3.is_connected())
        except Exception as e:
            logger.debug(f"Connection check against {self.node_url} failed: {e}")
            return False

    async def get_block_number(self) -> int:
        """Get the current chain height.

        Returns:
            Latest block number

        Raises:
            NetworkError: On transport failure or an error response
            ParseError: If the node returns something other than a block number
        """
        number = await self._request("block number", self.w3.eth.block_number)
        if isinstance(number, bool) or not isinstance(number, int) or number < 0:
            raise ParseError(f"Invalid block number returned by node: {number!r}")
        return number

    async def get_block(self, tag: BlockTag = "latest") -> BlockSnapshot:
        """Get a block by number, hash or tag.

        Args:
            tag: Block number, 32 byte block hash or one of ``BLOCK_TAGS``

        Returns:
            Immutable block snapshot

        Raises:
            ValueError: If ``tag`` is not a valid block identifier
            NetworkError: On transport failure, an error response or an unknown block
            ParseError: If the block payload is malformed
        """
        identifier: Any = tag
        if isinstance(tag, str) and tag not in BLOCK_TAGS:
            if not tag.startswith("0x") or len(tag) != 66:
                raise ValueError(f"Invalid block identifier: {tag}")
            identifier = HexBytes(tag)
        elif isinstance(tag, int) and tag < 0:
            raise ValueError(f"Block number must be non-negative, got {tag}")

        data = await self._request(f"block {tag}", self.w3.eth.get_block(identifier))
        return BlockSnapshot.from_block_data(data)

    async def get_chain_id(self) -> int:
        chain_id = await self._request("chain id", self.w3.eth.chain_id)
        if not isinstance(chain_id, int):
            raise ParseError(f"Invalid chain id returned by node: {chain_id!r}")
        return chain_id

    async def call(self, contract_function: Any, block: BlockTag = "latest") -> Any:
        """Run a read-only contract call.

        Args:
            contract_function: Bound web3 contract function
            block: Block to evaluate the call at

        Returns:
            Decoded return value
        """
        return await self._request(
            f"call {contract_function.fn_name}",
            contract_function.call(block_identifier=block),
        )

    async def aclose(self) -> None:
        """Close the provider's HTTP session."""
        provider = self.w3.provider
        if isinstance(provider, AsyncHTTPProvider):
            await provider.disconnect()
            logger.debug(f"Closed HTTP session to {self.node_url}")
