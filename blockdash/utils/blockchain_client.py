"""Base client for read-only blockchain access."""
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    from blockdash.state import BlockSnapshot

BlockTag = Union[int, str]


class BlockchainClient(ABC):
    """Base class for blockchain clients.

    Every read may suspend pending network I/O. Implementations raise
    ``NetworkError`` for transport failures and ``ParseError`` for
    malformed payloads, and never retry on their own.
    """

    def __init__(self, node_url: str):
        """Initialize the blockchain client.

        Args:
            node_url: URL of the blockchain node
        """
        self.node_url = node_url

    @abstractmethod
    async def get_block_number(self) -> int:
        """Get the current chain height.

        Returns:
            Latest block number
        """
        pass

    @abstractmethod
    async def get_block(self, tag: BlockTag = "latest") -> "BlockSnapshot":
        """Get a block by number, hash or tag.

        Args:
            tag: Block number, block hash or a tag such as ``"latest"``

        Returns:
            Immutable block snapshot
        """
        pass

    @abstractmethod
    async def get_chain_id(self) -> int:
        """Get the chain id reported by the node."""
        pass

    @abstractmethod
    async def call(self, contract_function: Any, block: BlockTag = "latest") -> Any:
        """Run a read-only contract call.

        Args:
            contract_function: Bound contract function ready to ``call()``
            block: Block to evaluate the call at

        Returns:
            Decoded return value
        """
        pass

    async def aclose(self) -> None:
        """Release transport resources. The client is unusable afterwards."""
