"""Read-only binding of a contract ABI to an address."""
import json
import logging
import re
from typing import Any, Dict, List, Optional, Union

from web3 import Web3
from web3.exceptions import Web3Exception

from blockdash.config import EndpointConfig
from blockdash.errors import ConfigurationError
from blockdash.utils.blockchain_client import BlockchainClient, BlockTag

logger = logging.getLogger(__name__)

ABI_ENTRY_TYPES = ("function", "constructor", "event", "fallback", "receive", "error")
READ_ONLY_MUTABILITY = ("view", "pure")

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def _parse_abi(abi: Union[str, List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    if isinstance(abi, str):
        try:
            abi = json.loads(abi)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"ABI is not valid JSON: {e}") from e

    if not isinstance(abi, list):
        raise ConfigurationError(f"ABI must be a list of entries, got {type(abi).__name__}")

    for index, entry in enumerate(abi):
        if not isinstance(entry, dict):
            raise ConfigurationError(f"ABI entry {index} is not an object")
        # Solidity ABIs may omit the type for functions
        entry_type = entry.get("type", "function")
        if entry_type not in ABI_ENTRY_TYPES:
            raise ConfigurationError(f"ABI entry {index} has unknown type {entry_type!r}")
        if entry_type in ("function", "event", "error"):
            name = entry.get("name")
            if not isinstance(name, str) or not name:
                raise ConfigurationError(f"ABI {entry_type} entry {index} has no name")
        for key in ("inputs", "outputs"):
            params = entry.get(key, [])
            if not isinstance(params, list) or not all(
                isinstance(param, dict) and "type" in param for param in params
            ):
                raise ConfigurationError(f"ABI entry {index} has malformed {key}")
    return abi


def _checksum_address(address: Any) -> str:
    if not isinstance(address, str) or not _ADDRESS_RE.match(address):
        raise ConfigurationError(f"Invalid contract address: {address!r}")
    body = address[2:]
    # Mixed case means the address carries an EIP-55 checksum
    if body != body.lower() and body != body.upper() and not Web3.is_checksum_address(address):
        raise ConfigurationError(f"Contract address fails checksum validation: {address}")
    return Web3.to_checksum_address(address)


def _is_read_only(entry: Dict[str, Any]) -> bool:
    return entry.get("stateMutability") in READ_ONLY_MUTABILITY or entry.get("constant") is True


class ContractHandle:
    """A deployed contract bound to an RPC client for on-chain reads."""

    def __init__(
        self,
        abi: List[Dict[str, Any]],
        address: str,
        client: BlockchainClient,
        contract: Any,
        network_name: Optional[str] = None,
    ):
        self.abi = abi
        self.address = address
        self.client = client
        self.contract = contract
        self.network_name = network_name

    @classmethod
    def create(
        cls,
        abi: Union[str, List[Dict[str, Any]]],
        address: str,
        client: BlockchainClient,
        network_name: Optional[str] = None,
    ) -> "ContractHandle":
        """Bind an ABI and address. Makes no network call.

        Args:
            abi: ABI entries, or their JSON encoding
            address: Contract address, checksummed or all one case
            client: RPC client exposing a web3 instance as ``w3``
            network_name: Name of the configured network, for display

        Returns:
            The contract handle

        Raises:
            ConfigurationError: If the ABI or the address is malformed
        """
        entries = _parse_abi(abi)
        checksum_address = _checksum_address(address)

        w3 = getattr(client, "w3", None)
        if w3 is None:
            raise ConfigurationError(f"{type(client).__name__} has no web3 instance to bind contracts to")
        try:
            contract = w3.eth.contract(address=checksum_address, abi=entries)
        except (Web3Exception, TypeError, ValueError, KeyError) as e:
            raise ConfigurationError(f"Cannot bind contract at {checksum_address}: {e}") from e

        logger.info(f"Bound contract {checksum_address} with {len(entries)} ABI entries")
        return cls(entries, checksum_address, client, contract, network_name)

    @classmethod
    def from_config(cls, config: EndpointConfig, client: BlockchainClient) -> "ContractHandle":
        return cls.create(config.abi, config.contract_address, client, config.network_name)

    def _entries(self, entry_type: str) -> List[Dict[str, Any]]:
        return [entry for entry in self.abi if entry.get("type", "function") == entry_type]

    @property
    def read_functions(self) -> List[str]:
        """Names of the view and pure functions."""
        return sorted({entry["name"] for entry in self._entries("function") if _is_read_only(entry)})

    @property
    def events(self) -> List[str]:
        return sorted({entry["name"] for entry in self._entries("event")})

    def describe(self) -> Dict[str, Any]:
        """Contract metadata for display."""
        return {
            "address": self.address,
            "network": self.network_name,
            "read_functions": self.read_functions,
            "events": self.events,
        }

    async def call(self, name: str, *args: Any, block: BlockTag = "latest") -> Any:
        """Call a view or pure contract function.

        Args:
            name: Function name
            *args: Function arguments
            block: Block to evaluate the call at

        Returns:
            Decoded return value

        Raises:
            ConfigurationError: If the function is unknown or may modify state
            NetworkError: If the call fails
        """
        matches = [entry for entry in self._entries("function") if entry["name"] == name]
        if not matches:
            raise ConfigurationError(f"Contract {self.address} has no function {name!r}")
        if not any(_is_read_only(entry) for entry in matches):
            raise ConfigurationError(f"Function {name!r} is not read-only")

        function = getattr(self.contract.functions, name)(*args)
        return await self.client.call(function, block)

    def __repr__(self) -> str:
        return f"ContractHandle(address={self.address!r}, network={self.network_name!r})"
