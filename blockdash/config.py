"""Endpoint configuration loading.

Configuration is loaded once at startup and passed explicitly to the
components that need it. Sources, lowest precedence first:

1. built-in network presets (``development``, ``ropsten``)
2. an optional JSON config file
3. ``BLOCKDASH_*`` environment variables
"""
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import urlparse

from blockdash.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 20.0

# Mirrors the truffle networks the contract was deployed with.
NETWORK_PRESETS: Dict[str, Dict[str, Any]] = {
    "development": {
        "provider": "http://localhost:8545",
        "network_id": None,
    },
    "ropsten": {
        "provider": "http://localhost:8545",
        "network_id": 3,
    },
}


@dataclass(frozen=True)
class EndpointConfig:
    """Node endpoint and contract binding for one dashboard session."""

    provider_url: str
    network_name: str
    contract_address: str
    abi: List[Dict[str, Any]] = field(repr=False)
    poll_interval: float = DEFAULT_POLL_INTERVAL
    network_id: Optional[int] = None
    request_timeout: Optional[float] = None

    def __post_init__(self) -> None:
        parsed = urlparse(self.provider_url or "")
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigurationError(
                f"Provider URL must be an http(s) URL, got {self.provider_url!r}"
            )
        if not self.contract_address:
            raise ConfigurationError("Contract address is not set")
        if self.abi is None:
            raise ConfigurationError("Contract ABI is not set")
        if self.poll_interval <= 0:
            raise ConfigurationError(
                f"Poll interval must be positive, got {self.poll_interval}"
            )
        if self.request_timeout is not None and self.request_timeout <= 0:
            raise ConfigurationError(
                f"Request timeout must be positive, got {self.request_timeout}"
            )


def _read_json(path: str) -> Any:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(f"File not found: {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"{path} is not valid JSON: {e}") from e


def load_abi(path: str) -> List[Dict[str, Any]]:
    """Load an ABI from a JSON file.

    Accepts either a bare ABI list or a compiled artifact with an ``abi`` key.

    Args:
        path: Path to the ABI or artifact file

    Returns:
        The ABI entries

    Raises:
        ConfigurationError: If the file is missing or holds no ABI
    """
    data = _read_json(path)
    if isinstance(data, dict) and "abi" in data:
        data = data["abi"]
    if not isinstance(data, list):
        raise ConfigurationError(f"{path} does not contain an ABI list")
    return data


def _to_float(name: str, value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from e


def _to_optional_int(name: str, value: Any) -> Optional[int]:
    if value is None or value == "*":
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from e


def load_config(
    path: Optional[str] = None,
    network: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> EndpointConfig:
    """Build the endpoint configuration.

    Args:
        path: Optional JSON config file, defaults to ``BLOCKDASH_CONFIG``
        network: Network preset name, overrides the file and environment
        environ: Environment mapping, defaults to ``os.environ``

    Returns:
        The immutable endpoint configuration

    Raises:
        ConfigurationError: If any required value is missing or invalid
    """
    env = os.environ if environ is None else environ
    path = path or env.get("BLOCKDASH_CONFIG")

    values: Dict[str, Any] = {}
    base_dir = os.getcwd()
    if path:
        file_values = _read_json(path)
        if not isinstance(file_values, dict):
            raise ConfigurationError(f"{path} must contain a JSON object")
        values.update(file_values)
        base_dir = os.path.dirname(os.path.abspath(path))

    network_name = network or env.get("BLOCKDASH_NETWORK") or values.get("network") or "development"
    if network_name not in NETWORK_PRESETS and "provider" not in values \
            and "BLOCKDASH_PROVIDER_URL" not in env:
        raise ConfigurationError(
            f"Unknown network {network_name!r}; choose one of "
            f"{', '.join(sorted(NETWORK_PRESETS))} or set a provider URL"
        )
    preset = NETWORK_PRESETS.get(network_name, {})

    provider_url = env.get("BLOCKDASH_PROVIDER_URL") or values.get("provider") or preset.get("provider")
    address = env.get("BLOCKDASH_CONTRACT_ADDRESS") or values.get("address")

    abi_source = env.get("BLOCKDASH_ABI_PATH") or values.get("abi")
    if abi_source is None:
        raise ConfigurationError("Contract ABI is not configured")
    if isinstance(abi_source, str):
        if not os.path.isabs(abi_source):
            abi_source = os.path.join(base_dir, abi_source)
        abi = load_abi(abi_source)
    else:
        abi = abi_source

    interval = env.get("BLOCKDASH_POLL_INTERVAL", values.get("poll_interval", DEFAULT_POLL_INTERVAL))
    timeout = values.get("request_timeout")

    config = EndpointConfig(
        provider_url=provider_url or "",
        network_name=network_name,
        contract_address=address or "",
        abi=abi,
        poll_interval=_to_float("poll_interval", interval),
        network_id=_to_optional_int("network_id", values.get("network_id", preset.get("network_id"))),
        request_timeout=None if timeout is None else _to_float("request_timeout", timeout),
    )
    logger.info(f"Loaded configuration for network {config.network_name} at {config.provider_url}")
    return config
