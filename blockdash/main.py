"""Dashboard assembly: wires the client, contract handle, sink and poller."""
import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from blockdash.config import EndpointConfig
from blockdash.errors import ConfigurationError
from blockdash.ethereum import ContractHandle, RpcClient
from blockdash.poller import ErrorHook, Poller
from blockdash.state import RefreshSink, RefreshState
from blockdash.utils.blockchain_client import BlockchainClient

logger = logging.getLogger(__name__)


@dataclass
class Dashboard:
    config: EndpointConfig
    client: BlockchainClient
    contract: ContractHandle
    sink: RefreshSink
    poller: Poller

    async def aclose(self) -> None:
        """Stop polling, then close the client."""
        await self.poller.aclose()
        await self.client.aclose()


def build_dashboard(
    config: EndpointConfig,
    client: Optional[BlockchainClient] = None,
    on_error: Optional[ErrorHook] = None,
    fetch_timeout: Optional[float] = None,
) -> Dashboard:
    """Create all components for one dashboard session.

    Args:
        config: Endpoint configuration
        client: Client to use instead of an ``RpcClient`` for ``config``
        on_error: Hook receiving every failed poll cycle's exception
        fetch_timeout: Deadline for a single poll cycle in seconds

    Returns:
        The assembled dashboard, with the poller not yet started

    Raises:
        ConfigurationError: If the contract ABI or address is invalid
    """
    client = client or RpcClient(config)
    contract = ContractHandle.from_config(config, client)
    sink = RefreshSink()
    sink.update(contract=contract)
    poller = Poller(
        client,
        sink,
        interval=config.poll_interval,
        fetch_timeout=fetch_timeout,
        on_error=on_error,
    )
    return Dashboard(config, client, contract, sink, poller)


async def check_network(dashboard: Dashboard) -> int:
    """Make sure the node serves the configured network.

    Returns:
        The node's chain id

    Raises:
        ConfigurationError: If the chain id differs from ``config.network_id``
        NetworkError: If the node cannot be reached
    """
    chain_id = await dashboard.client.get_chain_id()
    expected = dashboard.config.network_id
    if expected is not None and chain_id != expected:
        raise ConfigurationError(
            f"Node at {dashboard.config.provider_url} serves chain {chain_id}, "
            f"expected {expected} for network {dashboard.config.network_name}"
        )
    return chain_id


async def watch(
    config: EndpointConfig,
    on_update: Callable[[RefreshState], None],
    duration: Optional[float] = None,
    client: Optional[BlockchainClient] = None,
) -> Dashboard:
    """Run a dashboard session and report every refresh.

    Args:
        config: Endpoint configuration
        on_update: Called with the full state after every refresh
        duration: Seconds to run, ``None`` to run until cancelled
        client: Optional client override

    Returns:
        The dashboard, stopped
    """
    dashboard = build_dashboard(config, client=client)
    dashboard.sink.subscribe(on_update)
    dashboard.poller.start()
    try:
        if duration is None:
            await asyncio.Event().wait()
        else:
            await asyncio.sleep(duration)
    finally:
        dashboard.sink.unsubscribe(on_update)
        await dashboard.aclose()
    return dashboard
