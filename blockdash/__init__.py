"""
Block height dashboard for a single deployed contract.

This package polls an Ethereum node over JSON-RPC for the chain height and
latest block, and keeps the result in a refresh state that a view can
subscribe to.
"""

__version__ = "0.1.0"

from blockdash.config import EndpointConfig, load_config
from blockdash.errors import ConfigurationError, NetworkError, ParseError
from blockdash.ethereum import ContractHandle, RpcClient
from blockdash.main import Dashboard, build_dashboard, check_network, watch
from blockdash.poller import Poller, PollerState
from blockdash.state import BlockSnapshot, RefreshSink, RefreshState
__all__ = [
    'EndpointConfig',
    'load_config',
    'ConfigurationError',
    'NetworkError',
    'ParseError',
    'ContractHandle',
    'RpcClient',
    'Dashboard',
    'build_dashboard',
    'check_network',
    'watch',
    'Poller',
    'PollerState',
    'BlockSnapshot',
    'RefreshSink',
    'RefreshState',
]
