"""Ethereum node access: JSON-RPC client and contract handles."""

from blockdash.ethereum.client import RpcClient
from blockdash.ethereum.contract import ContractHandle

__all__ = ['RpcClient', 'ContractHandle']
