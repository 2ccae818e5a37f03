"""
Chain handle for one of the two rollups taking part in a cross-chain bundle.
"""
from dataclasses import dataclass

MAX_CHAIN_ID = 2 ** 64


@dataclass(frozen=True)
class Rollup:
    """
    Immutable identity of a target chain.

    Attributes:
        rpc_url: JSON-RPC endpoint of the chain
        chain_id: Numeric chain identifier (uint64)
        name: Human readable label used in logs and errors
    """
    rpc_url: str
    chain_id: int
    name: str

    def __post_init__(self):
        if not isinstance(self.chain_id, int) or isinstance(self.chain_id, bool):
            raise TypeError(f"chain_id must be an int, got {type(self.chain_id).__name__}")
        if not 0 <= self.chain_id < MAX_CHAIN_ID:
            raise ValueError(f"chain_id must fit in uint64, got {self.chain_id}")
        if not self.rpc_url:
            raise ValueError(f"rpc_url must be set for rollup '{self.name}'")

    def __str__(self) -> str:
        return f"{self.name} (chain {self.chain_id})"
