"""Database models."""

from tezos_indexer.models.delegation import Account, Delegation

__all__ = ["Account", "Delegation"]
