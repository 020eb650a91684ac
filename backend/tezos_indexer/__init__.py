"""Tezos delegation indexer: ingestion job and read API."""

__version__ = "0.1.0"
