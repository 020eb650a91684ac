"""Sync engine."""
