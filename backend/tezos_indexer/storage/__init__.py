"""Delegation storage."""
