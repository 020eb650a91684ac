"""Upstream data services."""
