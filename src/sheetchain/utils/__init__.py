"""Shared helpers for hashing, addresses and ABI words."""
