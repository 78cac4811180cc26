"""Hashing helpers."""
