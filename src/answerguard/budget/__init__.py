"""Compute budget allocation and spend tracking."""
