"""Candidate generation: generator/aggregator contracts and the adaptive
self-consistency controller."""
