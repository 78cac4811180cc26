"""Aleatoric/epistemic uncertainty classification."""
