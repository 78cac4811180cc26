"""Difficulty and confidence estimators."""
