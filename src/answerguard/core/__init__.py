"""Immutable value types shared by every answerguard component."""
