"""Utility helpers for backend services."""

from .canonicalize import CanonicalText, canonicalize, hash_text

__all__ = ["CanonicalText", "canonicalize", "hash_text"]
