"""Fingerprint rules, advisory version rules, favicon hashing and scan helpers."""

__version__ = "0.1.0"