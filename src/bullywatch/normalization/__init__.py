"""Canonical text form shared by every detector."""
