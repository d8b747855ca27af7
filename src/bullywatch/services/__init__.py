"""Stateful services backed by the key-value store (whitelist, sender history)."""
