"""Composite scoring and the tier-to-action policy."""
