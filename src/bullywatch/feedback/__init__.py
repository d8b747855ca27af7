"""Reviewer feedback collection and lexicon weight tuning."""
