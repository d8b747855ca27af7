"""
Rule-based detection layers.

- **critical_term_filter.py**: Zero-cost check for catastrophic terms that
  short-circuits the whole pipeline.
- **lexicon_tables.py** / **lexicon_scorer.py**: Category pattern tables and
  the capped, weighted lexicon score.
- **lexicon_weights.py**: Immutable, versioned weight snapshots.
- **context_signals.py**: Direct address, public shaming, emoji intensity and
  target extraction.
- **temporal_analyzer.py**: Conversation windows and sender histories.
"""
