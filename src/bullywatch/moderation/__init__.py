"""
Message moderation pipeline.

- **moderation_pipeline.py**: Per-message orchestration from normalization to
  the final ScoreResult, with locking and fallbacks.
- **pipeline_factory.py**: Builds the runtime from configuration and manages
  its lifecycle.
"""
