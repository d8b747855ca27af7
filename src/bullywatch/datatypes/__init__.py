"""
Shared value types for BullyWatch.

- **message_datatypes.py**: Messages, group context and whitelist entries
  received from or configured by the transport side.
- **scoring_datatypes.py**: Severity tiers, action directives, lexicon hits
  and the final `ScoreResult`.
- **classifier_datatypes.py**: Request/response envelopes for the external
  classifiers and the ensemble consensus result.
- **feedback_datatypes.py**: Human review records and accuracy metrics.
"""
