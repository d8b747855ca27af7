"""
External classifier layer for BullyWatch.

This package talks to OpenAI-compatible chat-completion endpoints:

- **classifier_client.py**: Gate, second (sentiment) and escalation classifiers
  using AsyncOpenAI with JSON-schema structured output and hard deadlines.
- **classifier_parsing.py**: Schema validation of raw model output.
- **ensemble_consensus.py**: Concurrent two-classifier vote, disagreement log
  and health statistics.
- **escalation_service.py**: Context-window escalation for borderline scores.
- **rate_limiter.py**: Per-sender sliding-window limits and daily budgets.

Key Features:
- Fail-open: timeouts, transport errors and malformed output become ambiguous
- Message content is only ever logged as a hash
"""
