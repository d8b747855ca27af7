"""
BullyWatch - bullying and harassment scoring for group chats

BullyWatch scores each incoming chat message for bullying and harassment and
recommends a moderation action, combining fast rule-based layers with a pair
of external classifiers.

Core Components:

- **Normalization**: Canonicalizes obfuscated text (leetspeak, confusable
  letters, spacing tricks, transliterated slurs) before any matching
- **Detection**: Critical-term filter, weighted lexicon with a hard cap, and
  temporal analysis of pile-ons, repeat targeting and repeat offenders
- **AI**: Gate and second classifier ensemble plus a context-aware escalation
  tiebreaker for borderline scores
- **Scoring**: Composite formula with a critical floor and a tier-to-action
  policy honouring monitor mode and self-harm routing
- **Feedback**: Reviewer verdicts retune category weights

Usage:
    from bullywatch.configuration.app_configuration import load_app_config
    from bullywatch.moderation.pipeline_factory import build_pipeline

    runtime = await build_pipeline(load_app_config())
    runtime.start()
    result = await runtime.pipeline.process(message, group_context)
"""
