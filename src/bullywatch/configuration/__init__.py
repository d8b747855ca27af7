"""
Configuration management for BullyWatch.

- **app_configuration.py**: File-locked YAML configuration loader. Resolves each
  section into a typed settings object and falls back gracefully on missing or
  malformed config files.

- **pipeline_settings.py**: Frozen settings dataclasses for scoring, temporal
  analysis, the ensemble, escalation, feedback and storage.

- **classifier_settings.py**: Endpoint, model, timeout and budget settings of
  one external classifier.
"""
