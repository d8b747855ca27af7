"""Tests for the YAML application configuration."""

import textwrap
from pathlib import Path

import pytest

from bullywatch.configuration.app_configuration import load_app_config
from bullywatch.datatypes.scoring_datatypes import SeverityTier


def write_config(tmp_path, body: str):
    path = tmp_path / "app_config.yml"
    path.write_text(textwrap.dedent(body), encoding="utf-8")
    return path


def test_missing_file_falls_back_to_defaults(tmp_path):
    config = load_app_config(tmp_path / "absent.yml")
    assert config.data == {}
    assert config.scoring.monitor_mode is False
    assert config.scoring.tier_thresholds[SeverityTier.YELLOW] == 8
    assert config.temporal.pile_on_window == 600
    assert config.storage.backend == "sqlite"


def test_non_mapping_document_is_ignored(tmp_path):
    config = load_app_config(write_config(tmp_path, "- just\n- a list\n"))
    assert config.data == {}


def test_sections_are_typed(tmp_path):
    path = write_config(tmp_path, """
        scoring:
          targeting_multiplier: 2
          auto_friend_group: true
          tier_thresholds:
            yellow: 9
        temporal:
          pile_on_bonus: "7"
        escalation:
          band_low: 6
          max_calls_per_hour: 5
        storage:
          backend: memory
    """)
    config = load_app_config(path)

    assert config.scoring.targeting_multiplier == 2.0
    assert config.scoring.auto_friend_group is True
    assert config.scoring.tier_thresholds[SeverityTier.YELLOW] == 9
    assert config.scoring.tier_thresholds[SeverityTier.ORANGE] == 12
    assert config.temporal.pile_on_bonus == 7.0
    assert config.escalation.band_low == 6
    assert config.escalation.band_high == 13
    assert config.storage.backend == "memory"


def test_invalid_values_keep_defaults(tmp_path):
    path = write_config(tmp_path, """
        scoring:
          monitor_mode: "yes"
          targeting_multiplier: lots
          tier_thresholds:
            yellow: 30
    """)
    scoring = load_app_config(path).scoring
    assert scoring.monitor_mode is False
    assert scoring.targeting_multiplier == 1.5
    assert scoring.tier_thresholds[SeverityTier.YELLOW] == 8


def test_shipped_config_loads_behavior_and_narrative_settings():
    config = load_app_config(Path(__file__).parent.parent / "config" / "app_config.yml")
    assert config.temporal.velocity_window == 300.0
    assert config.temporal.silencing_quiet == 600.0
    assert config.temporal.silencing_bonus == 5.0
    assert config.scoring.narrative_check_score == 15.0
    assert config.scoring.narrative_dampening == 0.2
    assert config.classifier("narrative").enabled is True


@pytest.mark.parametrize("top_level,expected", [(True, True), (False, False)])
def test_top_level_monitor_mode_overrides_section(tmp_path, top_level, expected):
    path = write_config(tmp_path, f"""
        monitor_mode: {str(top_level).lower()}
        scoring:
          monitor_mode: {str(not top_level).lower()}
    """)
    assert load_app_config(path).scoring.monitor_mode is expected


def test_critical_terms_and_lexicon_entries(tmp_path):
    path = write_config(tmp_path, """
        critical_terms:
          - "burn your house"
          - term: "end it all"
            category: self_harm
          - category: missing_term
        lexicon:
          extra_entries:
            - category: appearance
              score: 4
              terms: ["goblin"]
            - category: appearance
              terms: []
    """)
    config = load_app_config(path)

    assert config.critical_terms == [
        {"term": "burn your house", "category": "direct_threat"},
        {"term": "end it all", "category": "self_harm"},
    ]
    assert config.lexicon_entries == [{"category": "appearance", "score": 4, "terms": ["goblin"]}]


def test_classifier_settings(tmp_path, monkeypatch):
    path = write_config(tmp_path, """
        classifiers:
          second:
            enabled: true
            model_name: local-model
            base_url: http://localhost:8000/v1
            api_key_env: BW_TEST_KEY
            timeout_seconds: 1.5
            daily_budget: 2
    """)
    monkeypatch.setenv("BW_TEST_KEY", "secret")
    config = load_app_config(path)

    second = config.classifier("second")
    assert second.enabled is True
    assert second.model_name == "local-model"
    assert second.base_url == "http://localhost:8000/v1"
    assert second.api_key == "secret"
    assert second.timeout_seconds == 1.5
    assert second.daily_budget == 2.0

    gate = config.classifier("gate")
    assert gate.enabled is False
    assert gate.daily_budget is None


def test_reload_picks_up_changes(tmp_path):
    path = write_config(tmp_path, "monitor_mode: false\n")
    config = load_app_config(path)
    path.write_text("monitor_mode: true\n", encoding="utf-8")
    config.reload()
    assert config.scoring.monitor_mode is True
