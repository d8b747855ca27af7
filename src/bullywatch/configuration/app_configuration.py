from __future__ import annotations
from pathlib import Path
import fcntl
from typing import Any, Dict, List
import yaml

from bullywatch.configuration.classifier_settings import ClassifierSettings
from bullywatch.configuration.pipeline_settings import (
    EnsembleSettings,
    EscalationSettings,
    FeedbackSettings,
    ScoringSettings,
    StorageSettings,
    TemporalSettings,
)
from bullywatch.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path("./config/app_config.yml").resolve()


class AppConfig:
    """File-lock based accessor around the YAML application configuration.

    The class caches the contents of the YAML file, exposes dictionary-like
    access helpers, and resolves each section into its typed settings object.
    Uses fcntl file locks for safe concurrent access across processes.

    Instances are created explicitly (see :func:`load_app_config`) and passed
    to the pipeline factory; there is no module-level instance.
    """

    def __init__(self, config_path: Path = CONFIG_PATH) -> None:
        self.config_path = config_path
        self._data: Dict[str, Any] = {}
        self.reload()

    # --------------------------
    # Private helpers
    # --------------------------
    def load_from_disk(self) -> Dict[str, Any]:
        try:
            with self.config_path.open("r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    data = yaml.safe_load(f)
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except FileNotFoundError:
            logger.error("[APP CONFIGURATION] Config file %s not found, using defaults.", self.config_path)
            return {}
        except (OSError, yaml.YAMLError) as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
            return {}

        if not isinstance(data, dict):
            logger.error("[APP CONFIGURATION] Config %s is not a mapping, using defaults.", self.config_path)
            return {}
        return data

    def _section(self, key: str) -> Dict[str, Any]:
        value = self._data.get(key, {})
        return value if isinstance(value, dict) else {}

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Reload configuration from disk and return the loaded mapping.

        Returns the raw mapping that was loaded (an empty dict on error, in
        which case every section falls back to its defaults).
        """
        self._data = self.load_from_disk()
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        """Return the current cached configuration mapping.

        Callers should not mutate it; use get(...) or the typed properties.
        """
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Safe lookup for top-level configuration keys."""
        return self._data.get(key, default)

    # --------------------------
    # High-level shortcuts
    # --------------------------
    @property
    def scoring(self) -> ScoringSettings:
        """Composite scorer settings.

        The top-level ``monitor_mode`` flag overrides ``scoring.monitor_mode``
        when present, so operators can flip it without touching the section.
        """
        section = dict(self._section("scoring"))
        if isinstance(self._data.get("monitor_mode"), bool):
            section["monitor_mode"] = self._data["monitor_mode"]
        return ScoringSettings.from_mapping(section)

    @property
    def temporal(self) -> TemporalSettings:
        return TemporalSettings.from_mapping(self._section("temporal"))

    @property
    def ensemble(self) -> EnsembleSettings:
        return EnsembleSettings.from_mapping(self._section("ensemble"))

    @property
    def escalation(self) -> EscalationSettings:
        return EscalationSettings.from_mapping(self._section("escalation"))

    @property
    def feedback(self) -> FeedbackSettings:
        return FeedbackSettings.from_mapping(self._section("feedback"))

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings.from_mapping(self._section("storage"))

    def classifier(self, name: str) -> ClassifierSettings:
        """Return the settings of the classifier named ``name``.

        Args:
            name: ``gate``, ``second``, ``escalation`` or ``narrative``.
        """
        classifiers = self._section("classifiers")
        settings = classifiers.get(name, {})
        return ClassifierSettings(name, settings if isinstance(settings, dict) else {})

    @property
    def critical_terms(self) -> List[Dict[str, str]]:
        """Extra critical terms as ``{"term": ..., "category": ...}`` mappings.

        Plain strings in the YAML list are accepted and get the
        ``direct_threat`` category.
        """
        raw = self._data.get("critical_terms") or []
        terms: List[Dict[str, str]] = []
        for item in raw if isinstance(raw, list) else []:
            if isinstance(item, str):
                terms.append({"term": item, "category": "direct_threat"})
            elif isinstance(item, dict) and item.get("term"):
                terms.append({"term": str(item["term"]), "category": str(item.get("category", "direct_threat"))})
        return terms

    @property
    def lexicon_entries(self) -> List[Dict[str, Any]]:
        """Extra lexicon entries as ``{"category", "terms", "score"}`` mappings."""
        raw = self._section("lexicon").get("extra_entries") or []
        return [item for item in raw if isinstance(item, dict) and item.get("terms")] if isinstance(raw, list) else []


def load_app_config(path: Path | str = CONFIG_PATH) -> AppConfig:
    """Load the application configuration from ``path``."""
    return AppConfig(Path(path).resolve())
