import os
from typing import Any, Dict


class ClassifierSettings:
    """Helper exposing typed accessors for one external classifier endpoint.

    Wraps the raw mapping found under ``classifiers.<name>`` in the YAML file.
    Only a minimal explicit API is provided (`get`, `as_dict` and convenience
    properties).
    """

    def __init__(self, name: str, data: Dict[str, Any] | None = None) -> None:
        self.name = name
        self.data: Dict[str, Any] = data or {}

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for `key` or `default` if missing."""
        return self.data.get(key, default)

    def as_dict(self) -> Dict[str, Any]:
        """Return the underlying mapping."""
        return self.data

    @property
    def enabled(self) -> bool:
        return bool(self.data.get("enabled", False))

    @property
    def base_url(self) -> str | None:
        val = self.data.get("base_url")
        return str(val) if val else None

    @property
    def model_name(self) -> str:
        return str(self.data.get("model_name", "gpt-4o-mini"))

    @property
    def api_key_env(self) -> str:
        return str(self.data.get("api_key_env", "OPENAI_API_KEY"))

    @property
    def api_key(self) -> str:
        """API key read from the environment variable named by ``api_key_env``.

        Local OpenAI-compatible servers accept any key, so a placeholder is
        returned when the variable is unset.
        """
        return os.environ.get(self.api_key_env) or "EMPTY"

    @property
    def timeout_seconds(self) -> float:
        return float(self.data.get("timeout_seconds", 3.0))

    @property
    def temperature(self) -> float:
        return float(self.data.get("temperature", 0.0))

    @property
    def max_tokens(self) -> int:
        return int(self.data.get("max_tokens", 200))

    @property
    def daily_budget(self) -> float | None:
        """Daily spend cap in currency units, or None for no cap."""
        val = self.data.get("daily_budget")
        return float(val) if val is not None else None

    @property
    def cost_per_call(self) -> float:
        return float(self.data.get("cost_per_call", 0.0))
