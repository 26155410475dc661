from __future__ import annotations
import json
import os
from typing import Any, Dict

from changeportal.domain.settings import PortalSettings

SETTINGS_FILE = "portal_settings.json"


class StorageLocal:
    """Local filesystem storage for portal settings (JSON)."""

    def __init__(self, root_dir: str = ".") -> None:
        self.root = root_dir

    @property
    def settings_path(self) -> str:
        return os.path.join(self.root, SETTINGS_FILE)

    def save_settings(self, settings: PortalSettings) -> None:
        payload = settings.to_dict()
        # Credentials stay out of the settings file.
        payload.pop("api_key", None)
        with open(self.settings_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)

    def load_prefs(self) -> Dict[str, Any]:
        if not os.path.exists(self.settings_path):
            return {}
        with open(self.settings_path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"{self.settings_path} must contain a JSON object")
        return data

    def load_settings(self, **overrides: Any) -> PortalSettings:
        """Merge persisted prefs with non-empty ``overrides`` into ``PortalSettings``."""
        prefs = self.load_prefs()
        prefs.update({key: value for key, value in overrides.items() if value is not None})
        return PortalSettings.from_mapping(prefs)
