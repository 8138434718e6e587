"""Configuration settings for Walkaround."""

import json
from typing import Any, Optional

CONFIG = {
    "accuracy_limit": 20.0,  # meters - fixes less accurate than this are not used for addresses
    "median_window_size": 7,  # points - 0 disables track smoothing
    "address_check_interval": 60,  # seconds between periodic address checks
    "stationary_skip_distance": 5,  # meters - skip address checks when moved less than this
    "movement_override_distance": 200,  # meters - check immediately when moved this far
    "gps_poll_interval": 1,  # seconds
    "step_poll_interval": 2,  # seconds
    "default_locale": "en",  # locale used until the country is known
    "db_path": "walkaround.db",
    "geocode_precision": 6,  # decimals - coordinates sharing a rounded key share a lookup
    # Nominatim reverse geocoding
    "nominatim_url": "https://nominatim.openstreetmap.org/reverse",
    "nominatim_user_agent": "walkaround/0.1 (walk address log)",
    "nominatim_timeout": 20,  # seconds
    "nominatim_min_interval": 1.0,  # seconds between requests (usage policy)
}


class Settings:
    """Configuration source backed by the store's settings table.

    Every read goes to the store so that changes made by another part of the
    host take effect on the next read. Keys missing from the store fall back
    to CONFIG.
    """

    def __init__(self, store=None, overrides: Optional[dict] = None):
        self.store = store
        self.overrides = dict(overrides or {})

    def get(self, key: str, default: Any = None) -> Any:
        if key in self.overrides:
            return self.overrides[key]
        if self.store is not None:
            raw = self.store.get_setting(key)
            if raw is not None:
                return json.loads(raw)
        return CONFIG.get(key, default)

    def set(self, key: str, value: Any):
        """Persist a setting (or keep it in memory when there is no store)."""
        if self.store is None:
            self.overrides[key] = value
            return
        self.overrides.pop(key, None)
        self.store.set_setting(key, json.dumps(value))

    def delete(self, key: str):
        self.overrides.pop(key, None)
        if self.store is not None:
            self.store.delete_setting(key)

    @property
    def accuracy_limit(self) -> float:
        return float(self.get("accuracy_limit"))

    @property
    def median_window_size(self) -> int:
        return int(self.get("median_window_size"))

    @property
    def address_check_interval(self) -> float:
        return float(self.get("address_check_interval"))

    @property
    def stationary_skip_distance(self) -> float:
        return float(self.get("stationary_skip_distance"))

    @property
    def movement_override_distance(self) -> float:
        return float(self.get("movement_override_distance"))
