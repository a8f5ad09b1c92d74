"""
Config tracker boundary.

A config tracker reports the ConfigMaps and Secrets a canary target depends on
so that a change to one of them restarts the analysis. Trackers that cannot
handle the target kind raise an error carrying ``KIND_INVALID_SENTINEL``.
"""
from typing import Dict, Protocol

from canary_reconciler.models import Canary


class ConfigTracker(Protocol):
    def get_config_refs(self, canary: Canary) -> Dict[str, str]:
        """Return the tracked config references mapped to their checksums."""
        ...

    def has_config_changed(self, canary: Canary) -> bool:
        ...


class NopTracker:
    """Tracker used when config tracking is disabled."""

    def get_config_refs(self, canary: Canary) -> Dict[str, str]:
        return {}

    def has_config_changed(self, canary: Canary) -> bool:
        return False
