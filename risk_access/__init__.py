"""Application layer for hosts embedding the Verisoul integration."""

from .configuration import ApiSettings, RiskSettings, Settings, load_settings
from .profiles import RiskProfile

__all__ = ["ApiSettings", "RiskProfile", "RiskSettings", "Settings", "load_settings"]
