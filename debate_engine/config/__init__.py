from debate_engine.config.settings import Settings, get_settings
from debate_engine.config.feature_flags import FeatureFlags, get_bool_env

__all__ = ["Settings", "get_settings", "FeatureFlags", "get_bool_env"]
