"""
Feature Flags Configuration

Centralized feature flag management for the engine.
All feature flags are loaded from environment variables.
"""
import os


def get_bool_env(key: str, default: bool = False) -> bool:
    """Get a boolean value from environment variable."""
    value = os.getenv(key, str(default)).lower()
    return value in ('true', '1', 'yes', 'on', 'enabled')


class FeatureFlags:
    """
    Feature flags for the engine.

    Tests may flip these class attributes directly.
    """

    # Completion cascade
    FEATURE_ROUND_AUTO_COMPLETION: bool = get_bool_env('FEATURE_ROUND_AUTO_COMPLETION', True)
    FEATURE_TOURNAMENT_AUTO_COMPLETION: bool = get_bool_env('FEATURE_TOURNAMENT_AUTO_COMPLETION', True)

    # Notifications on pairing release and withdrawal
    FEATURE_PAIRING_NOTIFICATIONS: bool = get_bool_env('FEATURE_PAIRING_NOTIFICATIONS', True)

    @classmethod
    def is_enabled(cls, flag_name: str) -> bool:
        """Check if a feature flag is enabled."""
        return getattr(cls, flag_name, False)

    @classmethod
    def get_all_flags(cls) -> dict:
        """Get all feature flags as a dictionary."""
        return {
            name: getattr(cls, name)
            for name in dir(cls)
            if name.startswith('FEATURE_')
        }
