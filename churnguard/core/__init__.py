"""
Core infrastructure package for the ChurnGuard backend.

Provides:
- Configuration management via pydantic-settings (config)
- FastAPI dependency injection utilities (dependencies): settings, threshold
  policy, metrics provider, session store and bearer-token authentication

Only configuration is re-exported here; the services layer imports settings
through this package, so the dependency module (which imports the services)
is imported explicitly:

    from churnguard.core import get_settings
    from churnguard.core.dependencies import MetricsProviderDep, CurrentSessionDep
"""

# =============================================================================
# Re-exports from churnguard.core.config
# =============================================================================
from churnguard.core.config import Settings, get_settings

__all__ = [
    'Settings',
    'get_settings',
]
