"""
FastAPI dependency injection module for the ChurnGuard backend.

This module provides reusable FastAPI dependencies for configuration access,
the metrics provider, the session store and bearer-token authentication.
Endpoint handlers declare what they need through the Annotated type aliases
below and never construct infrastructure themselves.

Key Dependencies Provided:
- get_settings_dependency / SettingsDep: the cached Settings singleton
- get_threshold_policy_dependency / ThresholdPolicyDep: effective risk thresholds
- get_metrics_provider / MetricsProviderDep: provider selected by settings
- get_session_store / SessionStoreDep: process-wide session store
- require_session / CurrentSessionDep: the caller's live session, or 401

Usage Examples:
    @router.get("/accounts")
    async def list_accounts(
        provider: MetricsProviderDep,
        session: CurrentSessionDep,
    ) -> AccountListResponse:
        snapshots = await provider.get_account_snapshots()
        ...

Testing:
    Every dependency can be replaced through FastAPI's override mechanism:

    app.dependency_overrides[get_metrics_provider] = lambda: InMemoryMetricsProvider(...)
    app.dependency_overrides[get_session_store] = lambda: session_store
"""

from functools import lru_cache
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, status

from churnguard.core.config import Settings, get_settings
from churnguard.models.schemas import ThresholdPolicy
from churnguard.services.auth import AuthenticationError, SessionExpiredError, SessionRecord, SessionStore
from churnguard.services.metrics_provider import MetricsProvider, build_metrics_provider
from churnguard.services.thresholds import get_threshold_policy


# =============================================================================
# Settings Dependency
# =============================================================================

def get_settings_dependency() -> Settings:
    """
    Return the Settings singleton instance.

    Thin wrapper around get_settings() so tests can substitute settings with
    app.dependency_overrides[get_settings_dependency] = lambda: mock_settings
    """
    return get_settings()


def get_threshold_policy_dependency() -> ThresholdPolicy:
    """Return the effective threshold policy (built-in values plus settings overrides)."""
    return get_threshold_policy()


# =============================================================================
# Metrics Provider and Session Store Singletons
# =============================================================================

@lru_cache()
def get_metrics_provider() -> MetricsProvider:
    """
    Return the process-wide metrics provider.

    Built once from settings.metrics_source. Clear with
    get_metrics_provider.cache_clear() after changing settings.

    Raises:
        ValueError: If the configured metrics source is unknown or incomplete.
    """
    return build_metrics_provider(get_settings())


@lru_cache()
def get_session_store() -> SessionStore:
    """Return the process-wide session store, seeded with the configured password."""
    return SessionStore.from_settings(get_settings())


# =============================================================================
# Authentication Dependency
# =============================================================================

def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Token from an 'Authorization: Bearer <token>' header value, if any."""
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def require_session(
    store: Annotated[SessionStore, Depends(get_session_store)],
    authorization: Annotated[Optional[str], Header()] = None,
) -> SessionRecord:
    """
    Resolve the caller's session from the bearer token.

    Raises:
        HTTPException: 401 when the token is missing, unknown or expired.
    """
    token = extract_bearer_token(authorization)
    try:
        return store.validate(token)
    except SessionExpiredError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Session expired")
    except AuthenticationError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")


# =============================================================================
# Type Aliases for Dependency Injection
# =============================================================================

# Usage: async def endpoint(settings: SettingsDep)
SettingsDep = Annotated[Settings, Depends(get_settings_dependency)]

# Usage: async def endpoint(policy: ThresholdPolicyDep)
ThresholdPolicyDep = Annotated[ThresholdPolicy, Depends(get_threshold_policy_dependency)]

# Usage: async def endpoint(provider: MetricsProviderDep)
MetricsProviderDep = Annotated[MetricsProvider, Depends(get_metrics_provider)]

# Usage: async def endpoint(store: SessionStoreDep)
SessionStoreDep = Annotated[SessionStore, Depends(get_session_store)]

# Usage: async def endpoint(session: CurrentSessionDep)
CurrentSessionDep = Annotated[SessionRecord, Depends(require_session)]


__all__ = [
    "get_settings_dependency",
    "get_threshold_policy_dependency",
    "get_metrics_provider",
    "get_session_store",
    "extract_bearer_token",
    "require_session",
    "SettingsDep",
    "ThresholdPolicyDep",
    "MetricsProviderDep",
    "SessionStoreDep",
    "CurrentSessionDep",
]
