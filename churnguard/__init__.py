"""
ChurnGuard Backend Package.

FastAPI service layer for the ChurnGuard account churn-risk dashboard.
Classifies restaurant-client accounts into low/medium/high risk tiers from
their periodic activity metrics and serves the tables and comparisons the
dashboard renders.

Subpackages:
    - api: FastAPI route handlers
    - core: Configuration and dependency injection
    - models: Pydantic schemas and enums
    - services: Risk classification engine, metrics providers, summaries, sessions
"""

__version__ = "2.1.0"
