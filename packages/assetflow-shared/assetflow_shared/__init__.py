"""
Assetflow Shared - infrastructure shared by the build engine.

This package contains:
- common/: exception hierarchy
- infra/config/: pydantic-settings application settings
- infra/observability/: structlog logging
"""
