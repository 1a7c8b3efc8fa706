"""
Shared utilities for the OBO token broker.

This package aggregates common building blocks consumed by the service:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- base_service: FastAPI service shell with health and metrics routes

Do not import from service_* packages into shared/.
"""
