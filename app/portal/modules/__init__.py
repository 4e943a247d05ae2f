"""
Portal feature modules live under this package.

Each module owns its models, service functions and blueprint, and reuses the
platform pieces (auth, RBAC, audit, storage, DB session) from app.portal.
"""
