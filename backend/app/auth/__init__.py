# app/auth/__init__.py
"""
Authentication modules.

This package contains:
- identity.py: AuthenticatedIdentity, the sanitized account view attached to requests
- strategies.py: password / bearer / delegated-identity verification flows
- oauth.py: Google + GitHub handshake collaborators feeding the delegated flow
"""
from app.auth.identity import AuthenticatedIdentity

__all__ = ["AuthenticatedIdentity"]
