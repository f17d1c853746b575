"""
wearables: OAuth credential management for wearable health providers.

Provides:
  • per-provider OAuth configuration (Oura, WHOOP, Fitbit, Google Fit and the rest)
  • CSRF state + PKCE generation and authorization-URL building
  • callback verification and code → token exchange
  • expiry-aware, single-flight token refresh
  • Fernet encryption of credentials at rest
  • disconnect with best-effort provider revocation

CredentialLifecycleManager (token_manager.py) is the entry point.
"""
