"""AuthGate - OIDC Authorization Code + PKCE login gateway."""

__version__ = "0.1.0"
