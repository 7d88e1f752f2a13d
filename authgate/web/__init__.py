"""Web layer for AuthGate."""
