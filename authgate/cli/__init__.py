"""Command-line interface for AuthGate."""
