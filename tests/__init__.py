"""Test package marker so `liveconfig` resolves from the repository root."""
