"""Shared plumbing: structured logging, metrics, service settings."""
