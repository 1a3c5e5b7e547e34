"""Helpers for publisher metadata and XML schema validation."""
