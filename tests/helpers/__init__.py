"""Shared helpers for dotman tests."""
