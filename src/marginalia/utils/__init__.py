"""Shared utilities: console logging and atomic file writes."""
