"""Shared utilities: logging, errors, async bridges and store connections."""
