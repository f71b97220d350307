"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests. It
pins the environment before any app module reads settings, so tests never
depend on a developer's .env file or a running Redis server.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ["TESTING"] = "true"

# Every test runs on the in-memory store unless it injects its own backend
os.environ.pop("REDIS_URL", None)

os.environ.setdefault("LOG_LEVEL", "INFO")
os.environ.setdefault("RATE_LIMIT_ENABLED", "true")
os.environ.setdefault("RATE_LIMIT_STRICT_WINDOW_MS", "900000")
os.environ.setdefault("RATE_LIMIT_STRICT_MAX_REQUESTS", "10")
