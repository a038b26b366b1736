"""Shared test setup.

Settings are read at import time and JWT_SECRET has no default, so the
environment is primed before any `src` module is imported.
"""

import os

os.environ.setdefault("JWT_SECRET", "test-secret-not-for-production")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
