"""Root conftest: shared test configuration."""

import os

# Ensure tests never reach a real database
os.environ.setdefault("RTDB_DATABASE_URL", "https://test-project.firebaseio.com")
os.environ.setdefault("RTDB_LOG_FORMAT", "text")
