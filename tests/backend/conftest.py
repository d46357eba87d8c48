"""
Shared pytest setup: keep test runs out of the real data directory.
"""

import os
import sys
import tempfile

os.environ.setdefault("TERMBOOK_DATA_DIR", tempfile.mkdtemp(prefix="termbook-tests-"))
os.environ.setdefault("TERMBOOK_STORE", "json")

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../../backend"))
