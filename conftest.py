"""Configure pytest for the parlay builder."""
import os
import sys
from pathlib import Path

# =============================================================================
# CI/Test Environment Configuration
# =============================================================================
# Set environment for tests BEFORE any imports
# This ensures rate limiting bypass is active for all tests
os.environ.setdefault("ENV", "test")
os.environ.setdefault("PARLAY_RATE_LIMIT_MODE", "ci")

# Add project root so app and generation import without installation
project_root = Path(__file__).parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))


def pytest_configure(config):
    """Ensure environment is set before test collection."""
    os.environ.setdefault("ENV", "test")
    os.environ.setdefault("PARLAY_RATE_LIMIT_MODE", "ci")
