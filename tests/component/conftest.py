"""
Component Test Layer Configuration

Structure:
    tests/component/
    └── campaign_progress/   Engine, facade, events, monitor and HTTP app

Usage:
    pytest tests/component -v
    pytest tests/component/campaign_progress -v
"""
import os
import sys

import pytest

# Set testing environment BEFORE any imports
os.environ["ENV"] = "testing"
os.environ["ENVIRONMENT"] = "testing"
os.environ["NATS_ENABLED"] = "false"

# Add project root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

# Load test environment variables
from pathlib import Path
from dotenv import load_dotenv

project_root = Path(__file__).parent.parent.parent
test_env_file = project_root / "tests" / "config" / ".env.test"
if test_env_file.exists():
    load_dotenv(test_env_file, override=True)


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Configure custom markers"""
    config.addinivalue_line(
        "markers", "component: marks tests as component tests"
    )


def pytest_collection_modifyitems(config, items):
    """Tag everything under this layer as a component test"""
    for item in items:
        if "/tests/component/" in str(item.path):
            item.add_marker(pytest.mark.component)

