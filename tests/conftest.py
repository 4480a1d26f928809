"""
pytest configuration and fixtures for message flattening tests.

Provides reusable fixtures for:
- Message definitions and their parsed type maps
- Payload builders for the positional wire format
- Hypothesis property-based testing configuration
"""

import os
import struct
import sys
from pathlib import Path

import pytest
from hypothesis import settings, Verbosity, Phase

# Add project paths
sys.path.insert(0, str(Path(__file__).parent.parent / "tools"))

MESSAGES_DIR = Path(__file__).parent.parent / "messages"
SEPARATOR = "=" * 80

# Default profile: balanced speed and coverage
settings.register_profile(
    "default",
    max_examples=100,
    deadline=None,
)

# CI profile: more thorough testing
settings.register_profile(
    "ci",
    max_examples=500,
    deadline=None,
    suppress_health_check=[],
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
)

# Dev profile: fast iteration
settings.register_profile(
    "dev",
    max_examples=10,
    deadline=None,
)

# Debug profile: verbose output
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
)

settings.load_profile(os.environ.get("HYPOTHESIS_PROFILE", "default"))


ROBOT_DEFINITION = "\n".join([
    "JointState[] joint",
    SEPARATOR,
    "MSG: robot_msgs/JointState",
    "string name",
    "float64 position",
])


def pack_string(text: str) -> bytes:
    raw = text.encode("utf-8")
    return struct.pack("<i", len(raw)) + raw


def pack_joints(joints) -> bytes:
    """Payload for ROBOT_DEFINITION: [(name, position), ...]."""
    payload = struct.pack("<i", len(joints))
    for name, position in joints:
        payload += pack_string(name) + struct.pack("<d", position)
    return payload


@pytest.fixture
def robot_definition():
    return ROBOT_DEFINITION


@pytest.fixture
def robot_type_map():
    from msg_parser import build_type_map
    return build_type_map("robot_msgs/Robot", ROBOT_DEFINITION)


@pytest.fixture
def messages_dir():
    return MESSAGES_DIR


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "cli: marks tests that run the command line tools"
    )
