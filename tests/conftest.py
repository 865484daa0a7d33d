"""
Shared pytest fixtures for vidip tests
"""

import os
import sys
import tempfile
import json
from unittest.mock import patch

import pytest
import numpy as np

# Add the parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from vidip.config import BridgeConfig
from vidip.registry import MemoryRegistry
from vidip.slots import SlotManager


@pytest.fixture
def default_config():
    """BridgeConfig with defaults, but no waiting for devices to appear"""
    return BridgeConfig(verify_timeout=0)


@pytest.fixture
def custom_config():
    """BridgeConfig with non-default values"""
    return BridgeConfig(
        module_name="v4l2loopback",
        label="test-cam",
        max_devices=8,
        resolution="1920x1080",
        camera_user="admin",
        camera_pass="secret",
        default_ip_prefix="10.0.0.",
        latency=200,
        verify_timeout=0,
    )


@pytest.fixture
def temp_config_file():
    """Temporary JSON config file"""
    with tempfile.NamedTemporaryFile(mode='w', suffix='.json', delete=False) as f:
        json.dump({
            "label": "lab-cam",
            "resolution": "640x480",
            "default_ip_prefix": "10.1.1.",
            "latency": 50,
            "unknown_key": "ignored",
        }, f)
        temp_path = f.name

    yield temp_path

    # Cleanup
    if os.path.exists(temp_path):
        os.unlink(temp_path)


@pytest.fixture
def empty_registry():
    """No video devices at all, module not loaded"""
    return MemoryRegistry()


@pytest.fixture
def webcam_registry():
    """A laptop with a built-in webcam on video0/video1, module not loaded"""
    return MemoryRegistry(nodes={0: "Integrated Camera", 1: "Integrated Camera"})


@pytest.fixture
def loaded_registry():
    """Built-in webcam plus two of our slots (video2, video3)"""
    return MemoryRegistry(
        nodes={
            0: "Integrated Camera",
            1: "Integrated Camera",
            2: "v4l2-ip-camera-2",
            3: "v4l2-ip-camera-3",
        },
        loopback={2, 3},
    )


@pytest.fixture
def manager(loaded_registry, default_config):
    return SlotManager(loaded_registry, default_config)


@pytest.fixture
def all_tools():
    """Every external tool is on PATH"""
    with patch("vidip.pipeline.shutil.which", side_effect=lambda tool: f"/usr/bin/{tool}") as which:
        yield which


@pytest.fixture
def on_linux():
    with patch("vidip.__main__.platform.system", return_value="Linux") as system:
        yield system


@pytest.fixture
def sample_frame():
    """A 640x480 BGR frame with picture content"""
    frame = np.zeros((480, 640, 3), dtype=np.uint8)
    frame[:, :, 0] = 100  # Blue
    frame[:, :, 1] = 150  # Green
    frame[:, :, 2] = 200  # Red
    return frame


@pytest.fixture
def black_frame():
    """What v4l2loopback delivers when nothing writes to it"""
    return np.zeros((480, 640, 3), dtype=np.uint8)
