"""
vidip - Turn an IP camera into a web camera

Bridges a network RTSP camera into a v4l2loopback virtual video device so
any webcam application can open it as /dev/videoN:
- Allocates and labels numbered virtual devices ("slots")
- Detects and frees the slots it owns
- Streams the camera into a free slot with GStreamer

Usage:
    from vidip import BridgeConfig, SlotManager, SystemRegistry, GstPipeline

    config = BridgeConfig.from_env()
    manager = SlotManager(SystemRegistry(config.module_name), config)
    slot = manager.select_stream_slot()
    GstPipeline("192.168.0.90", slot.path, config).run()
"""

__version__ = "1.1.0"

from .config import BridgeConfig
from .address import resolve_address
from .registry import DeviceRegistry, SystemRegistry, MemoryRegistry
from .slots import SlotManager, Slot
from .pipeline import GstPipeline, build_rtsp_url, build_pipeline, check_dependencies
from .errors import VidipError

__all__ = [
    # Configuration
    "BridgeConfig",
    "resolve_address",
    # Device slots
    "SlotManager",
    "Slot",
    "DeviceRegistry",
    "SystemRegistry",
    "MemoryRegistry",
    # Streaming
    "GstPipeline",
    "build_rtsp_url",
    "build_pipeline",
    "check_dependencies",
    # Errors
    "VidipError",
]
