#!/usr/bin/env python3
"""Bridge configuration dataclass"""

import json
import logging
import os
from dataclasses import dataclass, asdict
from typing import Mapping, Optional

logger = logging.getLogger("vidip.config")

# Never written to disk by save()
SECRET_FIELDS = ("camera_user", "camera_pass")


@dataclass
class BridgeConfig:
    """Complete bridge configuration"""
    # Virtual device provider
    module_name: str = "v4l2loopback"
    label: str = "v4l2-ip-camera"
    max_devices: int = 64
    exclusive_caps: bool = True
    verify_timeout: float = 2.0

    # Camera
    resolution: str = "1280x720"
    camera_user: str = "root"
    camera_pass: str = "pass"
    default_ip_prefix: str = "192.168.0."

    # Pipeline
    latency: int = 0
    debug: bool = False

    def slot_label(self, index: int) -> str:
        """Card label given to the slot with this index"""
        return f"{self.label}-{index}"

    @property
    def label_prefix(self) -> str:
        return f"{self.label}-"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None,
                 base: Optional['BridgeConfig'] = None) -> 'BridgeConfig':
        """Apply CAMERA_USER, CAMERA_PASS and DEBUG on top of base (or defaults)"""
        if environ is None:
            environ = os.environ
        config = base or cls()
        config.camera_user = environ.get("CAMERA_USER", config.camera_user)
        config.camera_pass = environ.get("CAMERA_PASS", config.camera_pass)
        if "DEBUG" in environ:
            config.debug = environ["DEBUG"].strip().lower() == "true"
        return config

    def save(self, filepath: str = "vidip.json") -> bool:
        """Save configuration to JSON file"""
        try:
            config_dict = asdict(self)
            for name in SECRET_FIELDS:
                config_dict.pop(name, None)
            with open(filepath, 'w', encoding='utf-8') as f:
                json.dump(config_dict, f, indent=2)
            return True
        except OSError as e:
            logger.warning("Failed to save config: %s", e)
            return False

    @classmethod
    def load(cls, filepath: str = "vidip.json") -> 'BridgeConfig':
        """Load configuration from JSON file, or return defaults if not found"""
        try:
            with open(filepath, 'r', encoding='utf-8') as f:
                config_dict = json.load(f)
        except FileNotFoundError:
            logger.info("Config file '%s' not found, using defaults", filepath)
            return cls()
        except (OSError, ValueError) as e:
            logger.warning("Failed to load config: %s", e)
            return cls()
        if not isinstance(config_dict, dict):
            logger.warning("Ignoring config file '%s': expected a JSON object", filepath)
            return cls()
        # Filter to only valid fields
        valid_fields = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in config_dict.items() if k in valid_fields}
        return cls(**filtered)
