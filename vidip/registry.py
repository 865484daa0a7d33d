#!/usr/bin/env python3
"""
Device and Module Registry

The operating system's video device nodes and loaded kernel modules are
ambient, externally owned state. The slot manager only ever talks to them
through a DeviceRegistry so it can run against the real system or against
an in-memory model.
"""

import glob
import logging
import os
import re
import subprocess
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence, Set

logger = logging.getLogger("vidip.registry")

_VIDEO_NODE_RE = re.compile(r"^video(\d+)$")
_CARD_TYPE_RE = re.compile(r'^\s*Card type\s*:\s*(.*?)\s*$', re.MULTILINE)


def parse_card_label(output: str) -> Optional[str]:
    """Extract the 'Card type' value from `v4l2-ctl --all` output"""
    match = _CARD_TYPE_RE.search(output)
    if match:
        return match.group(1)
    return None


class DeviceRegistry(ABC):
    """Queries and mutates the video device / kernel module registry"""

    def device_path(self, index: int) -> str:
        return f"/dev/video{index}"

    @abstractmethod
    def device_indices(self) -> List[int]:
        """Indices of all existing /dev/videoN nodes, ascending"""

    @abstractmethod
    def device_exists(self, index: int) -> bool:
        ...

    @abstractmethod
    def card_label(self, index: int) -> Optional[str]:
        """Card label reported by the driver, None if unreadable"""

    @abstractmethod
    def is_in_use(self, index: int) -> bool:
        """True if any process holds the device node open"""

    @abstractmethod
    def is_module_loaded(self) -> bool:
        ...

    @abstractmethod
    def load_module(self, indices: Sequence[int], labels: Sequence[str],
                    exclusive_caps: bool = True) -> bool:
        """Load the provider with its complete device set. Returns success."""

    @abstractmethod
    def unload_module(self) -> bool:
        """Remove the provider and all its devices. Returns success."""

    @abstractmethod
    def is_privileged(self) -> bool:
        ...


class SystemRegistry(DeviceRegistry):
    """Registry backed by /dev, /sys, v4l2-ctl, fuser and modprobe"""

    def __init__(self, module_name: str = "v4l2loopback", dev_dir: str = "/dev",
                 sys_module_dir: str = "/sys/module"):
        self.module_name = module_name
        self.dev_dir = dev_dir
        self.sys_module_dir = sys_module_dir

    def device_path(self, index: int) -> str:
        return os.path.join(self.dev_dir, f"video{index}")

    def device_indices(self) -> List[int]:
        indices = []
        for path in glob.glob(os.path.join(self.dev_dir, "video*")):
            match = _VIDEO_NODE_RE.match(os.path.basename(path))
            if match:
                indices.append(int(match.group(1)))
        return sorted(indices)

    def device_exists(self, index: int) -> bool:
        return os.path.exists(self.device_path(index))

    def card_label(self, index: int) -> Optional[str]:
        result = self._run(["v4l2-ctl", "-d", self.device_path(index), "--all"])
        if result is None or result.returncode != 0:
            return None
        return parse_card_label(result.stdout)

    def is_in_use(self, index: int) -> bool:
        result = self._run(["fuser", self.device_path(index)])
        # fuser exits 0 only when at least one process uses the file
        return result is not None and result.returncode == 0

    def is_module_loaded(self) -> bool:
        return os.path.isdir(os.path.join(self.sys_module_dir, self.module_name))

    def load_module(self, indices: Sequence[int], labels: Sequence[str],
                    exclusive_caps: bool = True) -> bool:
        cmd = [
            "modprobe", self.module_name,
            "video_nr=" + ",".join(str(i) for i in indices),
            "card_label=" + ",".join(labels),
            f"exclusive_caps={1 if exclusive_caps else 0}",
        ]
        result = self._run(cmd)
        return result is not None and result.returncode == 0

    def unload_module(self) -> bool:
        result = self._run(["modprobe", "-r", self.module_name])
        return result is not None and result.returncode == 0

    def is_privileged(self) -> bool:
        return os.geteuid() == 0

    def _run(self, cmd: List[str]) -> Optional[subprocess.CompletedProcess]:
        logger.debug("Running: %s", " ".join(cmd))
        try:
            result = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                check=False,
            )
        except OSError as e:
            logger.debug("Could not run %s: %s", cmd[0], e)
            return None
        if result.returncode != 0 and result.stderr:
            logger.debug("%s exited %d: %s", cmd[0], result.returncode, result.stderr.strip())
        return result


class MemoryRegistry(DeviceRegistry):
    """
    In-memory registry.

    `nodes` maps device index to card label (None for nodes that belong to
    other drivers, such as a built-in webcam). Only nodes listed in
    `loopback` are owned by the virtual device provider and disappear on
    unload.
    """

    def __init__(self, nodes: Optional[Dict[int, Optional[str]]] = None,
                 loopback: Optional[Set[int]] = None,
                 in_use: Optional[Set[int]] = None,
                 loaded: Optional[bool] = None,
                 privileged: bool = True):
        self.nodes: Dict[int, Optional[str]] = dict(nodes or {})
        self.loopback: Set[int] = set(loopback or ())
        self.in_use: Set[int] = set(in_use or ())
        self.loaded = bool(self.loopback) if loaded is None else loaded
        self.privileged = privileged
        self.fail_load = False
        self.fail_unload = False
        self.calls: List[tuple] = []

    def device_indices(self) -> List[int]:
        return sorted(self.nodes)

    def device_exists(self, index: int) -> bool:
        return index in self.nodes

    def card_label(self, index: int) -> Optional[str]:
        return self.nodes.get(index)

    def is_in_use(self, index: int) -> bool:
        return index in self.in_use

    def is_module_loaded(self) -> bool:
        return self.loaded

    def load_module(self, indices: Sequence[int], labels: Sequence[str],
                    exclusive_caps: bool = True) -> bool:
        self.calls.append(("load", list(indices), list(labels), exclusive_caps))
        if self.fail_load or self.loaded:
            return False
        for index, label in zip(indices, labels):
            self.nodes[index] = label
            self.loopback.add(index)
        self.loaded = True
        return True

    def unload_module(self) -> bool:
        self.calls.append(("unload",))
        if self.fail_unload or not self.loaded:
            return False
        for index in self.loopback:
            self.nodes.pop(index, None)
            self.in_use.discard(index)
        self.loopback.clear()
        self.loaded = False
        return True

    def is_privileged(self) -> bool:
        return self.privileged
