#!/usr/bin/env python3
"""
Virtual Device Slot Manager

Allocates, detects and frees the numbered v4l2loopback devices owned by
vidip. The provider only accepts its complete device list at load time,
so adding a slot means computing the full desired set of indices and
labels and reloading the module once with that snapshot.

Usage:
    from vidip import SlotManager, SystemRegistry, BridgeConfig

    config = BridgeConfig()
    manager = SlotManager(SystemRegistry(config.module_name), config)
    slot = manager.allocate()
    print(slot.path)
"""

import logging
import time
from dataclasses import dataclass
from typing import Iterable, List, Optional

from . import console
from .config import BridgeConfig
from .errors import (
    DeviceNotFoundError,
    DevicesInUseError,
    ModuleLoadError,
    ModuleNotLoadedError,
    ModuleUnloadError,
    NoFreeDeviceError,
    NoFreeSlotError,
    PrivilegeError,
)
from .registry import DeviceRegistry

logger = logging.getLogger("vidip.slots")


@dataclass
class Slot:
    """A virtual device slot as seen right now"""
    index: int
    path: str
    label: Optional[str] = None
    in_use: bool = False


class SlotManager:
    """
    Bookkeeping of vidip's virtual device slots.

    All system access goes through the registry, all tunables come from
    the config. Errors are raised, never retried.
    """

    def __init__(self, registry: DeviceRegistry, config: Optional[BridgeConfig] = None):
        self.registry = registry
        self.config = config or BridgeConfig()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_labeled(self, label: Optional[str]) -> bool:
        return bool(label) and label.startswith(self.config.label_prefix)

    def list_labeled_slots(self) -> List[int]:
        """Indices of existing devices carrying our label prefix, ascending"""
        labeled = [
            index for index in self.registry.device_indices()
            if self.is_labeled(self.registry.card_label(index))
        ]
        logger.debug("Labeled slots: %s", labeled)
        return sorted(labeled)

    def next_free_slot(self, labeled: Iterable[int]) -> Optional[int]:
        """First index with no device node that is not already labeled, or None"""
        taken = set(labeled)
        for index in range(self.config.max_devices):
            if index in taken or self.registry.device_exists(index):
                continue
            return index
        return None

    def slot(self, index: int) -> Slot:
        return Slot(
            index=index,
            path=self.registry.device_path(index),
            label=self.registry.card_label(index),
            in_use=self.registry.is_in_use(index),
        )

    def find_slot_by_label(self, label: str) -> Optional[int]:
        for index in self.registry.device_indices():
            if self.registry.card_label(index) == label:
                return index
        return None

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def inspect(self) -> List[Slot]:
        """All labeled slots with their device paths"""
        if not self.registry.is_module_loaded():
            raise ModuleNotLoadedError(
                f"No {self.config.module_name} module loaded.",
                ["Please load it by running: sudo vidip -l"],
            )
        return [self.slot(index) for index in self.list_labeled_slots()]

    def allocate(self) -> Slot:
        """
        Add one new labeled slot.

        Computes the desired device set (existing labeled slots plus the
        first free index), releases the module and loads it once with the
        whole set, then waits for the new slot to show up.

        Returns:
            The newly created slot

        Raises:
            PrivilegeError: not running as root
            NoFreeSlotError: every index is taken
            DevicesInUseError: an existing slot is held open, nothing changed
            ModuleLoadError: modprobe failed or the module did not appear
            DeviceNotFoundError: the new slot never appeared
        """
        self._require_privilege("load")

        labeled = self.list_labeled_slots()
        free = self.next_free_slot(labeled)
        if free is None:
            raise NoFreeSlotError(
                f"No free device numbers left (0..{self.config.max_devices - 1} all used)."
            )

        indices = sorted(set(labeled) | {free})
        labels = [self.config.slot_label(index) for index in indices]

        # The provider cannot add a device to a running instance
        self.release_all()

        devices = ",".join(str(index) for index in indices)
        console.info(f"Loading {self.config.module_name} with devices={devices}")
        if not self.registry.load_module(indices, labels, self.config.exclusive_caps):
            raise ModuleLoadError(
                f"Failed to load {self.config.module_name} module with new device(s)."
            )
        if not self.registry.is_module_loaded():
            raise ModuleLoadError(
                f"Failed to load {self.config.module_name} module with new device."
            )

        expected = self.config.slot_label(free)
        assigned = self._wait_for_label(expected)
        if assigned is None:
            raise DeviceNotFoundError(
                f"Could not find the newly assigned device for label {expected}."
            )

        slot = self.slot(assigned)
        console.success(
            f"{self.config.module_name} loaded successfully with new device "
            f"{slot.path} (label: {expected})"
        )
        return slot

    def release_all(self):
        """
        Remove the provider and every labeled slot.

        Refuses to touch anything while one of our slots is held open.

        Raises:
            PrivilegeError: not running as root
            DevicesInUseError: some labeled slots are in use
            ModuleUnloadError: the module could not be removed
        """
        self._require_privilege("unload")

        module = self.config.module_name
        if not self.registry.is_module_loaded():
            console.notice(f"No {module} module loaded. Skipping unload.")
            return

        labeled = self.list_labeled_slots()
        if not labeled:
            console.notice(
                f"{module} is loaded but no {self.config.label} devices found. Removing anyway..."
            )
            self._remove_module()
            return

        in_use = [index for index in labeled if self.registry.is_in_use(index)]
        if in_use:
            raise DevicesInUseError(in_use)

        console.warn(f"No devices in use. Removing {module} entirely.")
        self._remove_module()

    def select_stream_slot(self) -> Slot:
        """
        Pick the labeled slot to stream into: the first one nobody holds open.

        Raises:
            ModuleNotLoadedError: the provider is not loaded
            NoFreeDeviceError: every labeled slot is in use (or there are none)
            DeviceNotFoundError: the chosen device node vanished
        """
        if not self.registry.is_module_loaded():
            raise ModuleNotLoadedError(
                f"{self.config.module_name} module is not loaded.",
                [f"Please run 'vidip -l' to create at least one {self.config.label} device."],
            )

        for index in self.list_labeled_slots():
            if self.registry.is_in_use(index):
                continue
            path = self.registry.device_path(index)
            if not self.registry.device_exists(index):
                raise DeviceNotFoundError(f"Device {path} does not exist. Exiting.")
            return Slot(index=index, path=path, label=self.config.slot_label(index))

        raise NoFreeDeviceError(
            f"No free {self.config.label} device found.",
            ["Please run 'vidip -l' to add another device."],
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_privilege(self, action: str):
        if not self.registry.is_privileged():
            raise PrivilegeError(
                f"Error: Must run as root (use sudo) to {action} the module."
            )

    def _remove_module(self):
        module = self.config.module_name
        if not self.registry.unload_module() or self.registry.is_module_loaded():
            raise ModuleUnloadError(f"Failed to unload {module} module.")
        console.success(f"All {self.config.label} devices removed successfully.")

    def _wait_for_label(self, label: str) -> Optional[int]:
        """Poll until a device reports the label (udev creates nodes asynchronously)"""
        deadline = time.monotonic() + self.config.verify_timeout
        check_interval = 0.2
        while True:
            index = self.find_slot_by_label(label)
            if index is not None or time.monotonic() >= deadline:
                return index
            time.sleep(check_interval)
