#!/usr/bin/env python3
"""Exception taxonomy. Every error carries the process exit code it maps to."""

from typing import Iterable, List, Optional


class VidipError(Exception):
    """Base class for all fatal vidip errors"""
    exit_code = 1

    def __init__(self, message: str, hints: Optional[Iterable[str]] = None):
        super().__init__(message)
        self.message = message
        self.hints: List[str] = list(hints or [])


# Environment, privilege and input errors (exit 1)

class UnsupportedPlatformError(VidipError):
    exit_code = 1


class MissingDependencyError(VidipError):
    exit_code = 1

    def __init__(self, tool: str, package: Optional[str] = None,
                 hints: Optional[Iterable[str]] = None):
        name = f"{package} ({tool})" if package and package != tool else tool
        super().__init__(f"Error: {name} is not installed.", hints)
        self.tool = tool
        self.package = package or tool


class PrivilegeError(VidipError):
    exit_code = 1


class InvalidAddressError(VidipError):
    exit_code = 1


# Slot and module errors (exit 2)

class NoFreeSlotError(VidipError):
    exit_code = 2


class ModuleNotLoadedError(VidipError):
    exit_code = 2


class ModuleLoadError(VidipError):
    exit_code = 2


# Device errors (exit 3)

class DeviceNotFoundError(VidipError):
    exit_code = 3


class NoFreeDeviceError(VidipError):
    exit_code = 3


class ModuleUnloadError(VidipError):
    exit_code = 3


# Runtime errors (exit 4)

class DevicesInUseError(VidipError):
    exit_code = 4

    def __init__(self, indices: Iterable[int]):
        self.indices = sorted(indices)
        listed = " ".join(str(i) for i in self.indices)
        super().__init__(
            f"Some devices are in use: {listed}. Skipping removal.",
            ["Close or kill any processes using those devices and try again."],
        )


class PipelineError(VidipError):
    exit_code = 4

    def __init__(self, message: str, returncode: Optional[int], hints: Optional[Iterable[str]] = None):
        super().__init__(message, hints)
        self.returncode = returncode
