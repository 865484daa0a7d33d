#!/usr/bin/env python3
"""
GStreamer Pipeline

Builds and runs the gst-launch-1.0 pipeline that pulls the camera's RTSP
stream, decodes it and writes raw frames into a v4l2loopback device:

    rtspsrc ! rtph264depay ! decodebin ! videoconvert ! v4l2sink
"""

import logging
import os
import shutil
import subprocess
from typing import Dict, Iterable, List, Mapping, Optional, Tuple
from urllib.parse import quote

from .config import BridgeConfig
from .errors import MissingDependencyError, PipelineError

logger = logging.getLogger("vidip.pipeline")

GST_LAUNCH = "gst-launch-1.0"

# fuser backs the in-use checks every action makes
REQUIRED_TOOLS: Tuple[str, ...] = (GST_LAUNCH, "v4l2-ctl", "fuser")

# Needed on top of REQUIRED_TOOLS to load or unload the module
MODULE_TOOLS: Tuple[str, ...] = ("modprobe",)

# Install hints per tool: (package description, Debian/Ubuntu, Fedora)
INSTALL_HINTS: Dict[str, Tuple[str, str, str]] = {
    GST_LAUNCH: (
        "GStreamer tools",
        "sudo apt install gstreamer1.0-tools",
        "sudo dnf install gstreamer1-plugins-base",
    ),
    "v4l2-ctl": (
        "v4l-utils",
        "sudo apt install v4l-utils v4l2loopback-dkms",
        "sudo dnf install v4l-utils akmod-v4l2loopback",
    ),
    "modprobe": (
        "kmod",
        "sudo apt install kmod",
        "sudo dnf install kmod",
    ),
    "fuser": (
        "psmisc",
        "sudo apt install psmisc",
        "sudo dnf install psmisc",
    ),
}


def check_dependencies(tools: Iterable[str] = REQUIRED_TOOLS, which=None):
    """Fail fast with an install hint for the first tool missing from PATH"""
    which = which or shutil.which
    for tool in tools:
        if which(tool):
            continue
        package, debian, fedora = INSTALL_HINTS.get(tool, (tool, "", ""))
        hints = []
        if debian:
            hints.append(f"  Debian/Ubuntu: '{debian}'")
        if fedora:
            hints.append(f"  Fedora: '{fedora}'")
        raise MissingDependencyError(tool, package, hints)


def build_rtsp_url(ip: str, config: BridgeConfig) -> str:
    """Axis RTSP URL for the camera at ip"""
    user = quote(config.camera_user, safe="")
    password = quote(config.camera_pass, safe="")
    return (
        f"rtsp://{user}:{password}@{ip}"
        f"/axis-media/media.amp?resolution={config.resolution}"
    )


def build_pipeline(url: str, device: str, latency: int = 0) -> List[str]:
    """gst-launch element description as an argument list"""
    return [
        "rtspsrc", f"latency={latency}", f"location={url}",
        "!", "rtph264depay",
        "!", "decodebin",
        "!", "videoconvert",
        "!", "v4l2sink", f"device={device}",
    ]


def troubleshooting_hints(ip: str, device: str, config: BridgeConfig) -> List[str]:
    return [
        "Please check the following:",
        f" - The IP address ({ip}) is correct and accessible.",
        " - The username and password are correct.",
        f" - The camera supports the specified resolution ({config.resolution}).",
        f" - The {config.module_name} module is loaded and the video device ({device}) exists.",
        " - Global proxy settings",
    ]


class GstPipeline:
    """
    A gst-launch-1.0 process streaming one camera into one device.

    run() blocks until the pipeline exits or the user interrupts it.
    """

    def __init__(self, ip: str, device: str, config: Optional[BridgeConfig] = None):
        self.ip = ip
        self.device = device
        self.config = config or BridgeConfig()
        self.url = build_rtsp_url(ip, self.config)
        self._process: Optional[subprocess.Popen] = None

    @property
    def command(self) -> List[str]:
        cmd = [GST_LAUNCH] + build_pipeline(self.url, self.device, self.config.latency)
        if self.config.debug:
            cmd.append("--verbose")
        return cmd

    def environment(self, base: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        env = dict(os.environ if base is None else base)
        if self.config.debug:
            env["GST_DEBUG"] = "3"
        return env

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.poll() is None

    def describe(self) -> str:
        """Printable command line with the password masked"""
        masked = self.command
        if self.config.camera_pass:
            secret = quote(self.config.camera_pass, safe="")
            masked = [part.replace(f":{secret}@", ":****@") for part in masked]
        prefix = "GST_DEBUG=3 " if self.config.debug else ""
        return prefix + " ".join(masked)

    def run(self) -> int:
        """
        Start the pipeline and wait for it.

        Returns:
            0 when the pipeline ended normally

        Raises:
            PipelineError: gst-launch could not be started or exited with
                a non-zero status
            KeyboardInterrupt: re-raised once the child has been stopped
        """
        logger.debug("Starting pipeline: %s", self.describe())
        # Only errors reach the terminal unless debugging
        stdout = None if self.config.debug else subprocess.DEVNULL
        try:
            self._process = subprocess.Popen(
                self.command,
                stdout=stdout,
                env=self.environment(),
            )
        except OSError as e:
            raise PipelineError(
                f"Error: Could not start {GST_LAUNCH}: {e}",
                None,
                ["Check that GStreamer is installed correctly and on PATH."],
            ) from e
        try:
            returncode = self._process.wait()
        except KeyboardInterrupt:
            logger.debug("Interrupted, stopping pipeline")
            self.stop()
            raise
        self._process = None

        if returncode != 0:
            raise PipelineError(
                f"Error: Failed to start video stream from IP camera at {self.ip}.",
                returncode,
                troubleshooting_hints(self.ip, self.device, self.config),
            )
        return 0

    def stop(self):
        """Terminate the pipeline process"""
        if self._process:
            try:
                self._process.terminate()
                self._process.wait(timeout=3)
            except subprocess.TimeoutExpired:
                self._process.kill()
                self._process.wait()
            finally:
                self._process = None
