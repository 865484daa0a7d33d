#!/usr/bin/env python3
"""
Frame snapshots from a virtual device

Reads a single frame from a /dev/videoN node through OpenCV's V4L2
backend. Useful to confirm a running bridge actually delivers pictures
to webcam consumers.
"""

import logging

import cv2
import numpy as np

from .errors import DeviceNotFoundError, VidipError

logger = logging.getLogger("vidip.snapshot")

# Frames to discard while the device settles on a format
WARMUP_FRAMES = 5


def grab_frame(device: str, warmup: int = WARMUP_FRAMES) -> np.ndarray:
    """
    Read one BGR frame from a video device.

    Args:
        device: Device path, e.g. "/dev/video2"
        warmup: Frames read and dropped before the one returned

    Raises:
        DeviceNotFoundError: the device cannot be opened or yields no frame
    """
    cap = cv2.VideoCapture(device, cv2.CAP_V4L2)
    try:
        if not cap.isOpened():
            raise DeviceNotFoundError(f"Could not open video device {device}.")

        frame = None
        for _ in range(warmup + 1):
            ret, candidate = cap.read()
            if ret:
                frame = candidate
        if frame is None:
            raise DeviceNotFoundError(
                f"No frames received from {device}.",
                ["Is a stream running into this device? Start one with: vidip <IP_ADDRESS>"],
            )
        logger.debug("Grabbed %dx%d frame from %s", frame.shape[1], frame.shape[0], device)
        return frame
    finally:
        cap.release()


def is_blank(frame: np.ndarray) -> bool:
    """True if every pixel is black (v4l2loopback idles on black frames)"""
    return not np.any(frame)


def save_snapshot(device: str, filepath: str) -> bool:
    """
    Grab a frame from device and write it to filepath.

    Returns:
        True if the frame had picture content, False if it was blank
    """
    frame = grab_frame(device)
    try:
        written = cv2.imwrite(filepath, frame)
    except cv2.error as e:
        raise VidipError(f"Failed to write snapshot to {filepath}: {e}") from e
    if not written:
        raise VidipError(f"Failed to write snapshot to {filepath}")
    return not is_blank(frame)
