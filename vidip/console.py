#!/usr/bin/env python3
"""Coloured terminal output"""

import sys

GREEN = "\033[32m"
YELLOW = "\033[33m"
RED = "\033[31m"
BLUE = "\033[34m"
BOLD = "\033[1m"
RESET = "\033[0m"


def _use_color(stream) -> bool:
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())


def _emit(text: str, *styles: str, stream=None):
    stream = stream or sys.stdout
    if styles and _use_color(stream):
        text = "".join(styles) + text + RESET
    print(text, file=stream)


def plain(text: str):
    _emit(text)


def info(text: str):
    _emit(text, BLUE)


def notice(text: str):
    _emit(text, BOLD)


def warn(text: str):
    _emit(text, YELLOW)


def success(text: str):
    _emit(f"✓ {text}", BOLD, GREEN)


def error(text: str):
    _emit(f"✗ {text}", RED, stream=sys.stderr)


def detail(text: str):
    """Follow-up line for an error, printed uncoloured next to it"""
    _emit(text, stream=sys.stderr)
