"""
Host integration: the console-sending build wrapper and the extension registry.
"""

from .console_sender import DISPLAY_NAME, EXTENSION_NAME, ConsoleLogSender
from .registry import ExtensionRegistry

__all__ = [
    "DISPLAY_NAME",
    "EXTENSION_NAME",
    "ConsoleLogSender",
    "ExtensionRegistry",
]
