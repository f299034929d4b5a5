"""
errors.py

Exception taxonomy for voice_map_tools.

The analysis core never raises on degenerate audio; it degrades to neutral
values instead. Errors are raised only at the edges, by the configuration
loader and by the audio loader, before any data reaches the core.
"""


class VoiceMapError(Exception):
    """Base class for all voice_map_tools errors."""


class ConfigError(VoiceMapError, ValueError):
    """A required configuration section is missing or malformed."""


class InputError(VoiceMapError, ValueError):
    """An audio source is missing, unreadable or empty."""


__all__ = [
    "VoiceMapError",
    "ConfigError",
    "InputError",
]
