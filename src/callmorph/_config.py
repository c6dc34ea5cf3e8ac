from __future__ import annotations

from enum import Enum, Flag, auto


class Behavior(Enum):
    """How a mock answers calls nothing was configured for."""

    STRICT = "strict"
    LOOSE = "loose"
    DEFAULT = LOOSE


class DefaultValue(Enum):
    """What a loose mock returns from unconfigured non-void methods."""

    EMPTY = "empty"
    MOCK = "mock"


class Switches(Flag):
    NONE = 0
    COLLECT_DIAGNOSTIC_FILE_INFO_FOR_SETUPS = auto()
