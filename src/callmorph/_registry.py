from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from typing import TYPE_CHECKING, final

if TYPE_CHECKING:
    from callmorph._errors import UnmatchedSetupError
    from callmorph._expectation import Expectation
    from callmorph._invocation import Invocation
    from callmorph._setup import Setup

logger = logging.getLogger(__name__)


@final
class SetupRegistry:
    """Setups of one mock in the order they were added.

    Lookups scan from the newest setup backwards, so a later setup overrides
    an earlier one for the calls both of them match.
    """

    def __init__(self) -> None:
        self._setups: list[Setup] = []
        self._lock = threading.Lock()

    def add(self, setup: Setup) -> None:
        with self._lock:
            self._setups.append(setup)
        logger.debug("registered setup %s", setup)

    def find(self, invocation: Invocation) -> Setup | None:
        for setup in reversed(self._snapshot()):
            if setup.matches(invocation):
                logger.debug("%s matched setup %s", invocation, setup)
                return setup
        logger.debug("%s matched no setup", invocation)
        return None

    def find_by_expectation(self, expectation: Expectation) -> Setup | None:
        """Find the inner mock setup recorded for exactly this call shape."""
        for setup in reversed(self._snapshot()):
            if setup.returns_inner_mock and setup.expectation == expectation:
                return setup
        return None

    def clear(self) -> None:
        with self._lock:
            self._setups.clear()
        logger.debug("cleared all setups")

    def uninvoke_all(self) -> None:
        for setup in self._snapshot():
            setup.uninvoke()

    def try_verify(self, *, verifiable_only: bool = True) -> list[UnmatchedSetupError]:
        errors: list[UnmatchedSetupError] = []
        for setup in self._snapshot():
            if setup.returns_inner_mock:
                continue
            error = setup.try_verify_all(verifiable_only=verifiable_only)
            if error is not None:
                errors.append(error)
        return errors

    def _snapshot(self) -> list[Setup]:
        with self._lock:
            return list(self._setups)

    def __iter__(self) -> Iterator[Setup]:
        return iter(self._snapshot())

    def __len__(self) -> int:
        return len(self._setups)
