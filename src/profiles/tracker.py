"""
Latest-request-wins build tracking for one consumer.

A consumer (one dashboard session, one CLI run) that switches country or
year while a build is in flight must never see the older result replace
the newer one. Every request takes a new generation number; a finished
build publishes its record only if no newer request has started since.
"""

import logging
import threading
from typing import Optional

from .errors import ProfileError, StaleBuildError
from .models import CountryProfileRecord

logger = logging.getLogger(__name__)


class BuildTracker:
    def __init__(self, assembler):
        self.assembler = assembler
        self._lock = threading.Lock()
        self._generation = 0
        self._current: Optional[CountryProfileRecord] = None
        self._latest_error: Optional[ProfileError] = None

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    @property
    def current(self) -> Optional[CountryProfileRecord]:
        with self._lock:
            return self._current

    @property
    def latest_error(self) -> Optional[ProfileError]:
        with self._lock:
            return self._latest_error

    def _start(self) -> int:
        with self._lock:
            self._generation += 1
            return self._generation

    def request(self, scope: str, reporting_year: int, **kwargs) -> CountryProfileRecord:
        """
        Build a profile and publish it unless a newer request has started.

        Raises:
            ProfileBuildError: The build failed and is still the latest request
            StaleBuildError: A newer request started while this one ran
        """
        generation = self._start()
        try:
            record = self.assembler.assemble(scope, reporting_year, **kwargs)
        except ProfileError as e:
            with self._lock:
                if generation != self._generation:
                    logger.info(f"Discarding failure of superseded build {generation} for {scope} ({reporting_year})")
                    raise StaleBuildError(
                        f"Build {generation} for {scope} ({reporting_year}) was superseded"
                    ) from e
                self._latest_error = e
                # An error for the latest request replaces whatever was shown before
                self._current = None
            raise

        with self._lock:
            if generation != self._generation:
                logger.warning(
                    f"Discarding stale profile for {scope} ({reporting_year}); "
                    f"build {generation} superseded by {self._generation}"
                )
                raise StaleBuildError(f"Build {generation} for {scope} ({reporting_year}) was superseded")
            self._current = record
            self._latest_error = None
        return record
