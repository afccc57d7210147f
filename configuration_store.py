"""
Persisted user settings, shared by every component.

Readers get independent snapshots; writers work on a deep copy that is
validated and written to disk before it replaces the live instance.
"""

import copy
import json
import logging
import os
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from models import WallArtConfig

logger = logging.getLogger(__name__)


class ConfigurationError(RuntimeError):
    """Raised when the settings file cannot be written"""


class ReadWriteLock:
    """Many concurrent readers, one exclusive writer. Waiting writers block new readers."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._waiting_writers:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._waiting_writers += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._waiting_writers -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class ConfigurationStore:
    def __init__(self, config_path: str):
        self.config_path = os.path.abspath(os.path.expanduser(str(config_path)))
        self._lock = ReadWriteLock()
        self.load_warning: Optional[str] = None
        self._current = self._load()

    def _load(self) -> WallArtConfig:
        if not os.path.exists(self.config_path):
            return WallArtConfig()

        try:
            with open(self.config_path, "r", encoding="utf-8") as handle:
                raw = handle.read()
        except (OSError, UnicodeDecodeError) as error:
            self.load_warning = (
                f"Config could not be read ({type(error).__name__}: {error}). Defaults applied."
            )
            logger.warning(self.load_warning)
            return WallArtConfig()

        if not raw.strip():
            self.load_warning = "Config file was empty; defaults applied."
            logger.warning(self.load_warning)
            return WallArtConfig()

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as error:
            self.load_warning = f"Config could not be parsed (JSONDecodeError: {error}). Defaults applied."
            logger.warning(self.load_warning)
            return WallArtConfig()

        if data is None:
            self.load_warning = "Config file contained null; defaults applied."
            logger.warning(self.load_warning)
            return WallArtConfig()
        if not isinstance(data, dict):
            self.load_warning = (
                f"Config root must be a JSON object, found {type(data).__name__}. Defaults applied."
            )
            logger.warning(self.load_warning)
            return WallArtConfig()

        return WallArtConfig.from_dict(data).validate()

    def _save(self, config: WallArtConfig) -> None:
        directory = os.path.dirname(self.config_path)
        tmp_path = f"{self.config_path}.tmp"
        try:
            os.makedirs(directory, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as handle:
                json.dump(config.to_dict(), handle, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.config_path)
        except OSError as error:
            try:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
            except OSError:
                logger.debug("Could not remove temporary settings file %s", tmp_path)
            raise ConfigurationError(f"Failed to save settings to {self.config_path}: {error}") from error

    @property
    def current(self) -> WallArtConfig:
        """Independent snapshot; mutating it has no effect on the store"""
        with self._lock.read():
            return copy.deepcopy(self._current)

    def update(self, mutator: Callable[[WallArtConfig], None]) -> WallArtConfig:
        with self._lock.write():
            candidate = copy.deepcopy(self._current)
            mutator(candidate)
            candidate.validate()
            self._save(candidate)
            self._current = candidate
            return copy.deepcopy(candidate)
