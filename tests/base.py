"""Unittest base class for creating a clean test environment."""
import json
import logging
import os
import shutil
import tempfile
import unittest
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from unittest.mock import patch

import httplib2
from PySide6 import QtCore

from SelfTracker.core import storage
from SelfTracker.core.signals import signals
from SelfTracker.settings import lib


@contextmanager
def mute_signals():
    blocker = QtCore.QSignalBlocker(signals)  # blocks every signal in `signals`
    try:
        yield
    finally:
        del blocker


def http_response(payload: Any, status: int = 200) -> Tuple[httplib2.Response, bytes]:
    """Build the ``(response, content)`` pair returned by ``httplib2.Http.request``."""
    content = payload if isinstance(payload, bytes) else json.dumps(payload).encode('utf-8')
    return httplib2.Response({'status': status}), content


class SignalRecorder:
    """Collects the arguments of every emission of a signal."""

    def __init__(self, signal: QtCore.SignalInstance) -> None:
        self.signal = signal
        self.calls: List[Tuple[Any, ...]] = []
        signal.connect(self._record)

    def _record(self, *args: Any) -> None:
        self.calls.append(args)

    def disconnect(self) -> None:
        self.signal.disconnect(self._record)


class BaseTestCase(unittest.TestCase):
    """Base test case that isolates the settings and the local store in a temporary directory."""

    temp_dir: str
    previous_config_dir: Optional[str]

    def setUp(self) -> None:
        """Point the application data directory to a fresh temp dir and reinitialize the settings."""
        if not QtCore.QCoreApplication.instance():
            QtCore.QCoreApplication([])  # type: ignore
            logging.debug('QtCore.QCoreApplication initialized for tests.')

        self.temp_dir = tempfile.mkdtemp(prefix='selftracker_test_')
        self.previous_config_dir = os.environ.get(lib.CONFIG_DIR_ENV_KEY)
        os.environ[lib.CONFIG_DIR_ENV_KEY] = self.temp_dir

        lib.settings = lib.SettingsAPI()
        logging.debug(f'SettingsAPI reinitialized in {self.temp_dir}.')

        self.storage = storage.StorageManager(path=Path(self.temp_dir) / 'store.db', prefix='selftracker_')

    def tearDown(self) -> None:
        patch.stopall()

        if self.previous_config_dir is None:
            os.environ.pop(lib.CONFIG_DIR_ENV_KEY, None)
        else:
            os.environ[lib.CONFIG_DIR_ENV_KEY] = self.previous_config_dir

        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def record(self, signal: QtCore.SignalInstance) -> SignalRecorder:
        """Record emissions of ``signal`` until the test ends."""
        recorder = SignalRecorder(signal)
        self.addCleanup(recorder.disconnect)
        return recorder

    def set_remote(self, url: str = 'https://example.com/exec', **kwargs: Any) -> Dict[str, Any]:
        """Write a ``remote`` section pointing at ``url``."""
        config = lib.settings.get_section('remote')
        config['url'] = url
        config.update(kwargs)
        with mute_signals():
            lib.settings.set_section('remote', config)
        return config
