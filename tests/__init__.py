"""Test suite for SelfTracker.

The application data directory is redirected to a temporary directory before any
SelfTracker module is imported, so the settings singleton never touches the real
user configuration.
"""
import os
import tempfile

os.environ.setdefault('SELFTRACKER_CONFIG_DIR', tempfile.mkdtemp(prefix='selftracker_tests_'))
os.environ.setdefault('QT_QPA_PLATFORM', 'offscreen')
