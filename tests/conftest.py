"""Pytest bootstrap configuration.

Point the application at a throwaway SQLite file and force simulation mode
before any module reads settings.
"""
import os
import tempfile

_TMP_DIR = tempfile.mkdtemp(prefix="kiosk-tests-")

os.environ["DATABASE__URL"] = f"sqlite+aiosqlite:///{_TMP_DIR}/kiosk-test.sqlite"
for _name in ("MP_ACCESS_TOKEN", "MP_DEVICE_ID", "POINT__ACCESS_TOKEN", "POINT__DEVICE_ID", "POINT__WEBHOOK__SECRET", "POINT__SIMULATION"):
    os.environ.pop(_name, None)
