import os
import time

import pytest


@pytest.fixture(autouse=True)
def _no_master_log(monkeypatch):
    """Keep CLI tests from writing into ~/.logs."""
    monkeypatch.setenv("ROTGUARD_LOG_DISABLED", "1")


@pytest.fixture
def make_file():
    """Create a file with CONTENT whose mtime is AGE seconds in the past."""
    def _make(path, content, age=0, now=None):
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
        mtime = int((now if now is not None else time.time()) - age)
        os.utime(path, (mtime, mtime))
        return mtime
    return _make
