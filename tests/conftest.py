import os
import signal
import multiprocessing

import pytest
import yaml

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))


def pid_alive(pid):
    """True if pid names a running (non-zombie) process."""
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    status_path = f"/proc/{pid}/status"
    if os.path.exists(status_path):
        with open(status_path) as f:
            for line in f:
                if line.startswith("State:"):
                    return "Z" not in line.split(":", 1)[1]
    return True


@pytest.fixture(autouse=True)
def restore_sigint():
    """Make sure no test leaves its interrupt handler behind."""
    before = signal.getsignal(signal.SIGINT)
    yield
    signal.signal(signal.SIGINT, before)


@pytest.fixture
def no_leaked_children():
    yield
    assert multiprocessing.active_children() == []


@pytest.fixture
def write_config(tmp_path):
    """Writes a YAML settings file and returns its path."""
    def _write(data, name="settings.yaml"):
        p = tmp_path / name
        with open(p, "w") as f:
            if isinstance(data, str):
                f.write(data)
            else:
                yaml.dump(data, f)
        return p
    return _write
