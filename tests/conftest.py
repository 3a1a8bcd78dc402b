"""
Pytest configuration file.

Sets up the Python path so test files can import from the python/ directory,
and provides a recording stand-in for the Docker engine client.
"""
import sys
from pathlib import Path

import pytest

# Add python directory to path for all tests
_python_dir = Path(__file__).parent.parent / 'python'
_python_dir_abs = str(_python_dir.absolute())
if _python_dir_abs not in sys.path:
    sys.path.insert(0, _python_dir_abs)

from image_migrator.error_utils import create_pull_error, create_push_error, create_tag_error  # noqa: E402


class RecordingEngine:
    """Engine double that records every call and fails on request."""

    def __init__(self, fail_pull=(), fail_tag=(), fail_push=()):
        self.calls = []
        self.tokens = []
        self.fail_pull = set(fail_pull)
        self.fail_tag = set(fail_tag)
        self.fail_push = set(fail_push)

    def pull(self, image, auth_token=None):
        self.calls.append(("pull", image))
        self.tokens.append(("pull", auth_token))
        if not image or image in self.fail_pull:
            raise create_pull_error(image, RuntimeError("manifest unknown"))

    def tag(self, source, destination):
        self.calls.append(("tag", source, destination))
        if not destination or destination in self.fail_tag:
            raise create_tag_error(source, destination, ValueError("invalid reference format"))

    def push(self, image, auth_token=None):
        self.calls.append(("push", image))
        self.tokens.append(("push", auth_token))
        if not image or image in self.fail_push:
            raise create_push_error(image, RuntimeError("denied: requested access to the resource is denied"))

    def ping(self):
        return True

    def close(self):
        pass


@pytest.fixture
def make_engine():
    """Factory for RecordingEngine instances with configurable failures"""
    return RecordingEngine
