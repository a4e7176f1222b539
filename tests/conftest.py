"""Pytest configuration and shared fixtures."""

import sys
from pathlib import Path

# Add project root to Python path so 'testbench' is importable without install
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import tempfile
from typing import Generator
import pytest

from testbench.config import reset_config


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_db(temp_dir: Path) -> Path:
    """Create a path for a temporary database."""
    return temp_dir / "test.db"


@pytest.fixture
def isolated_config(temp_dir: Path, monkeypatch):
    """Point configuration at a temporary data dir with no API key."""
    monkeypatch.setenv("TESTBENCH_DATA_DIR", str(temp_dir / "data"))
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("TESTBENCH_TIMEOUT", raising=False)
    monkeypatch.delenv("TESTBENCH_RESTRICTED", raising=False)
    reset_config()
    yield temp_dir
    reset_config()


@pytest.fixture
def sample_source_code() -> str:
    """Source code with one function."""
    return '''
def add(a, b):
    return a + b
'''


@pytest.fixture
def sample_test_code() -> str:
    """Tests for sample_source_code: one passing, one failing."""
    return '''
describe("add", lambda: (
    it("adds numbers", lambda: expect(add(1, 2)).to_be(3)),
    it("is wrong on purpose", lambda: expect(add(1, 1)).to_be(3)),
))
'''
