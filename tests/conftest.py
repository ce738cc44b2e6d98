"""Shared fixtures: a throwaway copy of the PHP fixture project per test."""
import shutil
import sys
from pathlib import Path

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from php_reflector.analyzer.cache import UsageCache  # noqa: E402
from php_reflector.analyzer.class_index import ClassIndex  # noqa: E402
from php_reflector.analyzer.scanner import UsageScanner  # noqa: E402
from php_reflector.config import reset_config  # noqa: E402

FIXTURES_DIR = Path(__file__).parent / 'fixtures' / 'laravel_app'

USER = 'App\\Models\\User'


@pytest.fixture
def project(tmp_path):
    """Copy of the Laravel-style fixture project (tests may modify it)."""
    root = tmp_path / 'laravel_app'
    shutil.copytree(FIXTURES_DIR, root)
    return root


@pytest.fixture
def cache():
    with UsageCache(':memory:') as usage_cache:
        yield usage_cache


@pytest.fixture
def scanner(project, cache):
    return UsageScanner(project, cache=cache)


@pytest.fixture
def index(project):
    return ClassIndex(project)


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep REFLECTOR_* settings of the developer machine out of the tests."""
    for name in ('REFLECTOR_PROJECT_ROOT', 'REFLECTOR_VENDOR_DIR', 'REFLECTOR_CACHE_PATH',
                 'REFLECTOR_CACHE_TTL', 'REFLECTOR_SCAN_PATH', 'REFLECTOR_LOG_LEVEL'):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    reset_config()
    yield
    reset_config()
