"""Tests for environment-driven configuration."""
import os

import pytest

from php_reflector.config import DEFAULT_CACHE_TTL, Config, get_config, reset_config


def test_defaults(tmp_path):
    config = Config()
    assert config.project_root == tmp_path.resolve()
    assert config.vendor_dir == 'vendor'
    assert config.cache_path == tmp_path.resolve() / '.reflector_cache' / 'usages.db'
    assert config.cache_ttl == DEFAULT_CACHE_TTL == 86400
    assert config.default_scan_path == 'app'
    assert config.log_level == 'WARNING'


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv('REFLECTOR_PROJECT_ROOT', str(tmp_path / 'site'))
    monkeypatch.setenv('REFLECTOR_CACHE_PATH', 'var/cache.db')
    monkeypatch.setenv('REFLECTOR_CACHE_TTL', '60')
    monkeypatch.setenv('REFLECTOR_LOG_LEVEL', 'debug')

    config = Config()
    assert config.project_root == (tmp_path / 'site').resolve()
    assert config.cache_path == (tmp_path / 'site').resolve() / 'var' / 'cache.db'
    assert config.cache_path_for(tmp_path / 'other') == tmp_path / 'other' / 'var' / 'cache.db'
    assert config.cache_ttl == 60
    assert config.log_level == 'DEBUG'


def test_absolute_cache_path(monkeypatch, tmp_path):
    monkeypatch.setenv('REFLECTOR_CACHE_PATH', str(tmp_path / 'shared.db'))
    assert Config().cache_path_for(tmp_path / 'any') == tmp_path / 'shared.db'


def test_invalid_ttl(monkeypatch):
    monkeypatch.setenv('REFLECTOR_CACHE_TTL', 'soon')
    with pytest.raises(ValueError, match='REFLECTOR_CACHE_TTL'):
        Config().cache_ttl


def test_dotenv_file_is_loaded(monkeypatch, tmp_path):
    (tmp_path / '.env').write_text('REFLECTOR_VENDOR_DIR=third_party\n')
    monkeypatch.delenv('REFLECTOR_VENDOR_DIR', raising=False)
    try:
        assert Config().vendor_dir == 'third_party'
    finally:
        os.environ.pop('REFLECTOR_VENDOR_DIR', None)


def test_get_config_is_a_singleton():
    assert get_config() is get_config()
    first = get_config()
    reset_config()
    assert get_config() is not first
