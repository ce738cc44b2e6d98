"""Tests for the Composer PSR-4 autoload map."""
import json

from php_reflector.analyzer.autoload import ComposerAutoload


def test_project_and_package_roots(project):
    autoload = ComposerAutoload(project)

    assert autoload.candidates('App\\Models\\User') == [project / 'app' / 'Models' / 'User.php']
    assert autoload.candidates('\\Illuminate\\Database\\Eloquent\\Model') == [
        (project / 'vendor' / 'laravel' / 'framework' / 'src' / 'Model.php').resolve(),
    ]
    # Mapped prefix, but no such file
    assert autoload.candidates('App\\Models\\Nope') == []
    assert autoload.candidates('Unmapped\\Thing') == []


def test_longest_prefix_first(tmp_path):
    (tmp_path / 'composer.json').write_text(json.dumps({
        'autoload': {'psr-4': {'App\\': 'app/', 'App\\Models\\': 'models/'}},
    }))
    (tmp_path / 'app' / 'Models').mkdir(parents=True)
    (tmp_path / 'app' / 'Models' / 'User.php').write_text('<?php')
    (tmp_path / 'models').mkdir()
    (tmp_path / 'models' / 'User.php').write_text('<?php')

    assert ComposerAutoload(tmp_path).candidates('App\\Models\\User') == [
        tmp_path / 'models' / 'User.php',
        tmp_path / 'app' / 'Models' / 'User.php',
    ]


def test_autoload_dev_and_directory_lists(tmp_path):
    (tmp_path / 'composer.json').write_text(json.dumps({
        'autoload-dev': {'psr-4': {'Tests\\': ['tests/unit/', 'tests/feature/']}},
    }))
    (tmp_path / 'tests' / 'feature').mkdir(parents=True)
    (tmp_path / 'tests' / 'feature' / 'LoginTest.php').write_text('<?php')

    assert ComposerAutoload(tmp_path).candidates('Tests\\LoginTest') == [
        tmp_path / 'tests' / 'feature' / 'LoginTest.php',
    ]


def test_composer_1_installed_list(tmp_path):
    composer_dir = tmp_path / 'lib' / 'composer'
    composer_dir.mkdir(parents=True)
    (composer_dir / 'installed.json').write_text(json.dumps([
        {'name': 'acme/audit', 'autoload': {'psr-4': {'Acme\\Audit\\': 'src'}}},
    ]))
    (tmp_path / 'lib' / 'acme' / 'audit' / 'src').mkdir(parents=True)
    (tmp_path / 'lib' / 'acme' / 'audit' / 'src' / 'Auditor.php').write_text('<?php')

    assert ComposerAutoload(tmp_path, vendor_dir='lib').candidates('Acme\\Audit\\Auditor') == [
        tmp_path / 'lib' / 'acme' / 'audit' / 'src' / 'Auditor.php',
    ]


def test_broken_composer_json_is_ignored(tmp_path):
    (tmp_path / 'composer.json').write_text('{"autoload": ')

    autoload = ComposerAutoload(tmp_path)
    assert autoload.roots() == []


def test_no_composer_files(tmp_path):
    assert ComposerAutoload(tmp_path).candidates('App\\Models\\User') == []
