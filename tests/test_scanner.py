"""Integration tests for the usage scanner over the fixture project."""
from pathlib import Path

import pytest

import php_reflector.analyzer.scanner as scanner_module
from php_reflector.analyzer.detectors import UsageRecord, UsageType
from php_reflector.analyzer.scanner import (
    ScanOptions,
    ScanStatistics,
    UsageScanner,
    group_by_type,
    paginate,
    sort_usages,
)
from php_reflector.errors import InvalidParameterError, MalformedInputError, NotFoundError

from conftest import USER

UNLIMITED = ScanOptions(limit=0)


@pytest.fixture
def tokenize_calls(monkeypatch):
    """Count how many files get tokenized."""
    calls = []
    real_tokenize = scanner_module.tokenize

    def counting_tokenize(source):
        calls.append(source)
        return real_tokenize(source)

    monkeypatch.setattr(scanner_module, 'tokenize', counting_tokenize)
    return calls


def test_full_scan_totals(scanner):
    result = scanner.find_usages(USER, 'app', UNLIMITED)

    assert result.total_usages == 21
    assert result.scan_stats.files_scanned == 9
    assert result.scan_stats.files_matched == 5
    assert result.statistics.by_type == {'import': 3, 'new': 2, 'static_call': 3, 'type_hint': 13}
    assert result.statistics.by_file == {
        'app/Contracts/HasOwner.php': 2,
        'app/Http/Controllers/UserController.php': 9,
        'app/Models/Post.php': 6,
        'app/Models/User.php': 2,
        'app/Services/BillingService.php': 2,
    }
    assert result.statistics.most_used_in == 'app/Http/Controllers/UserController.php'


def test_alias_and_group_import_usages(scanner):
    result = scanner.find_usages(USER, 'app/Http', UNLIMITED)
    records = [(r.usage_type.value, r.line, r.code, r.method) for r in sort_usages(result.usages, 'line')]

    assert records == [
        ('import', 5, 'use App\\Models\\{Post, User as Member};', None),
        ('type_hint', 9, ': Member', None),
        ('static_call', 11, 'Member::findOrFail', 'findOrFail'),
        ('type_hint', 14, 'Member $member', None),
        ('new', 16, 'new Member', None),
        ('static_call', 17, 'Member::class', None),
        ('type_hint', 18, ': Member', None),
        ('type_hint', 21, 'Member $m', None),
        ('type_hint', 21, ': ?Member', None),
    ]


def test_sort_by_line_is_non_decreasing_and_stable(scanner):
    result = scanner.find_usages(USER, 'app', UNLIMITED)
    lines = [record.line for record in result.usages]
    assert lines == sorted(lines)

    # Ties keep discovery order: files are enumerated in sorted path order
    line_five = [record.file for record in result.usages if record.line == 5]
    assert line_five == sorted(line_five)


def test_sort_by_file(scanner):
    result = scanner.find_usages(USER, 'app', ScanOptions(limit=0, sort_by='file'))
    files = [record.file for record in result.usages]
    assert files == sorted(files)

    post = [(r.usage_type.value, r.line) for r in result.usages if r.file == 'app/Models/Post.php']
    assert post == [
        ('new', 23),
        ('static_call', 13),
        ('type_hint', 9),
        ('type_hint', 16),
        ('type_hint', 21),
        ('type_hint', 11),
    ]


def test_sort_by_type(scanner):
    result = scanner.find_usages(USER, 'app', ScanOptions(limit=0, sort_by='type'))
    types = [record.usage_type.value for record in result.usages]
    assert types == sorted(types)


@pytest.mark.parametrize('offset,limit', [(0, 5), (3, 4), (20, 10), (25, 5), (4, 0)])
def test_pagination_is_a_slice_of_the_full_list(scanner, offset, limit):
    full = scanner.find_usages(USER, 'app', UNLIMITED)
    page = scanner.find_usages(USER, 'app', ScanOptions(offset=offset, limit=limit))

    expected = full.usages[offset:offset + limit] if limit else full.usages[offset:]
    assert page.usages == expected
    assert page.total_usages == full.total_usages
    assert page.statistics == full.statistics


def test_default_limit_is_100(scanner):
    assert ScanOptions().limit == 100
    result = scanner.find_usages(USER, 'app')
    assert len(result.usages) == 21


def test_group_by_type_partitions_the_page(scanner):
    result = scanner.find_usages(USER, 'app', ScanOptions(limit=10, group_by_type=True))
    grouped = result.usages_by_type

    assert sum(len(records) for records in grouped.values()) == 10
    for usage_type, records in grouped.items():
        assert all(record.usage_type.value == usage_type for record in records)

    data = result.to_dict()
    assert 'usages_by_type' in data
    assert 'usages' not in data


def test_usage_type_filter(scanner):
    result = scanner.find_usages(USER, 'app', ScanOptions(limit=0, usage_types=['new', 'static_call']))
    assert result.statistics.by_type == {'new': 2, 'static_call': 3}
    assert result.total_usages == 5


def test_scan_is_idempotent(scanner):
    first = scanner.find_usages(USER, 'app', UNLIMITED).to_dict()
    second = scanner.find_usages(USER, 'app', UNLIMITED).to_dict()
    first['scan_stats'].pop('scan_time_ms')
    second['scan_stats'].pop('scan_time_ms')
    assert first == second


def test_zero_usages_is_not_an_error(scanner):
    result = scanner.find_usages('App\\Models\\Nobody', 'app', UNLIMITED)
    assert result.total_usages == 0
    assert result.usages == []
    assert result.statistics.most_used_in is None


def test_response_shape(scanner):
    data = scanner.find_usages(USER, 'app').to_dict()
    assert list(data) == ['target', 'type', 'total_usages', 'scan_stats', 'statistics', 'usages']
    assert data['type'] == 'class'
    assert set(data['scan_stats']) == {'files_scanned', 'files_matched', 'scan_time_ms'}
    assert set(data['statistics']) == {'by_type', 'by_file', 'most_used_in'}


def test_vendor_excluded_by_default(scanner):
    result = scanner.find_usages(USER, '.', UNLIMITED)
    assert not any(record.file.startswith('vendor/') for record in result.usages)


def test_vendor_included_on_request(scanner):
    result = scanner.find_usages(USER, '.', ScanOptions(limit=0, exclude_vendor=False))
    vendor = [(r.file, r.usage_type.value, r.line) for r in result.usages if r.file.startswith('vendor/')]
    assert sorted(vendor) == [
        ('vendor/acme/audit/src/Auditor.php', 'import', 5),
        ('vendor/acme/audit/src/Auditor.php', 'type_hint', 9),
    ]
    assert result.total_usages == 23


def test_vendor_results_come_from_cache(scanner, tokenize_calls):
    options = ScanOptions(limit=0, exclude_vendor=False)

    first = scanner.find_usages(USER, '.', options)
    cold_calls = len(tokenize_calls)
    # Five project files and one vendor file mention User
    assert cold_calls == 6

    second = scanner.find_usages(USER, '.', options)
    assert len(tokenize_calls) - cold_calls == 5
    assert second.usages == first.usages


def test_flush_cache_recomputes_vendor_files(scanner, tokenize_calls):
    options = ScanOptions(limit=0, exclude_vendor=False)
    scanner.find_usages(USER, '.', options)
    assert scanner.cache.tracked_keys()

    before = len(tokenize_calls)
    scanner.find_usages(USER, '.', ScanOptions(limit=0, exclude_vendor=False, flush_cache=True))
    assert len(tokenize_calls) - before == 6


def test_project_files_are_never_cached(scanner, project):
    scanner.find_usages(USER, 'app', UNLIMITED)
    assert scanner.cache.tracked_keys() == []

    # Edits to project files show up immediately
    team = project / 'app' / 'Models' / 'Team.php'
    team.write_text(team.read_text().replace('class Team', 'class Team extends User'))
    result = scanner.find_usages(USER, 'app', UNLIMITED)
    assert result.statistics.by_type.get('extends') == 1


def test_stray_bytes_do_not_hide_usages(scanner, project):
    (project / 'app' / 'Models' / 'Legacy.php').write_bytes(
        b"<?php\n"
        b"namespace App\\Models;\n"
        b"\n"
        b"// Cr\xe9\xe9 par l'\xe9quipe\n"
        b"function make() { return new User(); }\n"
    )
    result = scanner.find_usages(USER, 'app', UNLIMITED)
    legacy = [(r.usage_type.value, r.line, r.code) for r in result.usages if r.file == 'app/Models/Legacy.php']
    assert legacy == [('new', 5, 'new User')]
    assert result.total_usages == 22
    assert result.scan_stats.files_scanned == 10


def test_all_files_unreadable_raises(tmp_path, cache, monkeypatch):
    (tmp_path / 'src').mkdir()
    (tmp_path / 'src' / 'A.php').write_text("<?php new User();")

    def deny(self):
        raise PermissionError(13, 'Permission denied', str(self))

    monkeypatch.setattr(Path, 'read_bytes', deny)
    with pytest.raises(MalformedInputError):
        UsageScanner(tmp_path, cache=cache).find_usages(USER, 'src')


def test_missing_directory(scanner):
    with pytest.raises(NotFoundError, match='Directory not found'):
        scanner.find_usages(USER, 'does/not/exist')


@pytest.mark.parametrize('target,options,message', [
    ('', ScanOptions(), 'Target class is required'),
    ('   ', ScanOptions(), 'Target class is required'),
    (USER, ScanOptions(sort_by='size'), 'Invalid sort_by'),
    (USER, ScanOptions(limit=-1), 'limit'),
    (USER, ScanOptions(offset=-1), 'offset'),
    (USER, ScanOptions(usage_types=['nope']), 'Unknown usage type'),
])
def test_invalid_parameters(scanner, target, options, message):
    with pytest.raises(InvalidParameterError, match=message):
        scanner.find_usages(target, 'does/not/exist', options)


def test_statistics_first_file_wins_ties():
    records = [
        UsageRecord(1, UsageType.NEW, 'new User', file='b.php'),
        UsageRecord(2, UsageType.NEW, 'new User', file='a.php'),
    ]
    statistics = ScanStatistics.from_records(records)
    assert statistics.most_used_in == 'b.php'
    assert statistics.by_file == {'b.php': 1, 'a.php': 1}


def test_helpers():
    records = [
        UsageRecord(3, UsageType.NEW, 'new User', file='a.php'),
        UsageRecord(1, UsageType.IMPORT, 'use User;', file='b.php'),
        UsageRecord(1, UsageType.NEW, 'new User', file='c.php'),
    ]
    by_line = sort_usages(records, 'line')
    assert [r.file for r in by_line] == ['b.php', 'c.php', 'a.php']
    assert paginate(by_line, 1, 1) == [by_line[1]]
    assert paginate(by_line, 1, 0) == by_line[1:]
    assert list(group_by_type(by_line)) == ['import', 'new']
