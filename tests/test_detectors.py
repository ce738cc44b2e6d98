"""Tests for the usage detectors.

Each source is a small PHP file; detectors are run through run_detectors()
exactly as the scanner runs them.
"""
import pytest

from php_reflector.analyzer.detectors import (
    DETECTORS,
    UsageRecord,
    UsageType,
    normalize_class_name,
    parse_usage_types,
    run_detectors,
    select_detectors,
    short_class_name,
)
from php_reflector.analyzer.tokenizer import tokenize
from php_reflector.errors import InvalidParameterError

USER = 'App\\Models\\User'


def detect(source, target=USER, *usage_types):
    selected = [UsageType(usage_type) for usage_type in usage_types]
    return run_detectors(tokenize(source), target, usage_types=selected)


def summary(records):
    return [(record.usage_type.value, record.line, record.code) for record in records]


def test_import():
    records = detect(
        "<?php\n"
        "namespace App\\Http;\n"
        "use App\\Models\\User;\n"
    )
    assert summary(records) == [('import', 3, 'use App\\Models\\User;')]


def test_aliased_group_import():
    records = detect("<?php\nuse App\\Models\\{Post, User as Member};\n")
    assert summary(records) == [('import', 2, 'use App\\Models\\{Post, User as Member};')]


def test_import_of_other_class_is_ignored():
    assert detect("<?php\nuse App\\Models\\UserProfile;\n") == []


def test_function_import_is_not_a_class_import():
    assert detect("<?php\nuse function App\\Models\\User;\n") == []


def test_new_through_alias():
    records = detect(
        "<?php\n"
        "namespace App\\Http;\n"
        "use App\\Models\\User as Member;\n"
        "$m = new Member();\n",
        USER,
        'new',
    )
    assert summary(records) == [('new', 4, 'new Member')]


def test_new_fully_qualified():
    records = detect("<?php\n$u = new \\App\\Models\\User;\n", USER, 'new')
    assert summary(records) == [('new', 2, 'new \\App\\Models\\User')]


def test_dynamic_new_is_skipped():
    assert detect("<?php\nnamespace App\\Models;\n$class = 'User';\n$u = new $class();\n") == []


def test_static_call_with_method():
    records = detect(
        "<?php\n"
        "namespace App\\Models;\n"
        "$u = User::where('active', 1);\n",
    )
    assert len(records) == 1
    record = records[0]
    assert record.usage_type is UsageType.STATIC_CALL
    assert record.line == 3
    assert record.code == 'User::where'
    assert record.method == 'where'


def test_static_call_constant_and_class_fetch():
    records = detect(
        "<?php\n"
        "namespace App\\Models;\n"
        "$a = User::ACTIVE;\n"
        "$b = User::class;\n",
    )
    assert [(r.code, r.method) for r in records] == [('User::ACTIVE', 'ACTIVE'), ('User::class', None)]


def test_static_call_of_other_class_is_ignored():
    assert detect("<?php\nnamespace App\\Models;\n$u = Team::find(1);\n") == []


def test_extends():
    records = detect(
        "<?php\n"
        "namespace App\\Models;\n"
        "class Admin extends User {}\n"
    )
    assert summary(records) == [('extends', 3, 'extends User')]


def test_implements_one_record_per_clause():
    records = detect(
        "<?php\n"
        "namespace App;\n"
        "use App\\Contracts\\HasOwner;\n"
        "class Post implements Arrayable, HasOwner\n"
        "{\n"
        "}\n",
        'App\\Contracts\\HasOwner',
        'implements',
    )
    assert summary(records) == [('implements', 4, 'implements Arrayable, HasOwner')]


def test_interface_target_ignores_other_names_in_the_class():
    records = detect(
        "<?php\n"
        "namespace App\\Models;\n"
        "\n"
        "use App\\Contracts\\HasOwner;\n"
        "\n"
        "class Post extends Model implements HasOwner\n"
        "{\n"
        "    use SoftDeletes;\n"
        "\n"
        "    public function owner(): User {}\n"
        "}\n",
        'App\\Contracts\\HasOwner',
        'import',
        'implements',
    )
    assert summary(records) == [
        ('import', 4, 'use App\\Contracts\\HasOwner;'),
        ('implements', 6, 'implements HasOwner'),
    ]


def test_trait_usage():
    records = detect(
        "<?php\n"
        "namespace App\\Models;\n"
        "use App\\Concerns\\Notifiable;\n"
        "class User\n"
        "{\n"
        "    use HasFactory, Notifiable;\n"
        "}\n",
        'App\\Concerns\\Notifiable',
    )
    assert summary(records) == [
        ('import', 3, 'use App\\Concerns\\Notifiable;'),
        ('trait', 6, 'use HasFactory, Notifiable;'),
    ]


def test_trait_usage_is_never_an_import():
    records = detect(
        "<?php\n"
        "class Foo\n"
        "{\n"
        "    use \\App\\Models\\User;\n"
        "}\n"
    )
    assert [record.usage_type for record in records] == [UsageType.TRAIT]


def test_parameter_type_hints():
    records = detect(
        "<?php\n"
        "namespace App\\Http;\n"
        "use App\\Models\\User;\n"
        "function a(User $user, int $count) {}\n"
        "function b(?User $user = null) {}\n"
        "function c(Team|User $owner) {}\n"
        "function d(User ...$users) {}\n",
        USER,
        'type_hint',
    )
    assert summary(records) == [
        ('type_hint', 4, 'User $user'),
        ('type_hint', 5, '?User $user'),
        ('type_hint', 6, 'Team|User $owner'),
        ('type_hint', 7, 'User ...$users'),
    ]


def test_property_type_hints():
    records = detect(
        "<?php\n"
        "namespace App\\Models;\n"
        "class Post\n"
        "{\n"
        "    protected ?User $author = null;\n"
        "    public static User $current;\n"
        "    private $untyped;\n"
        "    public function __construct(private User $owner) {}\n"
        "}\n",
        USER,
        'type_hint',
    )
    assert summary(records) == [
        ('type_hint', 5, 'protected ?User $author'),
        ('type_hint', 6, 'public static User $current'),
        ('type_hint', 8, 'User $owner'),
    ]


def test_return_type_hints():
    records = detect(
        "<?php\n"
        "namespace App\\Models;\n"
        "function owner(): User {}\n"
        "function maybe(): ?User {}\n"
        "$f = function () use ($x): User { return $x; };\n"
        "$g = fn (): User => $x;\n"
        "function none() {}\n",
        USER,
        'type_hint',
    )
    assert summary(records) == [
        ('type_hint', 3, ': User'),
        ('type_hint', 4, ': ?User'),
        ('type_hint', 5, ': User'),
        ('type_hint', 6, ': User'),
    ]


def test_type_hint_line_is_type_token_line():
    records = detect(
        "<?php\n"
        "namespace App\\Models;\n"
        "function save(\n"
        "    User $user\n"
        ") {}\n",
        USER,
        'type_hint',
    )
    assert [record.line for record in records] == [4]


def test_comments_and_strings_are_not_usages():
    records = detect(
        "<?php\n"
        "namespace App\\Models;\n"
        "// new User() and User::find()\n"
        "/* extends User */\n"
        "$s = 'new User';\n"
    )
    assert records == []


def test_target_with_leading_separator():
    records = detect("<?php\nuse App\\Models\\User;\n", '\\App\\Models\\User')
    assert len(records) == 1


def test_target_comparison_is_case_sensitive():
    assert detect("<?php\nuse App\\Models\\User;\n", 'app\\models\\user') == []


def test_registry_order_within_file():
    records = detect(
        "<?php\n"
        "namespace App\\Http;\n"
        "use App\\Models\\User;\n"
        "function make(): User { return new User(); }\n"
    )
    assert [record.usage_type.value for record in records] == ['import', 'new', 'type_hint']


def test_usage_type_subset():
    source = (
        "<?php\n"
        "namespace App\\Models;\n"
        "$u = new User();\n"
        "$v = User::find(1);\n"
    )
    assert [r.usage_type for r in detect(source, USER, UsageType.NEW)] == [UsageType.NEW]
    assert len(detect(source)) == 2


def test_select_detectors():
    assert select_detectors() == DETECTORS
    type_hint = select_detectors([UsageType.TYPE_HINT])
    assert [detector.name for detector in type_hint] == ['type_hint', 'return_type']


def test_parse_usage_types():
    assert parse_usage_types(['new', 'trait']) == frozenset({UsageType.NEW, UsageType.TRAIT})
    with pytest.raises(InvalidParameterError, match="Unknown usage type 'bogus'"):
        parse_usage_types(['bogus'])


def test_record_serialization():
    record = UsageRecord(3, UsageType.STATIC_CALL, 'User::find', method='find').with_file('app/Foo.php')
    data = record.to_dict()
    assert data == {
        'file': 'app/Foo.php',
        'line': 3,
        'usage_type': 'static_call',
        'code': 'User::find',
        'method': 'find',
    }
    assert UsageRecord.from_dict(data) == record
    assert 'method' not in UsageRecord(1, UsageType.NEW, 'new User').to_dict()


def test_name_helpers():
    assert normalize_class_name(' \\App\\Models\\User ') == 'App\\Models\\User'
    assert short_class_name('\\App\\Models\\User') == 'User'
    assert short_class_name('User') == 'User'
