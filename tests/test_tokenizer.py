"""Tests for the flat PHP token stream."""
import pytest

from php_reflector.analyzer.tokenizer import (
    TokenKind,
    collect_name,
    reconstruct,
    skip_trivia,
    skip_trivia_backward,
    tokenize,
)
from php_reflector.errors import MalformedInputError, TokenizeError


SOURCE = """<?php

namespace App\\Http;

use App\\Models\\User;

class Controller
{
    // comment
    public function show(User $user): User
    {
        return User::find($user->id);
    }
}
"""


def significant(tokens):
    return [token for token in tokens if not token.is_trivia]


def test_tokens_reproduce_source():
    """Joining token texts gives back the exact source."""
    tokens = tokenize(SOURCE)
    assert ''.join(token.text for token in tokens) == SOURCE


def test_qualified_names_are_single_tokens():
    tokens = tokenize(SOURCE)
    names = [token.text for token in tokens if token.kind is TokenKind.NAME]
    assert 'App\\Http' in names
    assert 'App\\Models\\User' in names


def test_fully_qualified_name_keeps_leading_separator():
    tokens = tokenize("<?php\n$x = new \\App\\Models\\User();\n")
    names = [token.text for token in tokens if token.kind is TokenKind.NAME]
    assert '\\App\\Models\\User' in names


def test_variables_are_single_tokens():
    tokens = tokenize(SOURCE)
    variables = [token.text for token in tokens if token.kind is TokenKind.VARIABLE]
    assert '$user' in variables


def test_keyword_and_punctuation_kinds():
    kinds = [token.kind for token in significant(tokenize(SOURCE))]
    for expected in (TokenKind.NAMESPACE, TokenKind.USE, TokenKind.CLASS, TokenKind.PUBLIC,
                     TokenKind.FUNCTION, TokenKind.DOUBLE_COLON, TokenKind.COLON,
                     TokenKind.OPEN_BRACE, TokenKind.CLOSE_BRACE, TokenKind.SEMICOLON):
        assert expected in kinds, f"{expected} missing from {kinds}"


def test_keywords_are_case_insensitive():
    tokens = significant(tokenize("<?php\nNAMESPACE App;\nUSE Foo\\Bar;\n"))
    kinds = [token.kind for token in tokens]
    assert TokenKind.NAMESPACE in kinds
    assert TokenKind.USE in kinds


def test_line_numbers():
    tokens = tokenize(SOURCE)
    use = next(token for token in tokens if token.kind is TokenKind.USE)
    double_colon = next(token for token in tokens if token.kind is TokenKind.DOUBLE_COLON)
    assert use.line == 5
    assert double_colon.line == 12


def test_comments_are_trivia():
    tokens = tokenize(SOURCE)
    comments = [token for token in tokens if token.kind is TokenKind.COMMENT]
    assert comments and comments[0].text == '// comment'
    assert all(token.is_trivia for token in comments)


def test_bytes_input():
    tokens = tokenize(SOURCE.encode('utf-8'))
    assert ''.join(token.text for token in tokens) == SOURCE


def test_stray_bytes_become_replacement_characters():
    tokens = tokenize(b"<?php\n// caf\xe9\nnew User();\n")
    assert ''.join(token.text for token in tokens) == "<?php\n// caf\ufffd\nnew User();\n"
    assert [token.line for token in tokens if token.kind is TokenKind.NEW] == [3]


def test_unencodable_text_raises_tokenize_error():
    with pytest.raises(TokenizeError):
        tokenize("<?php $x = '\ud800';\n")


def test_tokenize_error_is_malformed_input():
    assert issubclass(TokenizeError, MalformedInputError)


def test_trivia_helpers():
    tokens = tokenize("<?php\nuse   Foo\\Bar ;")
    use = next(i for i, token in enumerate(tokens) if token.kind is TokenKind.USE)

    name_index = skip_trivia(tokens, use + 1)
    assert tokens[name_index].text == 'Foo\\Bar'

    name, past = collect_name(tokens, name_index)
    assert name == 'Foo\\Bar'

    semicolon = skip_trivia(tokens, past)
    assert tokens[semicolon].kind is TokenKind.SEMICOLON
    assert skip_trivia_backward(tokens, semicolon - 1) == name_index
    assert reconstruct(tokens, use, semicolon + 1) == 'use   Foo\\Bar ;'


def test_collect_name_on_non_name():
    tokens = tokenize("<?php\n;")
    semicolon = next(i for i, token in enumerate(tokens) if token.kind is TokenKind.SEMICOLON)
    assert collect_name(tokens, semicolon) == ('', semicolon)
