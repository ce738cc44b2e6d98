"""Flat PHP token stream built from tree-sitter leaves.

The usage detectors work on a linear, randomly indexable token list rather
than on the syntax tree: a `use` keyword, a `::` operator or a `:` after a
parameter list is classified by looking at its neighbours. tree-sitter-php
gives us the leaves; this module turns them into tokens shaped like PHP's
own tokenizer output:

- every byte of the source is covered, so joining the token texts gives the
  original text back (whitespace and comments are kept for code snippets;
  bytes that are not valid UTF-8 come back as U+FFFD)
- `App\\Models\\User` is a single NAME token, like PHP 8's T_NAME_QUALIFIED
- `$user` is a single VARIABLE token
"""
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List, Optional, Tuple

from tree_sitter import Node, Tree

from php_reflector.analyzer.parser import LanguageParser
from php_reflector.errors import TokenizeError


class TokenKind(Enum):
    NAME = "name"
    NS_SEPARATOR = "ns_separator"
    VARIABLE = "variable"
    WHITESPACE = "whitespace"
    COMMENT = "comment"
    # Keywords
    NAMESPACE = "namespace"
    USE = "use"
    AS = "as"
    NEW = "new"
    EXTENDS = "extends"
    IMPLEMENTS = "implements"
    CLASS = "class"
    TRAIT = "trait"
    INTERFACE = "interface"
    ENUM = "enum"
    FUNCTION = "function"
    FN = "fn"
    CONST = "const"
    PUBLIC = "public"
    PROTECTED = "protected"
    PRIVATE = "private"
    STATIC = "static"
    READONLY = "readonly"
    # Punctuation
    DOUBLE_COLON = "::"
    OPEN_PAREN = "("
    CLOSE_PAREN = ")"
    OPEN_BRACE = "{"
    CLOSE_BRACE = "}"
    SEMICOLON = ";"
    COMMA = ","
    COLON = ":"
    OTHER = "other"


# tree-sitter-php reports keyword leaves by their lowercase spelling, whatever
# case the source used.
LEAF_KINDS = {
    'namespace': TokenKind.NAMESPACE,
    'use': TokenKind.USE,
    'as': TokenKind.AS,
    'new': TokenKind.NEW,
    'extends': TokenKind.EXTENDS,
    'implements': TokenKind.IMPLEMENTS,
    'class': TokenKind.CLASS,
    'trait': TokenKind.TRAIT,
    'interface': TokenKind.INTERFACE,
    'enum': TokenKind.ENUM,
    'function': TokenKind.FUNCTION,
    'fn': TokenKind.FN,
    'const': TokenKind.CONST,
    'public': TokenKind.PUBLIC,
    'protected': TokenKind.PROTECTED,
    'private': TokenKind.PRIVATE,
    'static': TokenKind.STATIC,
    'readonly': TokenKind.READONLY,
    '::': TokenKind.DOUBLE_COLON,
    '(': TokenKind.OPEN_PAREN,
    ')': TokenKind.CLOSE_PAREN,
    '{': TokenKind.OPEN_BRACE,
    '}': TokenKind.CLOSE_BRACE,
    ';': TokenKind.SEMICOLON,
    ',': TokenKind.COMMA,
    ':': TokenKind.COLON,
}

TRIVIA = frozenset({TokenKind.WHITESPACE, TokenKind.COMMENT})
NAME_PARTS = frozenset({TokenKind.NAME, TokenKind.NS_SEPARATOR})

IDENTIFIER = re.compile(r'^[A-Za-z_\x80-\U0010ffff][A-Za-z0-9_\x80-\U0010ffff]*$')


@dataclass(frozen=True)
class Token:
    """One lexical token: kind, verbatim text and 1-based start line."""
    kind: TokenKind
    text: str
    line: int

    @property
    def is_trivia(self) -> bool:
        return self.kind in TRIVIA


_parser: Optional[LanguageParser] = None


def _get_parser() -> LanguageParser:
    global _parser
    if _parser is None:
        _parser = LanguageParser('php')
    return _parser


def encode_source(source: str | bytes) -> bytes:
    if isinstance(source, bytes):
        return source
    try:
        return source.encode('utf-8')
    except UnicodeEncodeError as e:
        raise TokenizeError(f"Source cannot be encoded as UTF-8: {e}") from e


def decode_bytes(data: bytes) -> str:
    """Decode token text; bytes that are not UTF-8 become U+FFFD."""
    return data.decode('utf-8', errors='replace')


def _iter_leaves(root: Node) -> Iterator[Node]:
    """Yield leaf nodes in document order (iterative, deep files are common)."""
    stack = [root]
    while stack:
        node = stack.pop()
        if node.child_count == 0:
            # Missing nodes are zero-width placeholders inserted by error recovery
            if node.end_byte > node.start_byte:
                yield node
            continue
        stack.extend(reversed(node.children))


def _classify(node: Node) -> TokenKind:
    node_type = node.type
    if node_type == 'comment':
        return TokenKind.COMMENT
    if node_type in ('name', 'primitive_type'):
        return TokenKind.NAME
    parent = node.parent
    if parent is not None and parent.type == 'primitive_type':
        return TokenKind.NAME
    if node_type == '\\':
        return TokenKind.NS_SEPARATOR
    return LEAF_KINDS.get(node_type, TokenKind.OTHER)


def _push(tokens: List[Token], kind: TokenKind, text: str, line: int, adjacent: bool) -> None:
    """Append a token, merging qualified names and variables as PHP 8 does."""
    prev = tokens[-1] if tokens and adjacent else None

    if prev is not None:
        if prev.kind in NAME_PARTS and kind in NAME_PARTS:
            tokens[-1] = Token(TokenKind.NAME, prev.text + text, prev.line)
            return
        # A keyword spelled as a namespace segment: App\List\Item
        if prev.kind in NAME_PARTS and prev.text.endswith('\\') and IDENTIFIER.match(text):
            tokens[-1] = Token(TokenKind.NAME, prev.text + text, prev.line)
            return
        if prev.kind is TokenKind.OTHER and prev.text == '$' and kind is TokenKind.NAME:
            tokens[-1] = Token(TokenKind.VARIABLE, prev.text + text, prev.line)
            return

    tokens.append(Token(kind, text, line))


def tokenize(source: str | bytes) -> List[Token]:
    """Tokenize PHP source into a flat list of tokens.

    Args:
        source: PHP source text (str) or raw file bytes

    Returns:
        Tokens in source order; joining their texts reproduces the source

    Raises:
        TokenizeError: If a str source cannot be encoded as UTF-8
    """
    data = encode_source(source)
    return tokens_from_tree(data, _get_parser().parse_source(data))


def tokens_from_tree(data: bytes, tree: Tree) -> List[Token]:
    """Build the token list from an already parsed tree of `data`."""
    tokens: List[Token] = []
    cursor = 0
    line = 1

    for leaf in _iter_leaves(tree.root_node):
        if leaf.start_byte < cursor:
            continue

        adjacent = leaf.start_byte == cursor
        if not adjacent:
            gap = decode_bytes(data[cursor:leaf.start_byte])
            kind = TokenKind.WHITESPACE if gap.isspace() else TokenKind.OTHER
            tokens.append(Token(kind, gap, line))

        text = decode_bytes(data[leaf.start_byte:leaf.end_byte])
        _push(tokens, _classify(leaf), text, leaf.start_point[0] + 1, adjacent)

        cursor = leaf.end_byte
        line = leaf.end_point[0] + 1

    if cursor < len(data):
        tail = decode_bytes(data[cursor:])
        tokens.append(Token(TokenKind.WHITESPACE if tail.isspace() else TokenKind.OTHER, tail, line))

    return tokens


def skip_trivia(tokens: List[Token], index: int) -> int:
    """Return the first index >= `index` holding a significant token (or len)."""
    count = len(tokens)
    while index < count and tokens[index].kind in TRIVIA:
        index += 1
    return index


def skip_trivia_backward(tokens: List[Token], index: int) -> int:
    """Return the last index <= `index` holding a significant token (or -1)."""
    while index >= 0 and tokens[index].kind in TRIVIA:
        index -= 1
    return index


def collect_name(tokens: List[Token], index: int) -> Tuple[str, int]:
    """Collect a (possibly qualified) class name starting at `index`.

    Returns:
        Tuple of (name, index just past the name); the name is empty when
        `index` does not start a name
    """
    parts = []
    count = len(tokens)
    while index < count and tokens[index].kind in NAME_PARTS:
        parts.append(tokens[index].text)
        index += 1
    return ''.join(parts), index


def reconstruct(tokens: List[Token], start: int, end: int) -> str:
    """Verbatim source for tokens[start:end], trimmed."""
    return ''.join(token.text for token in tokens[start:end]).strip()
