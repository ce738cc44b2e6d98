"""Namespace and alias resolution over a PHP token stream.

PHP overloads the `use` keyword:

    use App\\Models\\User;              // import (file scope)
    class Post { use SoftDeletes; }    // trait inclusion (class body)
    function () use ($user) {}         // closure binding

Only imports feed the alias map. Resolution is purely lexical: a name is
expanded through the file's imports and namespace, never through the class
hierarchy or the global-namespace fallback PHP applies at runtime.
"""
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

from php_reflector.analyzer.tokenizer import (
    NAME_PARTS,
    Token,
    TokenKind,
    collect_name,
    skip_trivia,
    skip_trivia_backward,
)

# How far back from a `use` token we look for a class-opening keyword.
# Heuristic: a long `class ... extends ... implements ...` header can push the
# keyword out of the window; the enclosing-block check below catches those.
USE_LOOKBACK_WINDOW = 20

CLASS_OPENERS = frozenset({TokenKind.CLASS, TokenKind.TRAIT, TokenKind.ENUM})
CLASS_LIKE = CLASS_OPENERS | {TokenKind.INTERFACE}


class UseKind(Enum):
    IMPORT = "import"
    MIXIN = "mixin"
    CLOSURE = "closure"


@dataclass(frozen=True)
class ImportClause:
    """One imported name of a use statement: `App\\Models\\User as Author`."""
    name: str
    alias: str = ""
    kind: str = "class"

    @property
    def key(self) -> str:
        """Short name this clause binds in the file."""
        return self.alias or self.name.rsplit('\\', 1)[-1]


@dataclass(frozen=True)
class ImportStatement:
    start: int
    end: int
    clauses: Tuple[ImportClause, ...]


@dataclass(frozen=True)
class NamespaceContext:
    """Per-file resolution state, built once and then only read."""
    namespace: str
    aliases: Mapping[str, str] = field(default_factory=dict)
    use_kinds: Mapping[int, UseKind] = field(default_factory=dict)

    def resolve(self, name: str) -> str:
        return resolve(name, self.aliases, self.namespace)

    def use_kind(self, index: int) -> Optional[UseKind]:
        return self.use_kinds.get(index)


def _is_class_opener(tokens: List[Token], index: int) -> bool:
    """True for `class`/`trait`/`enum` keywords that open a declaration.

    `Foo::class` is a constant fetch, not a declaration.
    """
    if tokens[index].kind not in CLASS_OPENERS:
        return False
    prev = skip_trivia_backward(tokens, index - 1)
    return prev < 0 or tokens[prev].kind is not TokenKind.DOUBLE_COLON


def _in_lookback_window(tokens: List[Token], index: int) -> bool:
    for j in range(index - 1, max(0, index - USE_LOOKBACK_WINDOW) - 1, -1):
        kind = tokens[j].kind
        if kind in CLASS_OPENERS and _is_class_opener(tokens, j):
            return True
        if kind in (TokenKind.SEMICOLON, TokenKind.NAMESPACE):
            return False
    return False


def classify_use_tokens(tokens: List[Token]) -> Dict[int, UseKind]:
    """Classify every `use` token as an import, a trait inclusion or a closure binding.

    A `use` is a trait inclusion when a class-opening keyword appears within
    the lookback window before the nearest `;` or `namespace`, or when the
    innermost enclosing block is a class-like body. A `use` followed by `(`
    binds closure variables.

    Args:
        tokens: Token list of one file

    Returns:
        Mapping of token index to UseKind
    """
    kinds: Dict[int, UseKind] = {}
    # One flag per open brace: True when the block is a class-like body
    scopes: List[bool] = []
    pending_class = False

    for index, token in enumerate(tokens):
        kind = token.kind
        if kind in CLASS_LIKE:
            if kind is TokenKind.INTERFACE or _is_class_opener(tokens, index):
                pending_class = True
        elif kind is TokenKind.OPEN_BRACE:
            scopes.append(pending_class)
            pending_class = False
        elif kind is TokenKind.CLOSE_BRACE:
            if scopes:
                scopes.pop()
        elif kind is TokenKind.SEMICOLON:
            pending_class = False
        elif kind is TokenKind.USE:
            following = skip_trivia(tokens, index + 1)
            if following < len(tokens) and tokens[following].kind is TokenKind.OPEN_PAREN:
                kinds[index] = UseKind.CLOSURE
            elif _in_lookback_window(tokens, index) or (scopes and scopes[-1]):
                kinds[index] = UseKind.MIXIN
            else:
                kinds[index] = UseKind.IMPORT

    return kinds


def parse_import(tokens: List[Token], index: int) -> ImportStatement:
    """Parse the import statement whose `use` keyword sits at `index`.

    Handles `use A\\B;`, `use A\\B as C;`, `use A\\B, C\\D;`, group imports
    `use A\\{B, C as D};` and the `use function` / `use const` forms.

    Returns:
        ImportStatement; `end` is the index of the terminating `;` (or of the
        token where parsing stopped)
    """
    count = len(tokens)
    i = skip_trivia(tokens, index + 1)
    statement_kind = "class"
    if i < count and tokens[i].kind in (TokenKind.FUNCTION, TokenKind.CONST):
        statement_kind = tokens[i].kind.value
        i += 1

    clauses: List[ImportClause] = []
    prefix = ""
    current = ""
    alias = ""
    clause_kind = statement_kind

    def finish():
        nonlocal current, alias, clause_kind
        name = current.lstrip('\\')
        if name and not name.endswith('\\'):
            clauses.append(ImportClause(name=name, alias=alias, kind=clause_kind))
        current, alias, clause_kind = "", "", statement_kind

    while i < count:
        token = tokens[i]
        kind = token.kind
        if token.is_trivia:
            i += 1
        elif kind in NAME_PARTS:
            name, i = collect_name(tokens, i)
            current = prefix + name if prefix else name
        elif kind is TokenKind.AS:
            i = skip_trivia(tokens, i + 1)
            if i < count and tokens[i].kind is TokenKind.NAME:
                alias = tokens[i].text
                i += 1
        elif kind in (TokenKind.FUNCTION, TokenKind.CONST) and prefix:
            clause_kind = kind.value
            i += 1
        elif kind is TokenKind.OPEN_BRACE:
            prefix = current if current.endswith('\\') else current + '\\'
            current = ""
            i += 1
        elif kind is TokenKind.COMMA:
            finish()
            i += 1
        elif kind is TokenKind.CLOSE_BRACE:
            finish()
            prefix = ""
            i += 1
        else:
            break

    finish()
    return ImportStatement(start=index, end=min(i, count - 1), clauses=tuple(clauses))


def get_namespace(tokens: List[Token]) -> str:
    """Return the first declared namespace of the file, or '' for the global namespace."""
    count = len(tokens)
    for index, token in enumerate(tokens):
        if token.kind is not TokenKind.NAMESPACE:
            continue
        parts = []
        i = index + 1
        while i < count and tokens[i].kind not in (TokenKind.SEMICOLON, TokenKind.OPEN_BRACE):
            if tokens[i].kind in NAME_PARTS:
                parts.append(tokens[i].text)
            i += 1
        return ''.join(parts).strip('\\')
    return ""


def build_alias_map(tokens: List[Token], use_kinds: Optional[Mapping[int, UseKind]] = None) -> Dict[str, str]:
    """Map short names and aliases to fully-qualified class names.

    Only import statements contribute; trait inclusions, closure bindings and
    `use function` / `use const` imports never do.
    """
    if use_kinds is None:
        use_kinds = classify_use_tokens(tokens)

    aliases: Dict[str, str] = {}
    for index, use_kind in use_kinds.items():
        if use_kind is not UseKind.IMPORT:
            continue
        for clause in parse_import(tokens, index).clauses:
            if clause.kind == "class":
                aliases[clause.key] = clause.name
    return aliases


def resolve(name: str, aliases: Mapping[str, str], namespace: str) -> str:
    """Resolve a class reference to its fully-qualified name.

    Args:
        name: Name as written in the source (`User`, `Models\\User`, `\\App\\User`)
        aliases: Alias map of the file
        namespace: Current namespace ('' for global)

    Returns:
        Fully-qualified name without a leading separator
    """
    if name.startswith('\\'):
        return name.lstrip('\\')

    if name in aliases:
        return aliases[name]

    # Models\User with `use App\Models;` in scope
    if '\\' in name:
        head, rest = name.split('\\', 1)
        if head in aliases:
            return f"{aliases[head]}\\{rest}"

    if namespace:
        return f"{namespace}\\{name}"
    return name


def build_context(tokens: List[Token]) -> NamespaceContext:
    """Scan a file's tokens once and freeze its namespace, aliases and use kinds."""
    use_kinds = classify_use_tokens(tokens)
    return NamespaceContext(
        namespace=get_namespace(tokens),
        aliases=MappingProxyType(build_alias_map(tokens, use_kinds)),
        use_kinds=MappingProxyType(use_kinds),
    )
