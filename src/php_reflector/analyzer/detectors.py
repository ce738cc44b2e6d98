"""Usage detectors: classify references to one class in a PHP token stream.

Each detector pairs the token kinds that can start a usage with a match
function. The driver walks the token list once per detector and hands every
trigger index to the match function, which looks forward (and for `::`
backward) from there. Detectors only read the tokens and the file's
NamespaceContext, so any subset can run in any order.

A construct the scanner cannot follow (`new $class`, `static::create()`,
`$model::query()`) produces no record. That is a precision limit, not an error.
"""
from dataclasses import dataclass, field, replace
from enum import Enum
from functools import cached_property
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from php_reflector.analyzer.resolver import NamespaceContext, UseKind, build_context, parse_import
from php_reflector.analyzer.tokenizer import (
    NAME_PARTS,
    Token,
    TokenKind,
    collect_name,
    reconstruct,
    skip_trivia,
    skip_trivia_backward,
)
from php_reflector.errors import InvalidParameterError


class UsageType(Enum):
    IMPORT = "import"
    NEW = "new"
    STATIC_CALL = "static_call"
    EXTENDS = "extends"
    IMPLEMENTS = "implements"
    TRAIT = "trait"
    TYPE_HINT = "type_hint"


@dataclass(frozen=True)
class UsageRecord:
    """One syntactic usage of the target class."""
    line: int
    usage_type: UsageType
    code: str
    method: Optional[str] = None
    file: str = ""

    def with_file(self, file: str) -> 'UsageRecord':
        return replace(self, file=file)

    def to_dict(self) -> Dict:
        data = {
            'file': self.file,
            'line': self.line,
            'usage_type': self.usage_type.value,
            'code': self.code,
        }
        if self.method is not None:
            data['method'] = self.method
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'UsageRecord':
        return cls(
            line=data['line'],
            usage_type=UsageType(data['usage_type']),
            code=data['code'],
            method=data.get('method'),
            file=data.get('file', ''),
        )


def normalize_class_name(name: str) -> str:
    """Strip whitespace and the leading root separator: `\\App\\User` -> `App\\User`."""
    return name.strip().lstrip('\\')


def short_class_name(name: str) -> str:
    return normalize_class_name(name).rsplit('\\', 1)[-1]


class FileScan:
    """Read-only view of one file shared by all detectors."""

    def __init__(self, tokens: List[Token], context: NamespaceContext, target: str):
        self.tokens = tokens
        self.context = context
        self.target = normalize_class_name(target)

    def is_target(self, full_name: str) -> bool:
        """Compare an already fully-qualified name (import clauses) with the target."""
        return full_name.lstrip('\\') == self.target

    def resolves_to_target(self, name: str) -> bool:
        return self.is_target(self.context.resolve(name))

    @cached_property
    def paren_depths(self) -> List[int]:
        """Parenthesis nesting depth before each token."""
        depths = []
        depth = 0
        for token in self.tokens:
            depths.append(depth)
            if token.kind is TokenKind.OPEN_PAREN:
                depth += 1
            elif token.kind is TokenKind.CLOSE_PAREN and depth > 0:
                depth -= 1
        return depths


MatchFunction = Callable[[FileScan, int], List[UsageRecord]]


@dataclass(frozen=True)
class Detector:
    name: str
    usage_type: UsageType
    triggers: FrozenSet[TokenKind]
    match: MatchFunction = field(compare=False)

    def run(self, scan: FileScan) -> List[UsageRecord]:
        records: List[UsageRecord] = []
        for index, token in enumerate(scan.tokens):
            if token.kind in self.triggers:
                records.extend(self.match(scan, index))
        return records


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

TYPE_PUNCTUATION = frozenset({'?', '|', '&'})


def _is_type_start(token: Token) -> bool:
    return token.kind in NAME_PARTS or (token.kind is TokenKind.OTHER and token.text == '?')


def _collect_type(tokens: List[Token], start: int, limit: int) -> Tuple[int, List[int]]:
    """Collect a type expression such as `?User` or `User|Team`.

    Returns:
        Tuple of (index just past the last type token, indices of the name tokens)
    """
    names: List[int] = []
    end = start
    index = start
    while index < limit:
        token = tokens[index]
        if token.kind in NAME_PARTS:
            names.append(index)
            end = index + 1
        elif token.kind is TokenKind.OTHER and token.text in TYPE_PUNCTUATION:
            end = index + 1
        elif not token.is_trivia:
            break
        index += 1
    return end, names


def _matching_paren(tokens: List[Token], open_index: int) -> Optional[int]:
    depth = 0
    for index in range(open_index, len(tokens)):
        kind = tokens[index].kind
        if kind is TokenKind.OPEN_PAREN:
            depth += 1
        elif kind is TokenKind.CLOSE_PAREN:
            depth -= 1
            if depth == 0:
                return index
    return None


def _parameter_list_start(tokens: List[Token], index: int) -> Optional[int]:
    """Index of the `(` opening the parameter list of the function at `index`.

    Skips a by-reference `&` and the function name.
    """
    count = len(tokens)
    j = skip_trivia(tokens, index + 1)
    if j < count and tokens[j].text == '&':
        j = skip_trivia(tokens, j + 1)
    if j < count and tokens[j].kind is not TokenKind.OPEN_PAREN:
        j = skip_trivia(tokens, j + 1)
    if j < count and tokens[j].kind is TokenKind.OPEN_PAREN:
        return j
    return None


def _first_target_name(scan: FileScan, name_indices: Iterable[int]) -> Optional[int]:
    for index in name_indices:
        if scan.resolves_to_target(scan.tokens[index].text):
            return index
    return None


def _collect_name_list(tokens: List[Token], start: int, stops: FrozenSet[TokenKind]) -> Tuple[List[str], int]:
    """Collect comma separated names until a stop token.

    Returns:
        Tuple of (names, index of the stop token or len(tokens))
    """
    names: List[str] = []
    count = len(tokens)
    index = start
    while index < count:
        kind = tokens[index].kind
        if kind in stops:
            break
        if kind in NAME_PARTS:
            name, index = collect_name(tokens, index)
            names.append(name)
            continue
        index += 1
    return names, index


# ---------------------------------------------------------------------------
# Match functions
# ---------------------------------------------------------------------------

def match_import(scan: FileScan, index: int) -> List[UsageRecord]:
    """`use App\\Models\\User;` at file scope. Import names are already fully qualified."""
    if scan.context.use_kind(index) is not UseKind.IMPORT:
        return []

    statement = parse_import(scan.tokens, index)
    for clause in statement.clauses:
        if clause.kind == "class" and scan.is_target(clause.name):
            code = reconstruct(scan.tokens, index, statement.end + 1)
            return [UsageRecord(scan.tokens[index].line, UsageType.IMPORT, code)]
    return []


def _match_keyword_name(scan: FileScan, index: int, usage_type: UsageType) -> List[UsageRecord]:
    tokens = scan.tokens
    start = skip_trivia(tokens, index + 1)
    name, end = collect_name(tokens, start)
    if not name or not scan.resolves_to_target(name):
        return []
    return [UsageRecord(tokens[index].line, usage_type, reconstruct(tokens, index, end))]


def match_new(scan: FileScan, index: int) -> List[UsageRecord]:
    """`new User(...)`."""
    return _match_keyword_name(scan, index, UsageType.NEW)


def match_extends(scan: FileScan, index: int) -> List[UsageRecord]:
    """`extends Model`; only the first name of an interface's extends list."""
    return _match_keyword_name(scan, index, UsageType.EXTENDS)


def match_static_call(scan: FileScan, index: int) -> List[UsageRecord]:
    """`User::where(...)`, `User::ACTIVE`, `User::class`.

    The class name precedes the operator, so walk backward first.
    """
    tokens = scan.tokens
    name_end = skip_trivia_backward(tokens, index - 1)
    name_start = name_end
    while name_start >= 0 and tokens[name_start].kind in NAME_PARTS:
        name_start -= 1
    name_start += 1
    if name_start > name_end:
        return []

    name = ''.join(token.text for token in tokens[name_start:name_end + 1])
    if not scan.resolves_to_target(name):
        return []

    method = None
    end = index + 1
    following = skip_trivia(tokens, index + 1)
    if following < len(tokens):
        token = tokens[following]
        if token.kind is TokenKind.CLASS or token.text.lower() == 'class':
            end = following + 1
        elif token.kind is TokenKind.NAME:
            method = token.text
            end = following + 1

    code = reconstruct(tokens, name_start, end)
    return [UsageRecord(tokens[index].line, UsageType.STATIC_CALL, code, method=method)]


IMPLEMENTS_STOPS = frozenset({TokenKind.OPEN_BRACE, TokenKind.EXTENDS, TokenKind.SEMICOLON})
TRAIT_STOPS = frozenset({TokenKind.SEMICOLON, TokenKind.OPEN_BRACE})


def match_implements(scan: FileScan, index: int) -> List[UsageRecord]:
    """`implements HasOwner, Arrayable`: one record per statement."""
    names, stop = _collect_name_list(scan.tokens, index + 1, IMPLEMENTS_STOPS)
    if any(scan.resolves_to_target(name) for name in names):
        code = reconstruct(scan.tokens, index, stop)
        return [UsageRecord(scan.tokens[index].line, UsageType.IMPLEMENTS, code)]
    return []


def match_trait(scan: FileScan, index: int) -> List[UsageRecord]:
    """`use SoftDeletes, HasFactory;` inside a class body: one record per statement."""
    if scan.context.use_kind(index) is not UseKind.MIXIN:
        return []

    names, stop = _collect_name_list(scan.tokens, index + 1, TRAIT_STOPS)
    if any(scan.resolves_to_target(name) for name in names):
        code = reconstruct(scan.tokens, index, stop + 1)
        return [UsageRecord(scan.tokens[index].line, UsageType.TRAIT, code)]
    return []


def _match_parameter_hints(scan: FileScan, index: int) -> List[UsageRecord]:
    tokens = scan.tokens
    open_index = _parameter_list_start(tokens, index)
    if open_index is None:
        return []
    close_index = _matching_paren(tokens, open_index)
    if close_index is None:
        close_index = len(tokens)

    records = []
    k = open_index + 1
    while k < close_index:
        if not _is_type_start(tokens[k]):
            k += 1
            continue

        type_end, names = _collect_type(tokens, k, close_index)
        variable = skip_trivia(tokens, type_end)
        if variable < close_index and tokens[variable].text == '...':
            variable = skip_trivia(tokens, variable + 1)
        if variable < close_index and tokens[variable].kind is TokenKind.VARIABLE:
            hit = _first_target_name(scan, names)
            if hit is not None:
                records.append(UsageRecord(
                    tokens[hit].line,
                    UsageType.TYPE_HINT,
                    reconstruct(tokens, k, variable + 1),
                ))
        k = max(type_end, k + 1)
    return records


def _match_property_hint(scan: FileScan, index: int) -> List[UsageRecord]:
    tokens = scan.tokens
    # Visibility inside a parameter list is constructor promotion, counted as a parameter
    if scan.paren_depths[index] > 0:
        return []

    count = len(tokens)
    j = skip_trivia(tokens, index + 1)
    while j < count and tokens[j].kind in (TokenKind.STATIC, TokenKind.READONLY):
        j = skip_trivia(tokens, j + 1)
    if j >= count or not _is_type_start(tokens[j]):
        return []

    type_end, names = _collect_type(tokens, j, count)
    variable = skip_trivia(tokens, type_end)
    if variable >= count or tokens[variable].kind is not TokenKind.VARIABLE:
        return []

    hit = _first_target_name(scan, names)
    if hit is None:
        return []
    return [UsageRecord(tokens[hit].line, UsageType.TYPE_HINT, reconstruct(tokens, index, variable + 1))]


def match_type_hint(scan: FileScan, index: int) -> List[UsageRecord]:
    """Parameter types (`function f(User $user)`) and property types (`public ?User $owner;`)."""
    if scan.tokens[index].kind in (TokenKind.FUNCTION, TokenKind.FN):
        return _match_parameter_hints(scan, index)
    return _match_property_hint(scan, index)


def match_return_type(scan: FileScan, index: int) -> List[UsageRecord]:
    """`function owner(): User`, `fn (): ?User => ...`, `function () use ($x): User`."""
    tokens = scan.tokens
    count = len(tokens)
    open_index = _parameter_list_start(tokens, index)
    if open_index is None:
        return []
    close_index = _matching_paren(tokens, open_index)
    if close_index is None:
        return []

    k = skip_trivia(tokens, close_index + 1)
    if k < count and tokens[k].kind is TokenKind.USE:
        bound = skip_trivia(tokens, k + 1)
        if bound >= count or tokens[bound].kind is not TokenKind.OPEN_PAREN:
            return []
        bound_close = _matching_paren(tokens, bound)
        if bound_close is None:
            return []
        k = skip_trivia(tokens, bound_close + 1)

    if k >= count or tokens[k].kind is not TokenKind.COLON:
        return []

    type_start = skip_trivia(tokens, k + 1)
    if type_start >= count or not _is_type_start(tokens[type_start]):
        return []

    type_end, names = _collect_type(tokens, type_start, count)
    hit = _first_target_name(scan, names)
    if hit is None:
        return []
    return [UsageRecord(tokens[hit].line, UsageType.TYPE_HINT, reconstruct(tokens, k, type_end))]


VISIBILITY = frozenset({TokenKind.PUBLIC, TokenKind.PROTECTED, TokenKind.PRIVATE})
FUNCTION_KEYWORDS = frozenset({TokenKind.FUNCTION, TokenKind.FN})

# Registry order is the order records of one file are concatenated in
DETECTORS: Tuple[Detector, ...] = (
    Detector('import', UsageType.IMPORT, frozenset({TokenKind.USE}), match_import),
    Detector('new', UsageType.NEW, frozenset({TokenKind.NEW}), match_new),
    Detector('static_call', UsageType.STATIC_CALL, frozenset({TokenKind.DOUBLE_COLON}), match_static_call),
    Detector('extends', UsageType.EXTENDS, frozenset({TokenKind.EXTENDS}), match_extends),
    Detector('implements', UsageType.IMPLEMENTS, frozenset({TokenKind.IMPLEMENTS}), match_implements),
    Detector('trait', UsageType.TRAIT, frozenset({TokenKind.USE}), match_trait),
    Detector('type_hint', UsageType.TYPE_HINT, FUNCTION_KEYWORDS | VISIBILITY, match_type_hint),
    Detector('return_type', UsageType.TYPE_HINT, FUNCTION_KEYWORDS, match_return_type),
)


def parse_usage_types(values: Iterable[str]) -> FrozenSet[UsageType]:
    """Validate requested usage type names.

    Raises:
        InvalidParameterError: If a name is not a known usage type
    """
    selected = set()
    valid = [usage_type.value for usage_type in UsageType]
    for value in values:
        try:
            selected.add(UsageType(value))
        except ValueError:
            raise InvalidParameterError(
                f"Unknown usage type '{value}'. Valid types: {', '.join(valid)}"
            ) from None
    return frozenset(selected)


def select_detectors(usage_types: Iterable[UsageType] = ()) -> Tuple[Detector, ...]:
    """Detectors for the requested usage types; all of them when none are requested."""
    wanted = frozenset(usage_types)
    if not wanted:
        return DETECTORS
    return tuple(detector for detector in DETECTORS if detector.usage_type in wanted)


def run_detectors(
    tokens: List[Token],
    target: str,
    context: Optional[NamespaceContext] = None,
    usage_types: Sequence[UsageType] = (),
) -> List[UsageRecord]:
    """Run the selected detectors over one file's tokens.

    Args:
        tokens: Token list of the file
        target: Fully-qualified target class name (leading separator optional)
        context: Prebuilt NamespaceContext, built from the tokens when omitted
        usage_types: Usage types to look for; empty means all

    Returns:
        Records in registry order, each detector's records in source order
    """
    if context is None:
        context = build_context(tokens)
    scan = FileScan(tokens, context, target)

    records: List[UsageRecord] = []
    for detector in select_detectors(usage_types):
        records.extend(detector.run(scan))
    return records
