"""Source-level class reflection for PHP.

Extracts class, interface, trait and enum declarations with their methods,
properties, constants and docblocks straight from the tree-sitter syntax
tree. Nothing is loaded or executed, so vendor code and broken autoloaders
are not a problem. Names are resolved with the same namespace/alias rules
the usage scanner uses.
"""
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Mapping, Optional

from tree_sitter import Node

from php_reflector.analyzer.parser import LanguageParser
from php_reflector.analyzer.resolver import build_alias_map, resolve
from php_reflector.analyzer.tokenizer import decode_bytes, encode_source, tokens_from_tree
from php_reflector.errors import MalformedInputError

logger = logging.getLogger(__name__)

DECLARATION_KINDS = {
    'class_declaration': 'class',
    'interface_declaration': 'interface',
    'trait_declaration': 'trait',
    'enum_declaration': 'enum',
}

NAME_NODES = ('name', 'qualified_name')

# Type keywords that never resolve against the namespace
BUILTIN_TYPES = frozenset({
    'array', 'callable', 'iterable', 'bool', 'boolean', 'float', 'double', 'int',
    'integer', 'string', 'void', 'mixed', 'never', 'null', 'false', 'true',
    'object', 'self', 'static', 'parent',
})

TYPE_NAME = re.compile(r'\\?[A-Za-z_\x80-\uffff][\w\x80-\uffff]*(?:\\[A-Za-z_\x80-\uffff][\w\x80-\uffff]*)*')

# Tags that describe provenance rather than behaviour
IGNORED_TAGS = frozenset({'author', 'package', 'subpackage', 'license'})


@dataclass
class DocTag:
    name: str
    body: str = ""

    def render(self) -> str:
        return f"@{self.name} {self.body}".rstrip()


@dataclass
class DocBlock:
    summary: str = ""
    description: str = ""
    tags: List[DocTag] = field(default_factory=list)
    raw: str = ""

    def to_dict(self, summary_only: bool = True, include_tags: bool = False, include_raw: bool = False) -> Optional[Dict]:
        """Render for output; None when nothing is left to show."""
        doc: Dict = {}
        if self.summary:
            doc['summary'] = self.summary
        if not summary_only:
            if self.description:
                doc['description'] = self.description
            if include_tags:
                tags = [tag.render() for tag in self.tags if tag.name not in IGNORED_TAGS]
                if tags:
                    doc['tags'] = tags
        if include_raw and self.raw:
            doc['raw'] = self.raw
        return doc or None


def parse_docblock(raw: str) -> DocBlock:
    """Split a `/** ... */` comment into summary, description and tags.

    The summary is the first paragraph, ending at a blank line, at a line
    ending with a period, or at the first tag.
    """
    body = raw.strip()
    if body.startswith('/**'):
        body = body[3:]
    if body.endswith('*/'):
        body = body[:-2]

    lines = [re.sub(r'^\s*\*? ?', '', line).rstrip() for line in body.splitlines()]
    while lines and not lines[0].strip():
        lines.pop(0)

    summary_lines: List[str] = []
    description_lines: List[str] = []
    tags: List[DocTag] = []
    section = 'summary'

    for line in lines:
        stripped = line.strip()
        if stripped.startswith('@'):
            section = 'tags'
            name, _, rest = stripped[1:].partition(' ')
            tags.append(DocTag(name=name, body=rest.strip()))
            continue

        if section == 'tags':
            if stripped and tags:
                tags[-1].body = f"{tags[-1].body} {stripped}".strip()
        elif section == 'summary':
            if not stripped:
                if summary_lines:
                    section = 'description'
                continue
            summary_lines.append(stripped)
            if stripped.endswith('.'):
                section = 'description'
        else:
            description_lines.append(line)

    return DocBlock(
        summary=' '.join(summary_lines),
        description='\n'.join(description_lines).strip(),
        tags=tags,
        raw=raw.strip(),
    )


@dataclass
class ParameterInfo:
    name: str
    type: Optional[str] = None
    default: Optional[str] = None
    is_variadic: bool = False
    by_reference: bool = False
    is_promoted: bool = False


@dataclass
class MethodInfo:
    name: str
    declaring_class: str
    visibility: str = 'public'
    is_static: bool = False
    is_abstract: bool = False
    is_final: bool = False
    parameters: List[ParameterInfo] = field(default_factory=list)
    return_type: Optional[str] = None
    docblock: Optional[DocBlock] = None
    start_line: int = 0
    end_line: int = 0


@dataclass
class PropertyInfo:
    name: str
    declaring_class: str
    visibility: str = 'public'
    is_static: bool = False
    is_readonly: bool = False
    type: Optional[str] = None
    default: Optional[str] = None
    has_default: bool = False
    docblock: Optional[DocBlock] = None
    start_line: int = 0
    end_line: int = 0


@dataclass
class ConstantInfo:
    name: str
    declaring_class: str
    value: Optional[str] = None
    visibility: str = 'public'
    docblock: Optional[DocBlock] = None
    start_line: int = 0
    end_line: int = 0


@dataclass
class ClassInfo:
    """Everything known about one declaration, read-only once built."""
    name: str
    short_name: str
    namespace: str
    kind: str
    file: str
    start_line: int = 0
    end_line: int = 0
    parent: Optional[str] = None
    interfaces: List[str] = field(default_factory=list)
    traits: List[str] = field(default_factory=list)
    is_abstract: bool = False
    is_final: bool = False
    is_readonly: bool = False
    docblock: Optional[DocBlock] = None
    methods: List[MethodInfo] = field(default_factory=list)
    properties: List[PropertyInfo] = field(default_factory=list)
    constants: List[ConstantInfo] = field(default_factory=list)

    @property
    def is_interface(self) -> bool:
        return self.kind == 'interface'

    @property
    def is_trait(self) -> bool:
        return self.kind == 'trait'

    @property
    def is_enum(self) -> bool:
        return self.kind == 'enum'

    def has_method(self, name: str) -> bool:
        """Declared (not inherited) method check; PHP method names are case-insensitive."""
        wanted = name.lower()
        return any(method.name.lower() == wanted for method in self.methods)

    def get_method(self, name: str) -> Optional[MethodInfo]:
        wanted = name.lower()
        for method in self.methods:
            if method.name.lower() == wanted:
                return method
        return None


class _FileWalker:
    """Walks one parsed file and builds ClassInfo objects."""

    def __init__(self, data: bytes, file: str, aliases: Mapping[str, str]):
        self.data = data
        self.file = file
        self.aliases = aliases

    def text(self, node: Optional[Node]) -> str:
        if node is None:
            return ""
        return decode_bytes(self.data[node.start_byte:node.end_byte])

    def collect(self, root: Node) -> List[ClassInfo]:
        classes: List[ClassInfo] = []
        namespace = ""
        for child in root.named_children:
            if child.type == 'namespace_definition':
                name = self.text(child.child_by_field_name('name')).strip('\\')
                body = child.child_by_field_name('body')
                if body is not None:
                    classes.extend(self._declarations(body, name))
                else:
                    namespace = name
                continue
            classes.extend(self._declarations(child, namespace))
        return classes

    def _declarations(self, node: Node, namespace: str) -> Iterator[ClassInfo]:
        # Conditional declarations (`if (!class_exists(...)) { class X {} }`) count too
        stack = [node]
        while stack:
            current = stack.pop()
            if current.type in DECLARATION_KINDS:
                info = self._class(current, namespace)
                if info is not None:
                    yield info
                continue
            stack.extend(reversed(current.named_children))

    # -- helpers ------------------------------------------------------------

    def resolve_name(self, name: str, namespace: str) -> str:
        return resolve(name, self.aliases, namespace)

    def resolve_type(self, type_text: str, namespace: str) -> Optional[str]:
        type_text = type_text.strip().lstrip(':').strip()
        if not type_text:
            return None

        def replace(match: re.Match) -> str:
            name = match.group(0)
            if name.lower() in BUILTIN_TYPES:
                return name
            return self.resolve_name(name, namespace)

        return TYPE_NAME.sub(replace, type_text)

    def docblock(self, node: Node) -> Optional[DocBlock]:
        prev = node.prev_sibling
        if prev is not None and prev.type == 'comment':
            raw = self.text(prev)
            if raw.startswith('/**'):
                return parse_docblock(raw)
        return None

    def modifiers(self, node: Node) -> List[str]:
        return [self.text(child).lower() for child in node.children if child.type.endswith('_modifier')]

    @staticmethod
    def visibility(modifiers: List[str]) -> str:
        for candidate in ('private', 'protected', 'public'):
            if candidate in modifiers:
                return candidate
        return 'public'

    def names_in(self, node: Optional[Node]) -> List[str]:
        if node is None:
            return []
        return [self.text(child) for child in node.named_children if child.type in NAME_NODES]

    @staticmethod
    def lines(node: Node) -> Dict[str, int]:
        return {'start_line': node.start_point[0] + 1, 'end_line': node.end_point[0] + 1}

    # -- declarations -------------------------------------------------------

    def _class(self, node: Node, namespace: str) -> Optional[ClassInfo]:
        short_name = self.text(node.child_by_field_name('name'))
        if not short_name:
            return None

        kind = DECLARATION_KINDS[node.type]
        fqn = f"{namespace}\\{short_name}" if namespace else short_name
        modifiers = self.modifiers(node)

        info = ClassInfo(
            name=fqn,
            short_name=short_name,
            namespace=namespace,
            kind=kind,
            file=self.file,
            is_abstract='abstract' in modifiers,
            is_final='final' in modifiers,
            is_readonly='readonly' in modifiers,
            docblock=self.docblock(node),
            **self.lines(node),
        )

        for child in node.named_children:
            if child.type == 'base_clause':
                bases = [self.resolve_name(name, namespace) for name in self.names_in(child)]
                if kind == 'interface':
                    # Interfaces extend other interfaces
                    info.interfaces.extend(bases)
                elif bases:
                    info.parent = bases[0]
            elif child.type == 'class_interface_clause':
                info.interfaces.extend(self.resolve_name(name, namespace) for name in self.names_in(child))

        body = node.child_by_field_name('body')
        if body is not None:
            self._members(body, info, namespace)
        return info

    def _members(self, body: Node, info: ClassInfo, namespace: str):
        for member in body.named_children:
            member_type = member.type
            if member_type == 'method_declaration':
                method = self._method(member, info, namespace)
                info.methods.append(method)
                if method.name.lower() == '__construct':
                    info.properties.extend(self._promoted_properties(member, method, info))
            elif member_type == 'property_declaration':
                info.properties.extend(self._properties(member, info, namespace))
            elif member_type == 'const_declaration':
                info.constants.extend(self._constants(member, info))
            elif member_type == 'enum_case':
                info.constants.append(ConstantInfo(
                    name=self.text(member.child_by_field_name('name')),
                    declaring_class=info.name,
                    value=self.text(member.child_by_field_name('value')) or None,
                    docblock=self.docblock(member),
                    **self.lines(member),
                ))
            elif member_type == 'use_declaration':
                info.traits.extend(self.resolve_name(name, namespace) for name in self.names_in(member))

    def _method(self, node: Node, info: ClassInfo, namespace: str) -> MethodInfo:
        modifiers = self.modifiers(node)
        parameters = []
        params_node = node.child_by_field_name('parameters')
        if params_node is not None:
            parameters = [self._parameter(child, namespace) for child in params_node.named_children
                          if child.type.endswith('_parameter')]

        return MethodInfo(
            name=self.text(node.child_by_field_name('name')),
            declaring_class=info.name,
            visibility=self.visibility(modifiers),
            is_static='static' in modifiers,
            # Interface methods are implicitly abstract
            is_abstract='abstract' in modifiers or info.is_interface,
            is_final='final' in modifiers,
            parameters=parameters,
            return_type=self.resolve_type(self.text(node.child_by_field_name('return_type')), namespace),
            docblock=self.docblock(node),
            **self.lines(node),
        )

    def _parameter(self, node: Node, namespace: str) -> ParameterInfo:
        name_node = node.child_by_field_name('name')
        if name_node is None:
            name_node = next((c for c in node.named_children if c.type == 'variable_name'), None)
        default = node.child_by_field_name('default_value')
        return ParameterInfo(
            name=self.text(name_node).lstrip('$'),
            type=self.resolve_type(self.text(node.child_by_field_name('type')), namespace),
            default=self.text(default) if default is not None else None,
            is_variadic=node.type == 'variadic_parameter',
            by_reference=any(child.type in ('reference_modifier', '&') for child in node.children),
            is_promoted=node.type == 'property_promotion_parameter',
        )

    def _promoted_properties(self, constructor: Node, method: MethodInfo, info: ClassInfo) -> List[PropertyInfo]:
        params_node = constructor.child_by_field_name('parameters')
        if params_node is None:
            return []
        properties = []
        promoted_nodes = [c for c in params_node.named_children if c.type == 'property_promotion_parameter']
        promoted_params = [p for p in method.parameters if p.is_promoted]
        for node, param in zip(promoted_nodes, promoted_params):
            modifiers = self.modifiers(node)
            properties.append(PropertyInfo(
                name=param.name,
                declaring_class=info.name,
                visibility=self.visibility(modifiers),
                is_readonly='readonly' in modifiers or info.is_readonly,
                type=param.type,
                **self.lines(node),
            ))
        return properties

    def _properties(self, node: Node, info: ClassInfo, namespace: str) -> List[PropertyInfo]:
        modifiers = self.modifiers(node)
        type_text = self.resolve_type(self.text(node.child_by_field_name('type')), namespace)
        docblock = self.docblock(node)

        properties = []
        for element in node.named_children:
            if element.type != 'property_element':
                continue
            name_node = element.child_by_field_name('name')
            if name_node is None:
                name_node = next((c for c in element.named_children if c.type == 'variable_name'), None)
            default = element.child_by_field_name('default_value')
            if default is None:
                initializer = next((c for c in element.named_children if c.type == 'property_initializer'), None)
                if initializer is not None and initializer.named_child_count:
                    default = initializer.named_children[-1]

            properties.append(PropertyInfo(
                name=self.text(name_node).lstrip('$'),
                declaring_class=info.name,
                visibility=self.visibility(modifiers),
                is_static='static' in modifiers,
                is_readonly='readonly' in modifiers or info.is_readonly,
                type=type_text,
                default=self.text(default) if default is not None else None,
                has_default=default is not None,
                docblock=docblock,
                **self.lines(node),
            ))
        return properties

    def _constants(self, node: Node, info: ClassInfo) -> List[ConstantInfo]:
        modifiers = self.modifiers(node)
        docblock = self.docblock(node)
        constants = []
        for element in node.named_children:
            if element.type != 'const_element':
                continue
            parts = element.named_children
            if not parts:
                continue
            value = self.text(parts[-1]) if len(parts) > 1 else None
            constants.append(ConstantInfo(
                name=self.text(parts[0]),
                declaring_class=info.name,
                value=value,
                visibility=self.visibility(modifiers),
                docblock=docblock,
                **self.lines(node),
            ))
        return constants


class SourceReflector:
    """Reflects PHP declarations from source files without executing them."""

    def __init__(self):
        self.parser = LanguageParser('php')

    def reflect_source(self, source: str | bytes, file: str = "") -> List[ClassInfo]:
        """Extract every class-like declaration from a source string.

        Args:
            source: PHP source
            file: Path recorded on the returned ClassInfo objects

        Returns:
            Declarations in source order

        Raises:
            TokenizeError: If a str source cannot be encoded as UTF-8
        """
        data = encode_source(source)
        tree = self.parser.parse_source(data)
        aliases = build_alias_map(tokens_from_tree(data, tree))
        return list(_FileWalker(data, file, aliases).collect(tree.root_node))

    def reflect_file(self, file_path: str | Path) -> List[ClassInfo]:
        """Extract declarations from a file.

        Raises:
            MalformedInputError: If the file cannot be read
        """
        path = Path(file_path)
        try:
            content = path.read_bytes()
        except OSError as e:
            raise MalformedInputError(f"Cannot read {path}: {e}") from e
        return self.reflect_source(content, str(path))
