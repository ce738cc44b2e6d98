"""Class introspection: the API surface of one class as plain dicts.

`describe_class` renders the header shared by class listings and class
detail (file, name, docblock, parent, flags, interfaces, traits).
`ClassInspector` adds the member sections (constants, properties, methods)
with visibility filtering, inheritance and per-section pagination.
"""
import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set

from php_reflector.analyzer.class_index import ClassIndex, class_key
from php_reflector.analyzer.reflection import ClassInfo, DocBlock
from php_reflector.errors import ClassNotFoundError, InvalidParameterError, NotFoundError

logger = logging.getLogger(__name__)

VISIBILITY_LEVELS = ('public', 'protected', 'private', 'all')

SUMMARY_MODE_METHODS_LIMIT = 5


@dataclass
class DocOptions:
    """How docblocks are rendered."""
    enabled: bool = True
    summary_only: bool = True
    include_raw: bool = False

    def render(self, docblock: Optional[DocBlock], detailed: bool = False) -> Optional[Dict]:
        if not self.enabled or docblock is None:
            return None
        return docblock.to_dict(
            summary_only=self.summary_only,
            include_tags=detailed,
            include_raw=self.include_raw,
        )


def parse_visibility(value: str) -> Set[str]:
    """Parse a comma-separated visibility filter.

    Raises:
        InvalidParameterError: On an unknown level
    """
    levels = {level.strip().lower() for level in (value or 'public').split(',') if level.strip()}
    unknown = levels - set(VISIBILITY_LEVELS)
    if unknown:
        raise InvalidParameterError(
            f"Invalid visibility '{value}'. Use a comma list of: {', '.join(VISIBILITY_LEVELS)}"
        )
    return levels or {'public'}


def matches_visibility(visibility: str, levels: Set[str]) -> bool:
    # Asking for private members means asking for everything
    if 'all' in levels or 'private' in levels:
        return True
    return visibility in levels


def apply_pagination(items: List, offset: int, limit: int) -> List:
    if offset > 0 or limit > 0:
        return items[offset:offset + limit] if limit > 0 else items[offset:]
    return items


def describe_class(
    info: ClassInfo,
    index: ClassIndex,
    detailed: bool = False,
    docs: Optional[DocOptions] = None,
    _seen: Optional[Set[str]] = None,
) -> Dict:
    """Header information of a class.

    Args:
        info: Class to describe
        index: Index used to look up the parent, interfaces and traits
        detailed: Include line ranges and docblock tags
        docs: Docblock rendering options (full docblocks when omitted)

    Returns:
        Dict with file, name and whichever of docblock, parent, flags,
        interfaces and traits apply
    """
    docs = docs or DocOptions(summary_only=False)
    seen = set(_seen or ()) | {class_key(info.name)}

    result: Dict = {
        'file': index.finder.relative(info.file) if info.file else None,
        'name': info.name,
    }
    if detailed:
        result['startLine'] = info.start_line
        result['endLine'] = info.end_line

    docblock = docs.render(info.docblock, detailed)
    if docblock:
        result['docblock'] = docblock

    if info.parent:
        parent = index.get(info.parent)
        if parent is not None:
            result['parent'] = {
                'file': index.finder.relative(parent.file) if parent.file else None,
                'name': parent.name,
                'namespace': parent.namespace,
            }
            if detailed:
                result['parent']['startLine'] = parent.start_line
                result['parent']['endLine'] = parent.end_line
            parent_doc = docs.render(parent.docblock, detailed)
            if parent_doc:
                result['parent']['docblock'] = parent_doc
        else:
            result['parent'] = {'file': None, 'name': info.parent, 'namespace': info.parent.rpartition('\\')[0]}

    for flag, enabled in (
        ('isAbstract', info.is_abstract),
        ('isFinal', info.is_final),
        ('isInterface', info.is_interface),
        ('isTrait', info.is_trait),
        ('isEnum', info.is_enum),
    ):
        if enabled:
            result[flag] = True

    if not info.is_trait:
        interfaces = [_describe_related(name, index, docs, seen) for name in index.interface_names(info)]
        if interfaces:
            result['interfaces'] = interfaces

    traits = [_describe_related(name, index, docs, seen) for name in index.trait_names(info)]
    if traits:
        result['traits'] = traits

    return result


def _describe_related(name: str, index: ClassIndex, docs: DocOptions, seen: Set[str]) -> Dict:
    related = index.get(name)
    if related is None or class_key(name) in seen:
        return {'file': None, 'name': name.lstrip('\\')}
    return describe_class(related, index, detailed=False, docs=docs, _seen=seen)


@dataclass
class DetailOptions:
    """Options of a class detail request; defaults match the request defaults."""
    constants: bool = True
    properties: bool = True
    methods: bool = True
    include_inherited: bool = False
    summary: bool = True
    full_docblocks: bool = False
    visibility: str = 'public'
    methods_offset: int = 0
    methods_limit: int = 0
    properties_offset: int = 0
    properties_limit: int = 0
    constants_offset: int = 0
    constants_limit: int = 0
    static_only: bool = False
    summary_mode: bool = False
    raw_docblock: bool = False

    def effective(self) -> 'DetailOptions':
        """Resolve the convenience switches into plain settings."""
        options = replace(self)
        if options.full_docblocks:
            options.summary = False
        if options.summary_mode:
            options.constants = False
            options.properties = False
            options.methods_limit = SUMMARY_MODE_METHODS_LIMIT
            options.include_inherited = False
        return options

    def validate(self):
        """Raises InvalidParameterError on negative pagination or unknown visibility."""
        for name in ('methods_offset', 'methods_limit', 'properties_offset',
                     'properties_limit', 'constants_offset', 'constants_limit'):
            if getattr(self, name) < 0:
                raise InvalidParameterError(f"{name} must not be negative")
        parse_visibility(self.visibility)


@dataclass
class ClassReference:
    """A class named by file path or by fully-qualified name, resolved once."""
    raw: str
    info: ClassInfo

    @classmethod
    def parse(cls, value: str, index: ClassIndex) -> 'ClassReference':
        """Resolve a file path (absolute or project-relative) or an FQN.

        Raises:
            InvalidParameterError: If the value is empty
            NotFoundError: If no class can be found for the value
        """
        value = (value or '').strip()
        if not value:
            raise InvalidParameterError("Class is required")

        file_path = cls._as_file(value, index.project_root)
        if file_path is not None:
            return cls(value, cls._from_file(value, file_path, index))

        info = index.get(value)
        if info is None:
            raise ClassNotFoundError(value)
        return cls(value, info)

    @staticmethod
    def _as_file(value: str, project_root: Path) -> Optional[Path]:
        for candidate in (Path(value), project_root / value):
            try:
                if candidate.is_file():
                    return candidate.resolve()
            except OSError:
                continue
        return None

    @staticmethod
    def _from_file(value: str, file_path: Path, index: ClassIndex) -> ClassInfo:
        classes = index.index_file(file_path)
        if classes:
            return classes[0]

        siblings = index.index_directory(file_path.parent, recursive=False)
        if not siblings:
            raise NotFoundError(f"No classes found in file: {value}")
        raise NotFoundError(f"Class not found in file: {value}")


class ClassInspector:
    """Builds the full class detail response."""

    def __init__(self, index: ClassIndex):
        self.index = index

    def inspect(self, reference: str | ClassReference, options: Optional[DetailOptions] = None) -> Dict:
        """Describe one class with its members.

        Args:
            reference: File path, FQN, or an already resolved ClassReference
            options: Detail options (request defaults when omitted)

        Returns:
            Class header plus constants, properties and methods sections

        Raises:
            InvalidParameterError: On invalid options
            NotFoundError: If the class cannot be found
        """
        options = options or DetailOptions()
        options.validate()
        options = options.effective()

        if not isinstance(reference, ClassReference):
            reference = ClassReference.parse(reference, self.index)
        info = reference.info

        docs = DocOptions(summary_only=options.summary, include_raw=options.raw_docblock)
        levels = parse_visibility(options.visibility)
        lineage = self._lineage(info, options.include_inherited)

        result = describe_class(info, self.index, detailed=True, docs=docs)

        if options.constants:
            constants = self._constants(info, lineage, docs)
            result['constants'] = apply_pagination(constants, options.constants_offset, options.constants_limit)

        if not info.is_interface:
            if options.properties:
                properties = self._properties(info, lineage, docs, levels)
                result['properties'] = apply_pagination(properties, options.properties_offset, options.properties_limit)
            if options.methods:
                methods = self._methods(info, lineage, docs, levels)
                if options.static_only:
                    methods = [method for method in methods if method.get('isStatic')]
                result['methods'] = apply_pagination(methods, options.methods_offset, options.methods_limit)

        return result

    def _lineage(self, info: ClassInfo, include_inherited: bool) -> List[ClassInfo]:
        """Classes whose members count, most specific first.

        Trait members are the class's own members; ancestors and interfaces
        only contribute when inherited members are requested.
        """
        if include_inherited:
            lineage = list(self.index.iter_lineage(info))
        else:
            lineage = [info] + self.index.trait_closure(info)

        unique: List[ClassInfo] = []
        seen: Set[str] = set()
        for current in lineage:
            key = class_key(current.name)
            if key not in seen:
                seen.add(key)
                unique.append(current)
        return unique

    def _declared_by(self, member_class: str, info: ClassInfo, entry: Dict):
        if class_key(member_class) != class_key(info.name):
            entry['declaringClass'] = member_class

    def _constants(self, info: ClassInfo, lineage: Sequence[ClassInfo], docs: DocOptions) -> List[Dict]:
        entries = []
        seen: Set[str] = set()
        for current in lineage:
            for constant in current.constants:
                if constant.name in seen:
                    continue
                seen.add(constant.name)
                entry = {
                    'constantName': constant.name,
                    'value': constant.value,
                    'startLine': constant.start_line,
                    'endLine': constant.end_line,
                }
                self._declared_by(constant.declaring_class, info, entry)
                docblock = docs.render(constant.docblock)
                if docblock:
                    entry['docblock'] = docblock
                entries.append(entry)
        return entries

    def _properties(self, info: ClassInfo, lineage: Sequence[ClassInfo], docs: DocOptions, levels: Set[str]) -> List[Dict]:
        entries = []
        seen: Set[str] = set()
        for current in lineage:
            if current.is_interface:
                continue
            for prop in current.properties:
                if prop.name in seen:
                    continue
                seen.add(prop.name)
                # Private members of ancestors are not part of the subclass
                if current.kind == 'class' and current is not info and prop.visibility == 'private':
                    continue
                if not matches_visibility(prop.visibility, levels):
                    continue

                entry = {
                    'propertyName': prop.name,
                    'type': prop.type,
                    'defaultValue': prop.default if prop.has_default else None,
                    'startLine': prop.start_line,
                    'endLine': prop.end_line,
                }
                if prop.is_static:
                    entry['isStatic'] = True
                entry[f"is{prop.visibility.capitalize()}"] = True
                if prop.is_readonly:
                    entry['isReadonly'] = True
                self._declared_by(prop.declaring_class, info, entry)
                docblock = docs.render(prop.docblock)
                if docblock:
                    entry['docblock'] = docblock
                entries.append(entry)
        return entries

    def _methods(self, info: ClassInfo, lineage: Sequence[ClassInfo], docs: DocOptions, levels: Set[str]) -> List[Dict]:
        entries = []
        seen: Set[str] = set()
        for current in lineage:
            for method in current.methods:
                key = method.name.lower()
                if key in seen:
                    continue
                seen.add(key)
                if current.kind == 'class' and current is not info and method.visibility == 'private':
                    continue
                if not matches_visibility(method.visibility, levels):
                    continue

                entry = {
                    'methodName': method.name,
                    'parameters': [param.name for param in method.parameters],
                    'returnType': method.return_type,
                    'startLine': method.start_line,
                    'endLine': method.end_line,
                }
                if method.is_static:
                    entry['isStatic'] = True
                entry[f"is{method.visibility.capitalize()}"] = True
                if method.is_abstract:
                    entry['isAbstract'] = True
                if method.is_final:
                    entry['isFinal'] = True
                self._declared_by(method.declaring_class, info, entry)
                docblock = docs.render(method.docblock)
                if docblock:
                    entry['docblock'] = docblock
                entries.append(entry)
        return entries
