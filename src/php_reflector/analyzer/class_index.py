"""Class enumeration and inheritance graph for a PHP project.

Edges of the graph point from a class to what it builds on:
(child, parent, relation='extends'), (class, interface, relation='implements')
and (class, trait, relation='uses'). Interfaces extending interfaces use
'implements' edges. Nodes are keyed by lowercased FQN since PHP class names
are case-insensitive; every edge also keeps the target name as written.
"""
import logging
from pathlib import Path
from typing import Dict, FrozenSet, Iterator, List, Optional, Set, Tuple

import networkx as nx

from php_reflector.analyzer.autoload import ComposerAutoload
from php_reflector.analyzer.files import SourceFinder
from php_reflector.analyzer.reflection import ClassInfo, MethodInfo, SourceReflector
from php_reflector.errors import MalformedInputError

logger = logging.getLogger(__name__)

INHERITANCE = frozenset({'extends'})
TYPE_RELATIONS = frozenset({'extends', 'implements'})
MIXINS = frozenset({'uses'})


def class_key(name: str) -> str:
    return name.strip().lstrip('\\').lower()


def normalize_class_name(name: str) -> str:
    """FQN without surrounding whitespace or a leading separator, case kept."""
    return name.strip().lstrip('\\')


class ClassIndex:
    """Lazily built registry of the classes declared in a project.

    Directories are indexed on demand. A name that was not met yet is looked
    up through the Composer PSR-4 autoload map first; only when that fails is
    the whole project (vendor included) indexed, once.
    """

    def __init__(
        self,
        project_root: str | Path = ".",
        vendor_dir: str = "vendor",
        finder: Optional[SourceFinder] = None,
        reflector: Optional[SourceReflector] = None,
        autoload: Optional[ComposerAutoload] = None,
    ):
        self.finder = finder or SourceFinder(project_root, vendor_dir)
        self.reflector = reflector or SourceReflector()
        self.autoload = autoload or ComposerAutoload(self.finder.project_root, self.finder.vendor_dir)
        self.graph = nx.DiGraph()
        self._classes: Dict[str, ClassInfo] = {}
        self._by_file: Dict[Path, List[ClassInfo]] = {}
        self._missing: Set[str] = set()
        self._fully_indexed = False

    @property
    def project_root(self) -> Path:
        return self.finder.project_root

    # -- indexing -----------------------------------------------------------

    def add(self, info: ClassInfo):
        """Register one declaration and its outgoing edges (first declaration wins)."""
        key = class_key(info.name)
        if key in self._classes:
            return
        self._classes[key] = info
        self._missing.discard(key)
        self.graph.add_node(key, name=info.name, kind=info.kind, file=info.file)

        if info.parent:
            self.graph.add_edge(key, class_key(info.parent), relation='extends', target=info.parent)
        for interface in info.interfaces:
            self.graph.add_edge(key, class_key(interface), relation='implements', target=interface)
        for trait in info.traits:
            self.graph.add_edge(key, class_key(trait), relation='uses', target=trait)

    def index_file(self, file_path: str | Path) -> List[ClassInfo]:
        """Reflect one file (memoized per path).

        Raises:
            MalformedInputError: If the file cannot be read
        """
        path = Path(file_path).resolve()
        if path in self._by_file:
            return self._by_file[path]

        classes = self.reflector.reflect_file(path)
        self._by_file[path] = classes
        for info in classes:
            self.add(info)
        return classes

    def index_files(self, files: List[Path]) -> List[ClassInfo]:
        """Reflect many files, skipping the unreadable ones."""
        classes: List[ClassInfo] = []
        for file_path in files:
            try:
                classes.extend(self.index_file(file_path))
            except MalformedInputError as e:
                logger.warning("Skipping unreadable file %s: %s", file_path, e)
        return classes

    def index_directory(self, path: str | Path, recursive: bool = True, exclude_vendor: bool = False) -> List[ClassInfo]:
        """Classes declared under a directory, in sorted file order.

        Raises:
            NotFoundError: If the directory does not exist
        """
        files = self.finder.discover(path, recursive=recursive, exclude_vendor=exclude_vendor)
        return self.index_files(files)

    def _index_project(self):
        if self._fully_indexed:
            return
        self._fully_indexed = True
        logger.debug("Indexing whole project under %s", self.project_root)
        self.index_directory(self.project_root, exclude_vendor=False)

    def _load(self, name: str) -> bool:
        """Make sure `name` is indexed if it is declared anywhere in the project."""
        key = class_key(name)
        if key in self._classes:
            return True
        if key in self._missing:
            return False

        for candidate in self.autoload.candidates(name):
            self.index_files([candidate])
            if key in self._classes:
                return True

        self._index_project()
        if key in self._classes:
            return True
        self._missing.add(key)
        return False

    # -- lookups ------------------------------------------------------------

    def get(self, name: str) -> Optional[ClassInfo]:
        """Find a class by FQN, indexing its file (or the project) if it is not known yet."""
        self._load(name)
        return self._classes.get(class_key(name))

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None

    def _target_name(self, source: str, target: str) -> str:
        return self.graph.nodes[target].get('name', self.graph.edges[source, target]['target'])

    def _reachable(self, info: ClassInfo, relations: FrozenSet[str]) -> List[Tuple[str, str]]:
        """Graph edges reachable from `info` over `relations`, breadth first.

        Targets met for the first time are indexed and the walk is redone,
        so edges of newly indexed classes are followed too.
        """
        key = class_key(info.name)
        if key not in self.graph:
            return []

        view = nx.subgraph_view(
            self.graph,
            filter_edge=lambda u, v: self.graph.edges[u, v]['relation'] in relations,
        )
        while True:
            edges = list(nx.bfs_edges(view, key))
            pending = [
                (u, v) for u, v in edges
                if v not in self._classes and v not in self._missing
            ]
            if not pending:
                return edges
            for u, v in pending:
                self._load(self.graph.edges[u, v]['target'])

    def parent_chain(self, info: ClassInfo) -> List[ClassInfo]:
        """Known ancestors, nearest first (stops at the first unknown parent)."""
        chain: List[ClassInfo] = []
        for _, parent in self._reachable(info, INHERITANCE):
            if parent not in self._classes:
                break
            chain.append(self._classes[parent])
        return chain

    def interface_names(self, info: ClassInfo) -> List[str]:
        """All implemented interfaces: own, inherited from parents, and interface parents.

        Unknown interfaces are still reported by name; their own parents
        cannot be followed.
        """
        return [
            self._target_name(source, target)
            for source, target in self._reachable(info, TYPE_RELATIONS)
            if self.graph.edges[source, target]['relation'] == 'implements'
        ]

    def trait_names(self, info: ClassInfo) -> List[str]:
        """Traits used directly by the class."""
        return list(info.traits)

    def trait_closure(self, info: ClassInfo) -> List[ClassInfo]:
        """Known traits used by the class, including traits used by those traits."""
        return [
            self._classes[target]
            for _, target in self._reachable(info, MIXINS)
            if target in self._classes
        ]

    def iter_lineage(self, info: ClassInfo, include_interfaces: bool = True) -> Iterator[ClassInfo]:
        """The class, its traits, then each ancestor with its traits, then interfaces."""
        for current in [info] + self.parent_chain(info):
            yield current
            yield from self.trait_closure(current)
        if include_interfaces:
            for name in self.interface_names(info):
                interface = self.get(name)
                if interface is not None:
                    yield interface

    def find_method(self, info: ClassInfo, method_name: str) -> Optional[MethodInfo]:
        for current in self.iter_lineage(info):
            method = current.get_method(method_name)
            if method is not None:
                return method
        return None

    def has_method(self, info: ClassInfo, method_name: str) -> bool:
        """Method declared on the class, its traits or any known ancestor."""
        return self.find_method(info, method_name) is not None
