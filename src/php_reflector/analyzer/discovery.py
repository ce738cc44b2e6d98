"""Class discovery: list classes under a directory matching structural filters."""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from php_reflector.analyzer.class_index import ClassIndex, normalize_class_name
from php_reflector.analyzer.inspector import DocOptions, describe_class
from php_reflector.analyzer.reflection import ClassInfo
from php_reflector.errors import InvalidParameterError, NotFoundError

logger = logging.getLogger(__name__)


@dataclass
class ClassFilters:
    """Structural predicates, ANDed; empty strings disable a filter."""
    has_trait: str = ""
    has_interface: str = ""
    has_method: str = ""

    def is_empty(self) -> bool:
        return not (self.has_trait or self.has_interface or self.has_method)


class ClassDiscovery:
    """Enumerates classes under a path and applies the structural filters."""

    def __init__(self, index: ClassIndex):
        self.index = index

    def matches(self, info: ClassInfo, filters: ClassFilters) -> bool:
        # Trait and interface names must match exactly; method names follow
        # PHP and ignore case
        if filters.has_trait:
            wanted = normalize_class_name(filters.has_trait)
            if wanted not in (normalize_class_name(name) for name in self.index.trait_names(info)):
                return False

        if filters.has_interface:
            wanted = normalize_class_name(filters.has_interface)
            if wanted not in (normalize_class_name(name) for name in self.index.interface_names(info)):
                return False

        if filters.has_method and not self.index.has_method(info, filters.has_method):
            return False

        return True

    def discover(
        self,
        path: str | Path,
        has_trait: str = "",
        has_interface: str = "",
        has_method: str = "",
        recursive: bool = True,
        limit: int = 0,
        offset: int = 0,
    ) -> List[ClassInfo]:
        """Find classes declared under `path`.

        Args:
            path: Directory relative to the project root, or absolute
            has_trait: Keep classes using this trait directly (FQN)
            has_interface: Keep classes implementing this interface, inherited included (FQN)
            has_method: Keep classes having this method, inherited included
            recursive: Descend into subdirectories
            limit: Maximum number of classes (0 = no limit)
            offset: Number of matching classes to skip

        Returns:
            Matching classes in sorted file order

        Raises:
            InvalidParameterError: On negative limit/offset
            NotFoundError: If the directory is missing, holds no classes,
                or nothing matches
        """
        if limit < 0 or offset < 0:
            raise InvalidParameterError("limit and offset must not be negative")

        filters = ClassFilters(
            has_trait=(has_trait or '').strip(),
            has_interface=(has_interface or '').strip(),
            has_method=(has_method or '').strip(),
        )

        classes = self.index.index_directory(path, recursive=recursive)
        if not classes:
            raise NotFoundError("No classes found in the specified path.")

        matched = [info for info in classes if self.matches(info, filters)]
        logger.debug("%d of %d classes under %s match %s", len(matched), len(classes), path, filters)

        if limit > 0:
            matched = matched[offset:offset + limit]
        else:
            matched = matched[offset:]

        if not matched:
            raise NotFoundError("No classes match the given filters.")
        return matched

    def describe(self, info: ClassInfo, docs: Optional[DocOptions] = None) -> Dict:
        """Listing entry for one class: header details with full docblocks."""
        return describe_class(info, self.index, detailed=True, docs=docs or DocOptions(summary_only=False))
