"""Request adapters for the three analysis tools.

Each tool takes the request fields with their defaults and returns a
ToolResponse: JSON text on success, the error message on failure. Every
ReflectorError is turned into an error response here, so callers (the CLI,
an editor integration, an agent host) only branch on `is_error`.
"""
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Sequence

from php_reflector.analyzer.cache import UsageCache
from php_reflector.analyzer.class_index import ClassIndex
from php_reflector.analyzer.discovery import ClassDiscovery
from php_reflector.analyzer.files import SourceFinder
from php_reflector.analyzer.inspector import ClassInspector, DetailOptions, DocOptions
from php_reflector.analyzer.scanner import ScanOptions, UsageScanner
from php_reflector.config import get_config
from php_reflector.errors import ReflectorError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolResponse:
    is_error: bool
    text: str
    kind: str = "ok"

    @classmethod
    def json(cls, data: Any) -> 'ToolResponse':
        return cls(False, render_json(data))

    @classmethod
    def error(cls, err: ReflectorError) -> 'ToolResponse':
        return cls(True, str(err), err.kind)

    @property
    def data(self) -> Any:
        """Decoded payload of a successful response."""
        if self.is_error:
            raise ValueError(f"Error response has no data: {self.text}")
        return json.loads(self.text)


def render_json(data: Any) -> str:
    # Slashes and non-ASCII stay unescaped, like PHP's JSON_UNESCAPED_* flags
    return json.dumps(data, ensure_ascii=False)


class ReflectorTools:
    """Tool entry points bound to one project."""

    def __init__(
        self,
        project_root: Optional[str | Path] = None,
        vendor_dir: Optional[str] = None,
        cache: Optional[UsageCache] = None,
    ):
        """Initialize tools.

        Args:
            project_root: PHP project root (configured root when omitted)
            vendor_dir: Dependency directory name (configured name when omitted)
            cache: Vendor result cache (configured SQLite file when omitted)
        """
        config = get_config()
        self.project_root = Path(project_root).resolve() if project_root else config.project_root
        self.finder = SourceFinder(self.project_root, vendor_dir or config.vendor_dir)
        if cache is None:
            cache = UsageCache(config.cache_path_for(self.project_root), config.cache_ttl)
        self.cache = cache
        self.scanner = UsageScanner(cache=self.cache, finder=self.finder)

    def _index(self) -> ClassIndex:
        # Source may change between requests; the index lives for one request
        return ClassIndex(finder=self.finder)

    def class_list(
        self,
        path: str,
        has_trait: str = "",
        has_interface: str = "",
        has_method: str = "",
        recursive: bool = True,
        limit: int = 0,
        offset: int = 0,
        raw_docblock: bool = False,
    ) -> ToolResponse:
        """List classes under `path` matching the structural filters."""
        try:
            discovery = ClassDiscovery(self._index())
            classes = discovery.discover(
                path,
                has_trait=has_trait,
                has_interface=has_interface,
                has_method=has_method,
                recursive=recursive,
                limit=limit,
                offset=offset,
            )
            docs = DocOptions(summary_only=False, include_raw=raw_docblock)
            return ToolResponse.json([discovery.describe(info, docs) for info in classes])
        except ReflectorError as e:
            logger.info("class_list failed: %s", e)
            return ToolResponse.error(e)

    def class_usages(
        self,
        target: str,
        path: Optional[str] = None,
        usage_types: Sequence[str] = (),
        exclude_vendor: bool = True,
        flush_cache: bool = False,
        limit: int = 100,
        offset: int = 0,
        group_by_type: bool = False,
        sort_by: str = "line",
    ) -> ToolResponse:
        """Find every usage of `target` under `path`."""
        options = ScanOptions(
            usage_types=tuple(usage_types or ()),
            exclude_vendor=exclude_vendor,
            flush_cache=flush_cache,
            sort_by=sort_by,
            group_by_type=group_by_type,
            limit=limit,
            offset=offset,
        )
        try:
            result = self.scanner.find_usages(target, path or get_config().default_scan_path, options)
            return ToolResponse.json(result.to_dict())
        except ReflectorError as e:
            logger.info("class_usages failed: %s", e)
            return ToolResponse.error(e)

    def class_detail(self, class_: str, **options) -> ToolResponse:
        """Describe one class; keyword options are the DetailOptions fields."""
        try:
            detail_options = DetailOptions(**options)
        except TypeError as e:
            return ToolResponse(True, f"Invalid option: {e}", "invalid_parameter")

        try:
            return ToolResponse.json(ClassInspector(self._index()).inspect(class_, detail_options))
        except ReflectorError as e:
            logger.info("class_detail failed: %s", e)
            return ToolResponse.error(e)

    def close(self):
        self.cache.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def class_list(path: str, **kwargs) -> ToolResponse:
    with ReflectorTools() as tools:
        return tools.class_list(path, **kwargs)


def class_usages(target: str, **kwargs) -> ToolResponse:
    with ReflectorTools() as tools:
        return tools.class_usages(target, **kwargs)


def class_detail(class_: str, **kwargs) -> ToolResponse:
    with ReflectorTools() as tools:
        return tools.class_detail(class_, **kwargs)
