"""Usage scanning orchestrator.

Pipeline per request:
1. Validate parameters (before touching the filesystem)
2. Enumerate PHP files under the scan path (sorted, vendor optionally excluded)
3. Per file: substring pre-filter on the short class name, then tokenize,
   build the namespace context and run the requested detectors. Vendor
   files go through the result cache, project files are always recomputed
4. Stable sort, statistics over the full list, offset/limit, optional grouping
"""
import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, FrozenSet, List, Optional, Sequence

from php_reflector.analyzer.cache import UsageCache
from php_reflector.analyzer.detectors import (
    UsageRecord,
    UsageType,
    normalize_class_name,
    parse_usage_types,
    run_detectors,
    short_class_name,
)
from php_reflector.analyzer.files import SourceFinder
from php_reflector.analyzer.tokenizer import decode_bytes, tokenize
from php_reflector.errors import InvalidParameterError, MalformedInputError

logger = logging.getLogger(__name__)

SORT_KEYS: Dict[str, Callable[[UsageRecord], object]] = {
    'line': lambda record: record.line,
    'file': lambda record: record.file,
    'type': lambda record: record.usage_type.value,
}


@dataclass
class ScanOptions:
    """Knobs of one usage scan; defaults match the class_usages request."""
    usage_types: Sequence[str] = ()
    exclude_vendor: bool = True
    flush_cache: bool = False
    sort_by: str = 'line'
    group_by_type: bool = False
    limit: int = 100
    offset: int = 0


@dataclass
class ScanStats:
    files_scanned: int = 0
    files_matched: int = 0
    scan_time_ms: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            'files_scanned': self.files_scanned,
            'files_matched': self.files_matched,
            'scan_time_ms': self.scan_time_ms,
        }


@dataclass
class ScanStatistics:
    by_type: Dict[str, int] = field(default_factory=dict)
    by_file: Dict[str, int] = field(default_factory=dict)
    most_used_in: Optional[str] = None

    @classmethod
    def from_records(cls, records: Sequence[UsageRecord]) -> 'ScanStatistics':
        """Count usages per type and per file; the first file with the highest count wins."""
        by_type = Counter(record.usage_type.value for record in records)
        by_file = Counter(record.file for record in records)

        most_used_in = None
        max_count = 0
        for file, count in by_file.items():
            if count > max_count:
                max_count = count
                most_used_in = file

        return cls(dict(by_type), dict(by_file), most_used_in)

    def to_dict(self) -> Dict:
        return {
            'by_type': self.by_type,
            'by_file': self.by_file,
            'most_used_in': self.most_used_in,
        }


@dataclass
class ScanResult:
    target: str
    total_usages: int
    scan_stats: ScanStats
    statistics: ScanStatistics
    usages: List[UsageRecord]
    usages_by_type: Optional[Dict[str, List[UsageRecord]]] = None

    def to_dict(self) -> Dict:
        data = {
            'target': self.target,
            'type': 'class',
            'total_usages': self.total_usages,
            'scan_stats': self.scan_stats.to_dict(),
            'statistics': self.statistics.to_dict(),
        }
        if self.usages_by_type is not None:
            data['usages_by_type'] = {
                usage_type: [record.to_dict() for record in records]
                for usage_type, records in self.usages_by_type.items()
            }
        else:
            data['usages'] = [record.to_dict() for record in self.usages]
        return data


def analyze_source(source: str | bytes, target: str, usage_types: FrozenSet[UsageType] = frozenset()) -> List[UsageRecord]:
    """Tokenize one file and run the selected detectors (records carry no file path)."""
    tokens = tokenize(source)
    return run_detectors(tokens, target, usage_types=tuple(usage_types))


def sort_usages(records: Sequence[UsageRecord], sort_by: str) -> List[UsageRecord]:
    """Stable sort; ties keep discovery order."""
    return sorted(records, key=SORT_KEYS[sort_by])


def paginate(records: Sequence[UsageRecord], offset: int, limit: int) -> List[UsageRecord]:
    """records[offset:offset + limit]; a limit of 0 means no limit."""
    if limit > 0:
        return list(records[offset:offset + limit])
    return list(records[offset:])


def group_by_type(records: Sequence[UsageRecord]) -> Dict[str, List[UsageRecord]]:
    grouped: Dict[str, List[UsageRecord]] = {}
    for record in records:
        grouped.setdefault(record.usage_type.value, []).append(record)
    return grouped


class UsageScanner:
    """Finds every usage of one class across a directory of PHP files."""

    def __init__(
        self,
        project_root: str | Path = ".",
        cache: Optional[UsageCache] = None,
        vendor_dir: str = "vendor",
        finder: Optional[SourceFinder] = None,
    ):
        """Initialize scanner.

        Args:
            project_root: Root of the PHP project; report paths are relative to it
            cache: Result cache for vendor files (in-memory cache when omitted)
            vendor_dir: Directory name holding dependency code
            finder: Custom file finder (built from project_root/vendor_dir by default)
        """
        self.finder = finder or SourceFinder(project_root, vendor_dir)
        self.cache = cache if cache is not None else UsageCache(':memory:')

    @staticmethod
    def validate(target: str, options: ScanOptions) -> FrozenSet[UsageType]:
        """Check request parameters.

        Returns:
            The requested usage types

        Raises:
            InvalidParameterError: On an empty target, unknown usage type or
                sort key, or a negative limit/offset
        """
        if not normalize_class_name(target or ''):
            raise InvalidParameterError("Target class is required")
        if options.sort_by not in SORT_KEYS:
            raise InvalidParameterError(
                f"Invalid sort_by '{options.sort_by}'. Use one of: {', '.join(SORT_KEYS)}"
            )
        if options.limit < 0:
            raise InvalidParameterError("limit must be zero (unlimited) or positive")
        if options.offset < 0:
            raise InvalidParameterError("offset must not be negative")
        return parse_usage_types(options.usage_types)

    def find_usages(self, target: str, path: str | Path = 'app', options: Optional[ScanOptions] = None) -> ScanResult:
        """Scan `path` for usages of `target`.

        Args:
            target: Fully-qualified class name, e.g. App\\Models\\User
            path: Directory to scan, relative to the project root
            options: Scan options (defaults when omitted)

        Returns:
            ScanResult with the paginated usages and full-set statistics

        Raises:
            InvalidParameterError: On invalid parameters (no I/O happened)
            NotFoundError: If the scan directory does not exist
            MalformedInputError: If no file under the directory could be read
        """
        options = options or ScanOptions()
        usage_types = self.validate(target, options)
        target = target.strip()
        started = time.perf_counter()

        if options.flush_cache:
            self.cache.invalidate_all()

        files = self.finder.discover(path, exclude_vendor=options.exclude_vendor)
        short_name = short_class_name(target)

        stats = ScanStats(files_scanned=len(files))
        unreadable = 0
        all_usages: List[UsageRecord] = []

        for file_path in files:
            try:
                content = file_path.read_bytes()
            except OSError as e:
                logger.warning("Skipping unreadable file %s: %s", file_path, e)
                unreadable += 1
                continue

            # Cheap rejection before tokenizing
            if short_name not in decode_bytes(content):
                continue

            try:
                if self.finder.is_vendor(file_path):
                    records = self._analyze_vendor_file(content, target, usage_types)
                else:
                    records = analyze_source(content, target, usage_types)
            except (MalformedInputError, ValueError) as e:
                logger.warning("Skipping file that failed to tokenize %s: %s", file_path, e)
                unreadable += 1
                continue

            if records:
                stats.files_matched += 1
                relative = self.finder.relative(file_path)
                all_usages.extend(record.with_file(relative) for record in records)

        if files and unreadable == len(files):
            raise MalformedInputError(f"None of the {len(files)} PHP files under '{path}' could be read")

        all_usages = sort_usages(all_usages, options.sort_by)
        stats.scan_time_ms = int((time.perf_counter() - started) * 1000)
        statistics = ScanStatistics.from_records(all_usages)
        page = paginate(all_usages, options.offset, options.limit)

        return ScanResult(
            target=target,
            total_usages=len(all_usages),
            scan_stats=stats,
            statistics=statistics,
            usages=page,
            usages_by_type=group_by_type(page) if options.group_by_type else None,
        )

    def _analyze_vendor_file(self, content: bytes, target: str, usage_types: FrozenSet[UsageType]) -> List[UsageRecord]:
        key = UsageCache.make_key(content, target, [usage_type.value for usage_type in usage_types])
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Vendor cache hit: %s", key)
            return [UsageRecord.from_dict(item) for item in cached]

        records = analyze_source(content, target, usage_types)
        self.cache.put(key, [record.to_dict() for record in records])
        return records
