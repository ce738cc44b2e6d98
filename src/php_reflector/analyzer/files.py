"""PHP source file enumeration shared by usage scanning and class discovery."""
import logging
from pathlib import Path
from typing import List

from php_reflector.analyzer.parser import LanguageParser
from php_reflector.errors import NotFoundError

logger = logging.getLogger(__name__)


class SourceFinder:
    """Finds PHP files under a project root and tells vendor code apart."""

    # Never analyzed, whatever the request says
    excluded_dirs = {'.git', '.svn', 'node_modules', '.reflector_cache'}

    def __init__(self, project_root: str | Path = ".", vendor_dir: str = "vendor"):
        """Initialize finder.

        Args:
            project_root: Root of the analyzed PHP project
            vendor_dir: Directory name holding dependency code
        """
        self.project_root = Path(project_root).resolve()
        self.vendor_dir = vendor_dir

    def resolve_dir(self, path: str | Path) -> Path:
        """Resolve a directory given relative to the project root (or absolute).

        Raises:
            NotFoundError: If the directory does not exist
        """
        directory = Path(path)
        if not directory.is_absolute():
            directory = self.project_root / directory
        if not directory.is_dir():
            raise NotFoundError(f"Directory not found: {path}")
        return directory.resolve()

    def is_vendor(self, file_path: str | Path) -> bool:
        """Check if file lives in the dependency directory."""
        path = Path(file_path)
        try:
            parts = path.resolve().relative_to(self.project_root).parts
        except ValueError:
            parts = path.parts
        return self.vendor_dir in parts[:-1]

    def relative(self, file_path: str | Path) -> str:
        """Project-relative POSIX path used in reports (absolute if outside the root)."""
        path = Path(file_path).resolve()
        try:
            return path.relative_to(self.project_root).as_posix()
        except ValueError:
            return path.as_posix()

    def discover(self, path: str | Path, recursive: bool = True, exclude_vendor: bool = True) -> List[Path]:
        """Discover PHP files under a directory.

        Args:
            path: Directory relative to the project root, or absolute
            recursive: Descend into subdirectories; otherwise only files whose
                parent directory is `path` itself
            exclude_vendor: Skip files inside the vendor directory

        Returns:
            Sorted list of file paths (sorted so results never depend on
            filesystem order)

        Raises:
            NotFoundError: If the directory does not exist
        """
        directory = self.resolve_dir(path)
        candidates = directory.rglob('*') if recursive else directory.glob('*')

        files = []
        for file_path in candidates:
            if file_path.suffix.lower() not in LanguageParser.SUPPORTED_LANGUAGES:
                continue
            if not file_path.is_file():
                continue
            rel_parts = file_path.relative_to(directory).parts[:-1]
            if any(part in self.excluded_dirs for part in rel_parts):
                continue
            if exclude_vendor and self.is_vendor(file_path):
                continue
            files.append(file_path)

        files.sort()
        logger.debug("Discovered %d PHP files under %s", len(files), directory)
        return files
