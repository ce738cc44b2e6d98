"""Composer PSR-4 autoload map: where a class should be declared.

Read from the project's composer.json (autoload and autoload-dev) and from
the installed packages list Composer writes to vendor/composer/installed.json.
"""
import json
import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class ComposerAutoload:
    """PSR-4 prefix to directory map of a project and its installed packages."""

    def __init__(self, project_root: str | Path, vendor_dir: str = "vendor"):
        """Initialize autoload map (loaded on first lookup).

        Args:
            project_root: Directory holding composer.json
            vendor_dir: Composer vendor directory name
        """
        self.project_root = Path(project_root)
        self.vendor_dir = vendor_dir
        self._roots: Optional[List[Tuple[str, Path]]] = None

    def candidates(self, class_name: str) -> List[Path]:
        """Existing files that PSR-4 maps `class_name` to, longest prefix first."""
        name = class_name.strip().lstrip('\\')
        found = []
        for prefix, base in self.roots():
            if not name.startswith(prefix):
                continue
            path = base / (name[len(prefix):].replace('\\', '/') + '.php')
            if path.is_file():
                found.append(path)
        return found

    def roots(self) -> List[Tuple[str, Path]]:
        if self._roots is None:
            roots = self._project_roots() + self._package_roots()
            # Most specific namespace prefix wins, as in Composer's ClassLoader
            roots.sort(key=lambda root: len(root[0]), reverse=True)
            self._roots = roots
            logger.debug("Loaded %d PSR-4 roots under %s", len(roots), self.project_root)
        return self._roots

    def _project_roots(self) -> List[Tuple[str, Path]]:
        data = self._read_json(self.project_root / 'composer.json')
        if not isinstance(data, dict):
            return []
        roots = []
        for section in ('autoload', 'autoload-dev'):
            roots.extend(_psr4_entries(data.get(section), self.project_root))
        return roots

    def _package_roots(self) -> List[Tuple[str, Path]]:
        composer_dir = self.project_root / self.vendor_dir / 'composer'
        data = self._read_json(composer_dir / 'installed.json')

        # Composer 2 wraps the list in {"packages": [...]}, Composer 1 does not
        if isinstance(data, dict):
            packages = data.get('packages', [])
        elif isinstance(data, list):
            packages = data
        else:
            return []

        roots = []
        for package in packages:
            if not isinstance(package, dict):
                continue
            install_path = package.get('install-path')
            if install_path:
                package_dir = (composer_dir / install_path).resolve()
            elif package.get('name'):
                package_dir = self.project_root / self.vendor_dir / package['name']
            else:
                continue
            roots.extend(_psr4_entries(package.get('autoload'), package_dir))
        return roots

    def _read_json(self, path: Path):
        if not path.exists():
            return None
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable %s: %s", path, e)
            return None


def _psr4_entries(autoload: Optional[Dict], base: Path) -> List[Tuple[str, Path]]:
    """(namespace prefix, directory) pairs of one autoload section."""
    if not isinstance(autoload, dict):
        return []
    psr4 = autoload.get('psr-4')
    if not isinstance(psr4, dict):
        return []

    entries = []
    for prefix, directories in psr4.items():
        if isinstance(directories, str):
            directories = [directories]
        for directory in directories:
            entries.append((prefix.lstrip('\\'), base / directory))
    return entries
