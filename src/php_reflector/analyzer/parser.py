"""Tree-sitter parser for PHP source analysis."""
from typing import Optional
from tree_sitter import Language, Parser, Tree
import tree_sitter_php as tsphp


class LanguageParser:
    """PHP parser using tree-sitter v0.22+ API."""

    SUPPORTED_LANGUAGES = {
        '.php': 'php',
    }

    _language: Optional[Language] = None

    def __init__(self, language: str = 'php'):
        """Initialize parser for the given language.

        Args:
            language: Currently only 'php'

        Raises:
            ValueError: If language is not supported
        """
        self.language = language
        self.parser = self._create_parser()

    def _create_parser(self) -> Parser:
        """Factory method using tree-sitter v0.22+ API.

        The grammar object is shared by every parser instance; tree_sitter_php
        exposes both `language_php` (PHP with inline HTML) and
        `language_php_only`, and source files need the former.

        Returns:
            Configured Parser instance

        Raises:
            ValueError: If language is not supported
        """
        if self.language != 'php':
            raise ValueError(f"Unsupported language: {self.language}")

        if LanguageParser._language is None:
            LanguageParser._language = Language(tsphp.language_php())

        return Parser(LanguageParser._language)

    def parse_source(self, source: bytes) -> Tree:
        """Parse raw source bytes.

        tree-sitter never fails on syntax errors; broken regions show up as
        ERROR or missing nodes inside the returned tree.
        """
        return self.parser.parse(source)
