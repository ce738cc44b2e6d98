"""PHP Reflector CLI - class discovery, introspection and usage scanning for PHP projects."""
from pathlib import Path
from typing import List, Optional

import typer
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from php_reflector.analyzer.cache import UsageCache
from php_reflector.config import __version__, get_config
from php_reflector.tools import ReflectorTools, ToolResponse
from php_reflector.utils.logger import configure_logging
from php_reflector.utils.safe_console import SafeConsole

app = typer.Typer(
    name="php-reflector",
    help="Static class discovery, introspection and usage scanning for PHP projects",
    add_completion=False
)
# Use SafeConsole for Windows Unicode compatibility
console = SafeConsole(force_terminal=True)

# Cache management sub-command
cache_app = typer.Typer(name="cache", help="Manage the vendor usage cache")

ROOT_OPTION = typer.Option(None, "--root", "-r", help="PHP project root (default: REFLECTOR_PROJECT_ROOT or cwd)")


def _open_tools(root: Optional[str]) -> ReflectorTools:
    if root is not None and not Path(root).is_dir():
        console.print(f"[bold red]Error:[/bold red] Project path does not exist: {escape(root)}")
        raise typer.Exit(1)
    return ReflectorTools(project_root=root)


def _check(response: ToolResponse) -> ToolResponse:
    if response.is_error:
        console.print(f"[bold red]Error:[/bold red] {escape(response.text)}")
        raise typer.Exit(1)
    return response


def _print_usage_table(title: str, usages: List[dict]):
    table = Table(title=title)
    table.add_column("File", style="cyan", no_wrap=False)
    table.add_column("Line", justify="right", style="green")
    table.add_column("Type", style="magenta")
    table.add_column("Code", no_wrap=False)

    for usage in usages:
        code = escape(usage['code'])
        if usage.get('method'):
            code = f"{code}  [dim]({escape(usage['method'])})[/dim]"
        table.add_row(escape(usage['file']), str(usage['line']), usage['usage_type'], code)

    console.print(table)


@app.command()
def usages(
    target: str = typer.Argument(..., help="Fully-qualified class name, e.g. App\\Models\\User"),
    path: Optional[str] = typer.Option(None, "--path", "-p", help="Directory to scan (default: REFLECTOR_SCAN_PATH or 'app')"),
    usage_types: List[str] = typer.Option([], "--type", "-t", help="Usage type to report (repeatable): import, new, static_call, extends, implements, trait, type_hint"),
    include_vendor: bool = typer.Option(False, "--include-vendor", help="Also scan the vendor directory"),
    flush_cache: bool = typer.Option(False, "--flush-cache", help="Invalidate cached vendor results before scanning"),
    limit: int = typer.Option(100, "--limit", help="Maximum usages to return (0 = unlimited)"),
    offset: int = typer.Option(0, "--offset", help="Number of usages to skip"),
    group_by_type: bool = typer.Option(False, "--group-by-type", help="Group returned usages by usage type"),
    sort_by: str = typer.Option("line", "--sort-by", help="Sort key: line, file or type"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw JSON response"),
    root: Optional[str] = ROOT_OPTION,
):
    """Find every usage of a class across a directory of PHP files."""
    with _open_tools(root) as tools:
        response = _check(tools.class_usages(
            target,
            path=path,
            usage_types=usage_types,
            exclude_vendor=not include_vendor,
            flush_cache=flush_cache,
            limit=limit,
            offset=offset,
            group_by_type=group_by_type,
            sort_by=sort_by,
        ))

    if as_json:
        typer.echo(response.text)
        return

    result = response.data
    if 'usages_by_type' in result:
        for usage_type, records in result['usages_by_type'].items():
            _print_usage_table(f"{usage_type} ({len(records)})", records)
    elif result['usages']:
        _print_usage_table(f"Usages of {result['target']}", result['usages'])
    else:
        console.print(f"[yellow]No usages of {escape(result['target'])} found.[/yellow]")

    stats = result['scan_stats']
    statistics = result['statistics']
    console.print(f"\n[bold yellow]Summary:[/bold yellow]")
    console.print(f"  Total usages: {result['total_usages']}")
    console.print(f"  Files scanned: {stats['files_scanned']} (matched: {stats['files_matched']}) in {stats['scan_time_ms']}ms")
    if statistics['by_type']:
        by_type = ', '.join(f"{name}: {count}" for name, count in statistics['by_type'].items())
        console.print(f"  By type: {by_type}")
    if statistics['most_used_in']:
        console.print(f"  Most used in: {escape(statistics['most_used_in'])}")


@app.command()
def classes(
    path: str = typer.Argument(..., help="Directory to list classes from"),
    has_trait: str = typer.Option("", "--trait", help="Only classes using this trait (FQN)"),
    has_interface: str = typer.Option("", "--interface", help="Only classes implementing this interface (FQN)"),
    has_method: str = typer.Option("", "--method", help="Only classes having this method"),
    recursive: bool = typer.Option(True, "--recursive/--no-recursive", help="Descend into subdirectories"),
    limit: int = typer.Option(0, "--limit", help="Maximum classes to return (0 = unlimited)"),
    offset: int = typer.Option(0, "--offset", help="Number of classes to skip"),
    raw_docblock: bool = typer.Option(False, "--raw-docblock", help="Include verbatim docblocks"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw JSON response"),
    root: Optional[str] = ROOT_OPTION,
):
    """List classes under a directory, filtered by trait, interface or method."""
    with _open_tools(root) as tools:
        response = _check(tools.class_list(
            path,
            has_trait=has_trait,
            has_interface=has_interface,
            has_method=has_method,
            recursive=recursive,
            limit=limit,
            offset=offset,
            raw_docblock=raw_docblock,
        ))

    if as_json:
        typer.echo(response.text)
        return

    table = Table(title=f"Classes in {escape(path)}")
    table.add_column("Class", style="cyan")
    table.add_column("File", style="green")
    table.add_column("Parent", style="magenta")
    table.add_column("Summary", no_wrap=False)

    for info in response.data:
        summary = info.get('docblock', {}).get('summary', '')
        parent = info.get('parent', {}).get('name', '')
        table.add_row(escape(info['name']), escape(info['file'] or ''), escape(parent), escape(summary))

    console.print(table)


@app.command()
def detail(
    class_ref: str = typer.Argument(..., help="Class FQN (App\\Models\\User) or file path (app/Models/User.php)"),
    constants: bool = typer.Option(True, "--constants/--no-constants", help="Include constants"),
    properties: bool = typer.Option(True, "--properties/--no-properties", help="Include properties"),
    methods: bool = typer.Option(True, "--methods/--no-methods", help="Include methods"),
    include_inherited: bool = typer.Option(False, "--inherited", help="Include members of parents and interfaces"),
    full_docblocks: bool = typer.Option(False, "--full-docblocks", help="Show descriptions and tags, not only summaries"),
    visibility: str = typer.Option("public", "--visibility", help="public, protected, private, all, or a comma list"),
    methods_offset: int = typer.Option(0, "--methods-offset"),
    methods_limit: int = typer.Option(0, "--methods-limit"),
    static_only: bool = typer.Option(False, "--static-only", help="Only static methods"),
    summary_mode: bool = typer.Option(False, "--summary-mode", help="Compact overview: no constants/properties, five methods"),
    raw_docblock: bool = typer.Option(False, "--raw-docblock", help="Include verbatim docblocks"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw JSON response"),
    root: Optional[str] = ROOT_OPTION,
):
    """Describe one class: parent, interfaces, traits, constants, properties and methods."""
    with _open_tools(root) as tools:
        response = _check(tools.class_detail(
            class_ref,
            constants=constants,
            properties=properties,
            methods=methods,
            include_inherited=include_inherited,
            full_docblocks=full_docblocks,
            visibility=visibility,
            methods_offset=methods_offset,
            methods_limit=methods_limit,
            static_only=static_only,
            summary_mode=summary_mode,
            raw_docblock=raw_docblock,
        ))

    if as_json:
        typer.echo(response.text)
        return

    info = response.data
    header = f"[bold]{escape(info['name'])}[/bold]\n[dim]{escape(info['file'] or '')}:{info['startLine']}-{info['endLine']}[/dim]"
    if info.get('docblock', {}).get('summary'):
        header += f"\n{escape(info['docblock']['summary'])}"
    console.print(Panel(header, title="Class", border_style="blue"))

    if info.get('parent'):
        console.print(f"  extends {escape(info['parent']['name'])}")
    for interface in info.get('interfaces', []):
        console.print(f"  implements {escape(interface['name'])}")
    for trait in info.get('traits', []):
        console.print(f"  uses {escape(trait['name'])}")

    if info.get('constants'):
        table = Table(title="Constants")
        table.add_column("Name", style="cyan")
        table.add_column("Value", style="green")
        for constant in info['constants']:
            table.add_row(escape(constant['constantName']), escape(str(constant['value'])))
        console.print(table)

    if info.get('properties'):
        table = Table(title="Properties")
        table.add_column("Name", style="cyan")
        table.add_column("Type", style="magenta")
        table.add_column("Default", style="green")
        for prop in info['properties']:
            table.add_row(f"${escape(prop['propertyName'])}", escape(prop['type'] or ''), escape(str(prop['defaultValue'] or '')))
        console.print(table)

    if info.get('methods'):
        table = Table(title="Methods")
        table.add_column("Name", style="cyan")
        table.add_column("Parameters")
        table.add_column("Returns", style="magenta")
        table.add_column("Lines", justify="right", style="green")
        for method in info['methods']:
            name = method['methodName']
            if method.get('isStatic'):
                name = f"static {name}"
            params = ', '.join(f"${param}" for param in method['parameters'])
            table.add_row(escape(name), escape(params), escape(method['returnType'] or ''), f"{method['startLine']}-{method['endLine']}")
        console.print(table)


# =========================================================================
# CACHE MANAGEMENT COMMANDS
# =========================================================================

def _open_cache(root: Optional[str]) -> UsageCache:
    config = get_config()
    if root is None:
        return UsageCache(config.cache_path, config.cache_ttl)

    project_path = Path(root).resolve()
    if not project_path.exists():
        console.print(f"[bold red]Error:[/bold red] Project path does not exist: {escape(str(project_path))}")
        raise typer.Exit(1)
    return UsageCache(config.cache_path_for(project_path), config.cache_ttl)


@cache_app.command("clear")
def cache_clear(root: Optional[str] = ROOT_OPTION):
    """Invalidate every cached vendor scan result.

    The next usage scan re-reads all vendor files it needs.
    """
    with _open_cache(root) as cache:
        removed = cache.invalidate_all()

    console.print(f"[green]✓ Cache cleared ({removed} entries removed)[/green]")


@cache_app.command("stats")
def cache_stats(root: Optional[str] = ROOT_OPTION):
    """Display vendor cache statistics."""
    with _open_cache(root) as cache:
        stats = cache.get_cache_stats()

    table = Table(title="Cache Statistics", show_header=True, header_style="bold cyan")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right", style="green")

    table.add_row("Total Entries", str(stats['total_entries']))
    table.add_row("Live Entries", str(stats['live_entries']))
    table.add_row("Expired Entries", str(stats['expired_entries']))
    table.add_row("Tracked Keys", str(stats['tracked_keys']))

    console.print(table)


# Register cache sub-command
app.add_typer(cache_app)


def _version_callback(value: bool):
    if value:
        typer.echo(f"php-reflector {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output to stderr"),
    version: bool = typer.Option(False, "--version", callback=_version_callback, is_eager=True, help="Show the version and exit"),
):
    """PHP Reflector - static class discovery, introspection and usage scanning."""
    configure_logging("DEBUG" if verbose else get_config().log_level)


if __name__ == "__main__":
    app()
