"""Typer-based CLI for CodeSage code-quality analysis."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator, List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .config import load_config
from .engine import AnalysisEngine
from .errors import ConfigurationError
from .models import AnalysisReport, Severity, SourceUnit
from .parser import LANGUAGE_MAP, SourceParser, language_for_path
from .sarif import to_sarif_json
from .scoring import interpret_maintainability

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    help="🔎 CodeSage: multi-language code-quality analysis.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

SKIP_DIRS = {
    ".venv", "venv", "__pycache__", "node_modules", ".git", "site-packages",
    ".tox", ".pytest_cache", "build", "dist", ".mypy_cache", ".ruff_cache",
    "htmlcov", ".eggs", "target", ".codesage",
}

OUTPUT_FORMATS = ("text", "json", "sarif")

_SEVERITY_STYLE = {
    Severity.P0: "bold red",
    Severity.P1: "red",
    Severity.P2: "yellow",
    Severity.P3: "dim",
}


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"CodeSage v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    )
):
    """CodeSage: complexity, duplication, maintainability and debt in one pass."""
    pass


def _iter_source_files(paths: List[Path], language: Optional[str]) -> Iterator[Path]:
    for path in paths:
        if path.is_file():
            yield path
            continue
        for file_path in sorted(path.rglob("*")):
            if not file_path.is_file() or any(part in SKIP_DIRS for part in file_path.parts):
                continue
            if language is not None or file_path.suffix.lower() in LANGUAGE_MAP:
                yield file_path


def _load_units(paths: List[Path], language: Optional[str]) -> List[SourceUnit]:
    units: List[SourceUnit] = []
    for file_path in _iter_source_files(paths, language):
        lang = language or language_for_path(str(file_path))
        if lang is None:
            err_console.print(f"[yellow]⚠[/yellow] Skipping {file_path}: unknown language")
            continue
        text = file_path.read_text(encoding="utf-8", errors="replace")
        units.append(SourceUnit(path=file_path.as_posix(), text=text, language=lang))
    return units


def _render(report: AnalysisReport, limit: int) -> None:
    mi = report.maintainability
    counts = report.issue_counts
    console.print(Panel(
        f"Maintainability: [bold]{mi:.2f}[/bold] ({interpret_maintainability(mi)})\n"
        f"Technical debt:  [bold]{report.debt_minutes}[/bold] min\n"
        f"Issues:          "
        + "  ".join(f"{sev}: {n}" for sev, n in counts.items()),
        title="CodeSage report",
        expand=False,
    ))

    if report.files:
        files = Table(title="\nFiles", show_header=True)
        files.add_column("File", style="cyan")
        files.add_column("LOC", justify="right")
        files.add_column("Avg CC", justify="right")
        files.add_column("Max CC", justify="right")
        files.add_column("MI", justify="right")
        files.add_column("Dup", justify="right")
        files.add_column("Debt", justify="right")
        for path, metrics in report.files.items():
            cx = report.complexity[path]
            files.add_row(
                path,
                str(metrics.lines_of_code),
                f"{cx.average_cyclomatic:.2f}",
                str(cx.max_cyclomatic),
                f"{metrics.maintainability:.2f}",
                f"{metrics.duplicated_ratio:.0%}",
                f"{metrics.debt_minutes}m",
            )
        console.print(files)

    if report.issues:
        issues = Table(title="\nIssues", show_header=True)
        issues.add_column("Sev", width=4)
        issues.add_column("Location", style="cyan")
        issues.add_column("Rule")
        issues.add_column("Message", min_width=30)
        for issue in report.issues[:limit]:
            style = _SEVERITY_STYLE[issue.severity]
            issues.add_row(
                f"[{style}]{issue.severity.value}[/{style}]",
                str(issue.location),
                issue.rule_id,
                issue.message,
            )
        console.print(issues)
        if len(report.issues) > limit:
            console.print(f"[dim]… {len(report.issues) - limit} more issue(s) not shown[/dim]")

    for warning in report.warnings:
        console.print(f"[yellow]⚠[/yellow] {warning.path}: {warning.message}")


@app.command("analyze")
def analyze(
    paths: List[Path] = typer.Argument(..., exists=True, help="Files or directories to analyze."),
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", help="TOML configuration file (default: ~/.codesage/config.toml)."
    ),
    language: Optional[str] = typer.Option(
        None, "--language", "-l", help="Force a language instead of detecting it from the extension."
    ),
    fmt: str = typer.Option("text", "--format", "-f", help="Output format: text, json or sarif."),
    as_json: bool = typer.Option(False, "--json", help="Shorthand for --format json."),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Write the json or sarif report to a file instead of stdout."
    ),
    lenient: bool = typer.Option(
        False, "--lenient", help="Analyze files with syntax errors instead of skipping them."
    ),
    limit: int = typer.Option(50, "--limit", help="Maximum number of issues to display."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
):
    """Analyze source files and report complexity, duplication and issues."""
    fmt = "json" if as_json else fmt.lower()
    if fmt not in OUTPUT_FORMATS:
        raise typer.BadParameter(
            f"Format must be one of: {', '.join(OUTPUT_FORMATS)}", param_hint="--format"
        )
    if output is not None and fmt == "text":
        raise typer.BadParameter("--output needs --format json or sarif", param_hint="--output")

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=err_console, show_path=False)],
        )

    try:
        analysis_config = load_config(config_path)
    except ConfigurationError as exc:
        raise typer.BadParameter(str(exc), param_hint="--config")

    units = _load_units(paths, language)
    if not units:
        err_console.print("[red]✗[/red] No supported source files found.")
        raise typer.Exit(code=2)

    engine = AnalysisEngine(analysis_config, parse=SourceParser(strict=not lenient))
    report = engine.analyze(units)

    if fmt == "text":
        _render(report, limit)
    else:
        document = report.to_json() if fmt == "json" else to_sarif_json(report)
        if output is None:
            typer.echo(document)
        else:
            output.write_text(document + "\n", encoding="utf-8")
            err_console.print(f"[green]✓[/green] Wrote {fmt} report to {output}")

    if report.issue_counts[Severity.P0.value]:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
