"""CLI entry point for caddyfile-syntax."""
from __future__ import annotations

from pathlib import Path
import json
import logging

import click

from .caddyfile_parser import parse, parse_single_directive, tokenize
from .config import LOG_LEVEL, OUTPUT_FORMAT, OUTPUT_FORMATS, ParseOptions
from .errors import CaddyfilePermissionError, CaddyfileSyntaxError
from .render import Printer, diagnostics_panel, render_tree, status_line, token_table
from .sources import load_caddyfile, read_caddyfile


def _echo_json(payload: dict) -> None:
    click.echo(json.dumps(payload))


def _load(path: Path | None) -> tuple[Path, str]:
    try:
        return load_caddyfile(path)
    except (FileNotFoundError, CaddyfilePermissionError) as exc:
        raise click.ClickException(str(exc))


@click.group()
@click.version_option(package_name="caddyfile-syntax")
@click.option("--verbose", "-v", is_flag=True, help="Log lexer and parser decisions.")
def main(verbose: bool) -> None:
    """Lex and parse Caddyfiles into syntax trees."""
    level = logging.DEBUG if verbose else getattr(logging, LOG_LEVEL, logging.WARNING)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


@main.command(name="parse")
@click.argument("path", required=False, type=click.Path(path_type=Path))
@click.option("--format", "fmt", type=click.Choice(list(OUTPUT_FORMATS)), default=OUTPUT_FORMAT)
@click.option("--recover/--strict", default=None, help="Keep going after syntax errors.")
def parse_cmd(path: Path | None, fmt: str, recover: bool | None) -> None:
    """Print the syntax tree of a Caddyfile."""
    source, text = _load(path)
    options = ParseOptions() if recover is None else ParseOptions(recover=recover)
    result = parse(text, options)

    if fmt == "json":
        _echo_json(
            {
                "status": "ok" if result.ok else "error",
                "source": str(source),
                "tree": result.tree.to_dict() if result.tree is not None else None,
                "diagnostics": [diagnostic.to_dict() for diagnostic in result.diagnostics],
            }
        )
    elif fmt == "sexp":
        if result.tree is not None:
            click.echo(result.tree.sexp())
        for diagnostic in result.diagnostics:
            click.echo(diagnostic.format(), err=True)
    else:
        printer = Printer()
        if result.tree is not None:
            printer.print(render_tree(result.tree))
        if result.diagnostics:
            printer.print(diagnostics_panel(text, result.diagnostics, title=str(source)))

    if result.diagnostics:
        raise SystemExit(1)


@main.command()
@click.argument("path", required=False, type=click.Path(path_type=Path))
@click.option("--trivia/--no-trivia", default=True, help="Include whitespace, line breaks and comments.")
@click.option("--json", "as_json", is_flag=True, help="Emit tokens as JSON.")
def tokens(path: Path | None, trivia: bool, as_json: bool) -> None:
    """List the tokens of a Caddyfile."""
    _, text = _load(path)
    stream = tokenize(text, recover=True)
    if as_json:
        _echo_json({"tokens": [token.to_dict() for token in stream if trivia or not token.is_trivia]})
        return
    Printer().print(token_table(stream, trivia=trivia))


@main.command()
@click.argument("paths", nargs=-1, required=True, type=click.Path(dir_okay=False, path_type=Path))
@click.option("--max-errors", type=int, default=None, help="Stop after this many errors per file.")
def check(paths: tuple[Path, ...], max_errors: int | None) -> None:
    """Check Caddyfiles for syntax errors."""
    printer = Printer()
    failed = False
    for path in paths:
        try:
            text = read_caddyfile(path)
        except (FileNotFoundError, CaddyfilePermissionError) as exc:
            click.echo(status_line(str(path), False, str(exc)))
            failed = True
            continue
        options = ParseOptions(recover=True)
        if max_errors is not None:
            options.max_errors = max(1, max_errors)
        result = parse(text, options)
        if result.ok:
            click.echo(status_line(str(path), True))
            continue
        failed = True
        click.echo(status_line(str(path), False, f"{len(result.diagnostics)} error(s)"))
        printer.print(diagnostics_panel(text, result.diagnostics, title=str(path)))
    if failed:
        raise SystemExit(1)


@main.command(name="directive")
@click.argument("text")
def directive_cmd(text: str) -> None:
    """Parse a single directive given on the command line."""
    try:
        node = parse_single_directive(text.replace("\\n", "\n"))
    except CaddyfileSyntaxError as exc:
        raise click.ClickException(str(exc))
    click.echo(node.sexp())


if __name__ == "__main__":  # pragma: no cover
    main()
