"""
hlgrep — grep with syntax-highlighted, context-padded snippets.

    $ grep -nH pattern -R . | hlgrep
    $ hlgrep pattern [PATH...]
"""

import sys

import click
from rich.console import Console
from rich.markup import escape

from . import __version__
from .config import Config
from .errors import HlgrepError
from .logger import get_logger, setup_logger
from .orchestrator import Orchestrator
from .printer import OutputSink
from .search import MatchBudget, SearchConfig, format_type_list, parse_filesize

EXIT_FOUND = 0
EXIT_NOT_FOUND = 1
EXIT_ERROR = 2

err_console = Console(stderr=True, highlight=False)
_log = get_logger(__name__)


def _report(message: str) -> None:
    err_console.print(f"[bold red]error:[/bold red] {escape(message)}", soft_wrap=True)


def _flag(value: bool):
    """Unset flags stay ``None`` so config-file values are not overridden."""
    return True if value else None


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.argument("pattern", required=False)
@click.argument("paths", nargs=-1, type=click.Path())
@click.option("--min-context", "-c", type=int, default=None, metavar="NUM",
              help="Minimum lines of leading and trailing context surrounding each match [default: 3]")
@click.option("--max-context", "-C", type=int, default=None, metavar="NUM",
              help="Maximum lines of leading and trailing context surrounding each match [default: 6]")
@click.option("--no-grid", "-G", is_flag=True, help="Remove borderlines for more compact output")
@click.option("--grid", "force_grid", is_flag=True, help="Add borderlines to output, wins over --no-grid")
@click.option("--tab", "tab_width", type=int, default=None, metavar="NUM",
              help="Number of spaces for a tab character, 0 passes tabs through [default: 4]")
@click.option("--theme", default=None, metavar="THEME",
              help="Theme for syntax highlighting, see --list-themes")
@click.option("--list-themes", is_flag=True,
              help="List all themes with a sample where 'let' is searched")
@click.option("--printer", "-p", type=click.Choice(["rich", "bat"], case_sensitive=False), default=None,
              help="Rendering backend [default: rich]")
@click.option("--term-width", type=int, default=None, metavar="NUM",
              help="Width of the terminal window in characters")
@click.option("--wrap", "text_wrap", type=click.Choice(["char", "never"], case_sensitive=False), default=None,
              help="Text wrapping: 'char' wraps at any character, 'never' disables wrapping [default: char]")
@click.option("--first-only", "-f", is_flag=True, help="Show only the first snippet per file")
@click.option("--background", "background_color", is_flag=True,
              help="Paint background colors (rich printer only)")
@click.option("--ascii-lines", is_flag=True,
              help="Draw border lines with ASCII characters (rich printer only)")
@click.option("--no-ignore", is_flag=True, help="Search VCS and tool directories such as .git and node_modules")
@click.option("--ignore-case", "-i", is_flag=True, help="Search case insensitively")
@click.option("--smart-case", "-S", is_flag=True,
              help="Search case insensitively if the pattern is all lowercase")
@click.option("--hidden", is_flag=True, help="Search hidden files and directories")
@click.option("--glob", "-g", "globs", multiple=True, metavar="GLOB",
              help="Include files matching GLOB, or exclude them with a leading '!'")
@click.option("--glob-case-insensitive", is_flag=True, help="Match --glob patterns case insensitively")
@click.option("--type", "-t", "types", multiple=True, metavar="TYPE",
              help="Only search files of TYPE, repeatable. See --type-list")
@click.option("--type-not", "-T", "types_not", multiple=True, metavar="TYPE",
              help="Do not search files of TYPE, repeatable")
@click.option("--type-list", is_flag=True, help="Show all supported file types and their globs")
@click.option("--fixed-strings", "-F", is_flag=True, help="Treat the pattern as a literal string")
@click.option("--word-regexp", "-w", is_flag=True, help="Only match at word boundaries")
@click.option("--line-regexp", "-x", is_flag=True, help="Only match whole lines")
@click.option("--invert-match", "-v", is_flag=True, help="Show lines that do not match")
@click.option("--follow", "-L", "follow_symlinks", is_flag=True, help="Follow symbolic links")
@click.option("--multiline", "-U", is_flag=True, help="Allow matches to span lines")
@click.option("--multiline-dotall", is_flag=True, help="Let '.' match newlines with --multiline")
@click.option("--max-count", "-m", type=int, default=None, metavar="NUM",
              help="Stop after NUM matching lines in total, across all files")
@click.option("--max-depth", type=int, default=None, metavar="NUM",
              help="Descend at most NUM directory levels below the given paths")
@click.option("--max-filesize", default=None, metavar="NUM+SUFFIX?",
              help="Ignore files larger than NUM bytes; accepts K, M and G suffixes")
@click.option("--threads", "-j", type=int, default=None, metavar="NUM",
              help="Number of worker threads [default: CPU count]")
@click.option("--verbose", is_flag=True, help="Log progress to stderr")
@click.option("--log-file", default=None, metavar="PATH", help="Also write logs to PATH")
@click.version_option(__version__, prog_name="hlgrep")
def cli(pattern, paths, min_context, max_context, no_grid, force_grid, tab_width, theme, list_themes,
        printer, term_width, text_wrap, first_only, background_color, ascii_lines, no_ignore,
        ignore_case, smart_case, hidden, globs, glob_case_insensitive, fixed_strings, word_regexp,
        line_regexp, invert_match, types, types_not, type_list, follow_symlinks, multiline,
        multiline_dotall, max_count, max_depth, max_filesize, threads, verbose, log_file):
    """Print grep matches as syntax-highlighted code snippets.

    Without PATTERN, reads `grep -nH` output from stdin. With PATTERN,
    searches PATH... (default: current directory) with the built-in search.

    Exits with 0 when something matched, 1 when nothing matched and 2 on error.
    """
    try:
        config = Config.load(".")
        config.apply_overrides(
            min_context=min_context,
            max_context=max_context,
            tab_width=tab_width,
            theme=theme,
            printer=printer,
            term_width=term_width,
            text_wrap=text_wrap,
            first_only=_flag(first_only),
            background_color=_flag(background_color),
            ascii_lines=_flag(ascii_lines),
            max_count=max_count,
            threads=threads,
            verbose=_flag(verbose),
            log_file=log_file,
        )
        logger = setup_logger(verbose=config.verbose, log_file=config.log_file)
        if type_list:
            click.echo(format_type_list(), nl=False)
            sys.exit(EXIT_FOUND)
        options = config.finalize(force_grid=force_grid, no_grid=no_grid)
        logger.info("configuration: %s", config.summary())
        out = config.build_printer(options, OutputSink(sys.stdout))

        if list_themes:
            out.list_themes()
            sys.exit(EXIT_FOUND)

        min_ctx, max_ctx = config.context_bounds()
        orchestrator = Orchestrator(
            out,
            min_ctx,
            max_ctx,
            threads=config.worker_count(),
            budget=MatchBudget(config.max_count),
        )

        if pattern is not None:
            search = SearchConfig(
                pattern=pattern,
                paths=tuple(paths) or (".",),
                case_insensitive=ignore_case,
                smart_case=smart_case,
                fixed_strings=fixed_strings,
                word_regexp=word_regexp,
                line_regexp=line_regexp,
                invert_match=invert_match,
                multiline=multiline,
                multiline_dotall=multiline_dotall,
                hidden=hidden,
                no_ignore=no_ignore,
                follow_symlinks=follow_symlinks,
                globs=tuple(globs),
                glob_case_insensitive=glob_case_insensitive,
                types=tuple(types),
                types_not=tuple(types_not),
                max_depth=max_depth,
                max_filesize=parse_filesize(max_filesize) if max_filesize is not None else None,
            )
            found = orchestrator.run_search(search)
        else:
            stdin = click.get_text_stream("stdin", encoding="utf-8", errors="replace")
            if stdin.isatty():
                raise click.UsageError("no PATTERN given and nothing piped on stdin")
            found = orchestrator.run_stream(stdin)
    except (click.ClickException, click.Abort):
        raise
    except HlgrepError as e:
        _report(str(e))
        sys.exit(EXIT_ERROR)
    except Exception as e:
        _log.debug("unexpected failure", exc_info=True)
        _report(f"unexpected {type(e).__name__}: {e}")
        sys.exit(EXIT_ERROR)

    sys.exit(EXIT_FOUND if found else EXIT_NOT_FOUND)


if __name__ == "__main__":
    cli()
