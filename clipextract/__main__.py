"""CLI entry point: python -m clipextract [FILE|-] [options]"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from clipextract import settings

logger = logging.getLogger(__name__)

_FORMATS = ("json", "markdown", "text")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="clipextract",
        description=(
            "Extract the main article and its metadata from a saved web page.\n"
            "Reads markup from FILE (or stdin) and writes the result to stdout."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("file", nargs="?", default="-", metavar="FILE",
                        help="HTML file to read, or '-' for stdin (default: -)")
    parser.add_argument("--url", default="", metavar="URI",
                        help="Base URI of the page (site name, URL parts, image links)")
    parser.add_argument("--title", default="", metavar="FALLBACK",
                        help="Title to use when the page has none")
    parser.add_argument("--format", default="json", choices=_FORMATS,
                        metavar="{json,markdown,text}",
                        help="Output format (default: json)")
    parser.add_argument("--max-content-size", type=int, default=settings.MAX_CONTENT_SIZE,
                        metavar="BYTES",
                        help=f"Size guard in bytes (default: {settings.MAX_CONTENT_SIZE})")
    parser.add_argument("--disallowed-chars", default=settings.DISALLOWED_FILENAME_CHARS,
                        metavar="CHARS",
                        help="Characters replaced in the generated filename "
                             f"(default: {settings.DISALLOWED_FILENAME_CHARS!r})")
    parser.add_argument("--clean-attributes", action="store_true", default=False,
                        help="Strip class/style/id attributes from the content")
    parser.add_argument("--detect-language", action="store_true", default=False,
                        help="Guess the language when the page declares none")
    parser.add_argument("--image-prefix", default="", metavar="PREFIX",
                        help="Prefix for image filenames in markdown output")
    parser.add_argument("--log-level", default=settings.LOG_LEVEL,
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        metavar="{DEBUG,INFO,WARNING,ERROR}",
                        help=f"Logging level (default: {settings.LOG_LEVEL})")
    parser.add_argument("--quiet", action="store_true", default=False,
                        help="Do not print the summary panel on stderr")
    return parser


def _read_input(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding="utf-8", errors="replace")


def _print_summary(article) -> None:
    from rich.console import Console
    from rich.panel import Panel

    console = Console(stderr=True)
    console.print(
        Panel.fit(
            f"[bold cyan]{article.title or '(untitled)'}[/bold cyan]\n"
            f"Byline:     {article.byline or '—'}\n"
            f"Site:       {article.site_name or '—'}\n"
            f"Published:  {article.published_time or '—'}\n"
            f"Language:   {article.lang} ({article.dir})\n"
            f"Length:     {article.length:,} chars\n"
            f"Method:     [green]{article.extraction_method}[/green] "
            f"(score {article.score:.0f})\n"
            f"Filename:   [yellow]{article.filename}[/yellow]"
            + ("\n[red]Input was truncated[/red]" if article.truncated else ""),
            border_style="cyan",
            title="[bold]Extraction[/bold]",
        ),
    )


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.log_level, format=settings.LOG_FORMAT, stream=sys.stderr)

    if args.max_content_size <= 0:
        print("ERROR: --max-content-size must be positive", file=sys.stderr)
        return 1

    try:
        markup = _read_input(args.file)
    except OSError as exc:
        print(f"ERROR: Could not read {args.file}: {exc}", file=sys.stderr)
        return 2

    from clipextract.items import ExtractOptions
    from clipextract.parser import ClipExtractor

    options = ExtractOptions(
        max_content_size=args.max_content_size,
        disallowed_filename_chars=args.disallowed_chars,
        clean_attributes=args.clean_attributes,
        detect_language=args.detect_language,
        image_prefix=args.image_prefix,
    )
    extractor = ClipExtractor(options=options)
    article = extractor.extract(markup, args.url, args.title)

    if args.format == "json":
        output = article.model_dump_json(indent=2)
    elif args.format == "markdown":
        from clipextract.extractors.markdown import article_to_markdown

        output = article_to_markdown(
            article,
            image_prefix=options.image_prefix,
            disallowed_chars=options.disallowed_filename_chars,
        ).markdown
    else:
        output = article.text_content

    sys.stdout.write(output)
    if not output.endswith("\n"):
        sys.stdout.write("\n")

    if not args.quiet:
        _print_summary(article)
    return 0


if __name__ == "__main__":
    sys.exit(main())
