from __future__ import annotations

import logging

import typer
from rich.logging import RichHandler

from . import commands

app = typer.Typer(add_completion=False)


@app.callback()
def main_options(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show info and debug logs."),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )
    # httpx logs every request at info
    logging.getLogger("httpx").setLevel(logging.INFO if verbose else logging.WARNING)


@app.command()
def ping() -> None:
    """
    Sanity check: config files, env wiring, and which backend would be used.
    """
    commands.cmd_ping()


@app.command()
def search(
    query: str,
    news: bool = typer.Option(False, "--news", help="Return news-shaped articles."),
    fact_check: bool = typer.Option(False, "--fact-check", help="Search fact-checking sites for the query."),
) -> None:
    """Metasearch through the rotating SearXNG pool."""
    commands.cmd_search(query, news=news, fact_check=fact_check)


@app.command()
def verify(claim: str) -> None:
    """Verify a claim against encyclopedic context."""
    commands.cmd_verify(claim)


@app.command()
def assess_image(url: str) -> None:
    """Pixel-level authenticity heuristics for an image URL."""
    commands.cmd_assess_image(url)


@app.command()
def summarize(
    title: str,
    content: str = typer.Option("", "--content", help="Article body or description."),
    verify_first: bool = typer.Option(False, "--verify", help="Verify the article before summarizing."),
) -> None:
    """Structured summary of an article."""
    commands.cmd_summarize(title, content=content, verify=verify_first)


@app.command()
def timeline(topic: str) -> None:
    """Ranked event timeline for a topic."""
    commands.cmd_timeline(topic)


@app.command()
def ingest(sector: str = typer.Option("general", "--sector", help="News sector to pull.")) -> None:
    """Pull new articles, store them and run verification in the background."""
    commands.cmd_ingest(sector)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
