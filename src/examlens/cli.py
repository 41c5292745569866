# src/examlens/cli.py
from __future__ import annotations
import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, TypeVar

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .client import ExamClient
from .config import Provider, ProviderConfig
from .errors import CredentialError, ExamLensError
from .models.schema import EssayType, GradingResult
from .overlay import export_report, score_label, score_percent
from .settings import resolve_config, save_settings, settings_path

logger = logging.getLogger(__name__)

T = TypeVar("T")

app = typer.Typer(
    add_completion=False,
    help="examlens: grade exam photos, OCR, homework help and essays via multimodal LLMs",
)
config_app = typer.Typer(add_completion=False, help="Show or save provider settings")
app.add_typer(config_app, name="config")

console = Console()

_STATUS_STYLE = {"correct": "green", "partial": "yellow", "wrong": "red"}


@app.callback()
def _setup(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    # Keep HTTP client chatter out of debug output
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _abort(msg: str, code: int = 1) -> None:
    """
    Print an error message and exit the program.
    """
    console.print(f"[bold red]Error:[/bold red] {msg}")
    raise typer.Exit(code=code)


def _client() -> ExamClient:
    return ExamClient(resolve_config())


def _run(call: Callable[[ExamClient], Awaitable[T]]) -> T:
    """
    Run one client call on a fresh event loop and turn library errors into exit codes.
    """

    async def _main() -> T:
        async with _client() as client:
            return await call(client)

    try:
        return asyncio.run(_main())
    except CredentialError as e:
        console.print(f"[bold red]Credential problem:[/bold red] {e}")
        console.print(
            "Set a key with [bold]examlens config set --provider <gemini|qwen> --key <KEY>[/bold]"
        )
        raise typer.Exit(code=2)
    except ExamLensError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1)


def _print_grading(result: GradingResult) -> None:
    for n, page in enumerate(result.pages, start=1):
        table = Table(title=f"Page {n} ({page.image_url}): {page.page_score:g} pts")
        table.add_column("#", justify="right")
        table.add_column("Status")
        table.add_column("Score", justify="right")
        table.add_column("Error type")
        table.add_column("Analysis", overflow="fold")
        for q in page.questions:
            style = _STATUS_STYLE[q.status]
            table.add_row(
                str(q.id),
                f"[{style}]{q.status}[/{style}]",
                f"{q.score_obtained:g}/{q.score_max:g} ({score_label(q)})",
                q.error_type or "",
                q.analysis,
            )
        console.print(table)

    tags = ", ".join(result.summary_tags) or "-"
    console.print(
        Panel.fit(
            f"[bold]{result.total_score:g}[/bold] / {result.total_max_score:g} ({score_percent(result)}%)\n"
            f"Tags: {tags}",
            title="Total",
        )
    )


@app.command("grade")
def grade(
    images: List[Path] = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="Exam pages, in order"
    ),
    max_score: float = typer.Option(100, "--max-score", "-m", help="Full marks (1-1000)"),
    export: Optional[Path] = typer.Option(
        None, "--export", "-e", help="Write annotated page PNGs into this directory"
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the raw grading JSON"),
) -> None:
    """
    Grade exam page photos and show per-question results.
    """
    result = _run(lambda c: c.grade_exam(list(images), max_score))

    if as_json:
        console.print_json(result.model_dump_json())
    else:
        _print_grading(result)

    if export is not None:
        written = export_report(list(images), result, export)
        console.print(f"[green]Exported[/green] {len(written)} annotated page(s) to {export}")


@app.command("ocr")
def ocr(
    images: List[Path] = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    table: bool = typer.Option(False, "--table", help="Recognize a table as Markdown"),
) -> None:
    """
    Extract text (or a Markdown table) from one or more images.
    """

    async def _call(client: ExamClient) -> List[str]:
        if table:
            return list(await asyncio.gather(*(client.recognize_table(p) for p in images)))
        return await client.recognize_text_batch(list(images))

    texts = _run(_call)
    for path, text in zip(images, texts):
        console.print(Panel(Markdown(text) if table else text, title=path.name))


@app.command("solve")
def solve(
    image: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    instruction: Optional[str] = typer.Option(
        None, "--instruction", "-i", help="What to do with the problem"
    ),
) -> None:
    """
    Step-by-step help for a photographed homework problem.
    """
    answer = _run(lambda c: c.solve_homework(image, instruction))
    console.print(Markdown(answer))


@app.command("essay")
def essay(
    topic: Optional[str] = typer.Option(None, "--topic", "-t", help="Essay topic"),
    image: Optional[Path] = typer.Option(
        None, "--image", exists=True, dir_okay=False, readable=True, help="Photo of the topic"
    ),
    grade_level: int = typer.Option(6, "--grade", "-g", min=1, max=12, help="School grade 1-12"),
    essay_type: EssayType = typer.Option(EssayType.NARRATIVE, "--type", help="Essay type"),
    words: Optional[str] = typer.Option(None, "--words", "-w", help="Length, e.g. 400-500"),
    language: str = typer.Option("chinese", "--language", "-l", help="chinese | english"),
    examples: bool = typer.Option(
        False, "--examples", help="Write the topic in three styles instead"
    ),
) -> None:
    """
    Write a model essay for a topic given as text or as a photo.
    """
    if examples:
        if not topic:
            _abort("--examples needs --topic")
        result = _run(lambda c: c.generate_essay_examples(topic))
        for style in ("creative", "philosophical", "analytical"):
            console.print(Panel(Markdown(getattr(result, style)), title=style))
        return

    text = _run(
        lambda c: c.generate_essay(
            topic=topic,
            image=image,
            grade=grade_level,
            essay_type=essay_type,
            word_count=words,
            language=language,
        )
    )
    console.print(Markdown(text))


@app.command("tutor")
def tutor(
    question: str = typer.Argument(..., help="The problem, as text"),
    answer: Optional[str] = typer.Option(None, "--answer", "-a", help="The student's attempt"),
) -> None:
    """
    Socratic hints for a problem, without giving the answer away first.
    """
    console.print(Markdown(_run(lambda c: c.socratic_tutor(question, answer))))


@config_app.command("set")
def config_set(
    provider: Provider = typer.Option(..., "--provider", "-p", help="gemini | qwen"),
    key: str = typer.Option(..., "--key", "-k", prompt=True, hide_input=True, help="API key"),
) -> None:
    """
    Save the provider and its API key.
    """
    try:
        saved = resolve_config(settings_path(), env={})
    except ExamLensError as e:
        logger.warning("Replacing invalid settings: %s", e)
        saved = ProviderConfig()
    cfg = saved.with_credential(key, provider)
    path = save_settings(cfg)
    console.print(f"[green]Saved[/green] {provider.value} settings to {path}")


@config_app.command("show")
def config_show() -> None:
    """
    Show the active configuration (key masked).
    """
    try:
        cfg = resolve_config()
    except ExamLensError as e:
        _abort(str(e))
    console.print(Panel.fit(str(settings_path()), title="settings file"))
    console.print_json(data=cfg.redacted())


@app.command("version")
def version() -> None:
    """
    Show version information.
    """
    console.print(f"examlens version {__version__}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
