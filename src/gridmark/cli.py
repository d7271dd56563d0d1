# src/gridmark/cli.py
from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import cv2
import typer
from rich import print as rprint
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config_io import dump_settings, load_settings
from .decode_core import decode
from .errors import InvalidSheetError, OMRError
from .grade_core import grade_inputs, load_key_txt, score_answers
from .scoring_defaults import apply_overrides
from .tools.synthetic_sheet import random_answers, render_synthetic_sheet
from .visualize_core import file_annotator

app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help="gridmark: decode photographed bubble sheets without fiducial markers.",
)

_console = Console(stderr=True)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=_console, show_path=False)],
        force=True,
    )


def _settings_or_exit(config: Optional[str], ink_threshold: Optional[int] = None):
    try:
        return apply_overrides(load_settings(config), ink_threshold=ink_threshold)
    except (OSError, ValueError) as e:
        rprint(f"[red]Failed to load config {config}:[/red] {e}")
        raise typer.Exit(code=2)


# ----------------------------- DECODE --------------------------------
@app.command("decode")
def decode_cmd(
    image: str = typer.Argument(..., help="Photo or scan of the answer sheet (PNG/JPG/...)"),
    total_questions: int = typer.Option(100, "--questions", "-n", min=1, help="Number of questions on the sheet"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Config file (.yaml/.yml or .json)"),
    ink_threshold: Optional[int] = typer.Option(None, "--ink-threshold", min=0, max=255, help="Override sheet.ink_threshold"),
    key_txt: Optional[str] = typer.Option(None, "--key-txt", "-k", help="Answer key (1-4 or A-D per question)"),
    as_json: bool = typer.Option(False, "--json", help="Print answers as JSON"),
    annotate: Optional[str] = typer.Option(None, "--annotate", help="Write a diagnostic overlay PNG here"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log every pipeline stage"),
):
    """
    Decode one sheet and print the selected option per question.
    Exit code 3 means no answer sheet was recognised in the image.
    """
    _setup_logging(verbose)
    settings = _settings_or_exit(config, ink_threshold)

    try:
        data = Path(image).read_bytes()
    except OSError as e:
        rprint(f"[red]Cannot read {image}:[/red] {e}")
        raise typer.Exit(code=2)

    try:
        answers = decode(
            data, total_questions, settings,
            annotator=file_annotator(annotate) if annotate else None,
        )
    except InvalidSheetError as e:
        rprint(f"[yellow]{e}[/yellow]")
        raise typer.Exit(code=3)
    except OMRError as e:
        rprint(f"[red]Decode failed:[/red] {e}")
        raise typer.Exit(code=2)

    try:
        score = score_answers(answers, load_key_txt(key_txt)) if key_txt else None
    except (OSError, ValueError) as e:
        rprint(f"[red]Failed to load key {key_txt}:[/red] {e}")
        raise typer.Exit(code=2)

    if as_json:
        payload = {"answers": [a.to_dict() for a in answers]}
        if score is not None:
            payload.update(correct=score.correct, wrong=score.wrong,
                           total=score.total, percentage=score.percentage)
        typer.echo(json.dumps(payload))
        return

    table = Table(title=f"{Path(image).name}")
    table.add_column("Q", justify="right")
    table.add_column("Answer", justify="center")
    if score is not None:
        table.add_column("Key", justify="center")
    for i, a in enumerate(answers):
        cells = [str(a.question_number), "-" if a.selected_answer is None else str(a.selected_answer)]
        if score is not None:
            r = score.results[i]
            mark = "[green]✓[/green]" if r.is_correct else "[red]✗[/red]"
            cells.append(f"{r.correct_answer or '-'} {mark}")
        table.add_row(*cells)
    Console().print(table)
    if score is not None:
        rprint(f"[green]Score:[/green] {score.correct}/{score.total} ({score.percentage:.2f}%)")


# ------------------------------ GRADE --------------------------------
@app.command()
def grade(
    inputs: List[str] = typer.Argument(..., help="Images and/or PDFs (every page is graded)"),
    key_txt: Optional[str] = typer.Option(None, "--key-txt", "-k", help="Answer key (1-4 or A-D per question)"),
    out_csv: str = typer.Option("results.csv", "--out-csv", "-o", help="Output CSV of per-page results"),
    total_questions: int = typer.Option(100, "--questions", "-n", min=1, help="Number of questions per sheet"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Config file (.yaml/.yml or .json)"),
    ink_threshold: Optional[int] = typer.Option(None, "--ink-threshold", min=0, max=255, help="Override sheet.ink_threshold"),
    out_annotated_dir: Optional[str] = typer.Option(None, "--out-annotated-dir", help="Directory to write overlays"),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", min=1, help="Parallel decode workers"),
    dpi: int = typer.Option(300, "--dpi", help="PDF render DPI"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """
    Decode a batch of scans in parallel and write a CSV (optionally scored against a key).
    """
    _setup_logging(verbose)
    settings = _settings_or_exit(config, ink_threshold)

    try:
        key = load_key_txt(key_txt) if key_txt else None
    except (OSError, ValueError) as e:
        rprint(f"[red]Failed to load key {key_txt}:[/red] {e}")
        raise typer.Exit(code=2)

    try:
        summary = grade_inputs(
            inputs, out_csv, total_questions=total_questions, key=key, settings=settings,
            out_annotated_dir=out_annotated_dir, dpi=dpi, workers=workers,
        )
    except (OSError, RuntimeError, OMRError) as e:
        rprint(f"[red]Grading failed:[/red] {e}")
        raise typer.Exit(code=2)

    ok = sum(1 for s in summary if s["status"] == "ok")
    rprint(f"[green]Wrote results:[/green] {out_csv} ({ok}/{len(summary)} page(s) decoded)")


# ------------------------------ SAMPLE -------------------------------
@app.command()
def sample(
    out_image: str = typer.Argument("sample_sheet.png", help="Output PNG"),
    total_questions: int = typer.Option(100, "--questions", "-n", min=1),
    seed: int = typer.Option(1234, "--seed", help="Random seed for the marked answers"),
    blank_rate: float = typer.Option(0.0, "--blank-rate", min=0.0, max=1.0, help="Fraction of questions left blank"),
    key_out: Optional[str] = typer.Option(None, "--key-out", help="Also write the matching answer key"),
):
    """
    Render a synthetic filled-in sheet (useful for trying out decode/grade).
    """
    answers = random_answers(total_questions, seed=seed, blank_rate=blank_rate)
    try:
        sheet = render_synthetic_sheet(answers)
    except ValueError as e:
        rprint(f"[red]Cannot render sample:[/red] {e}")
        raise typer.Exit(code=2)

    out_path = Path(out_image).expanduser().resolve()
    out_path.parent.mkdir(parents=True, exist_ok=True)
    cv2.imwrite(str(out_path), sheet.image)
    rprint(f"[green]Wrote:[/green] {out_path}")
    if key_out:
        Path(key_out).write_text("\n".join(str(a or "-") for a in answers) + "\n", encoding="utf-8")
        rprint(f"[green]Wrote key:[/green] {key_out}")


# ---------------------------- INIT-CONFIG ----------------------------
@app.command("init-config")
def init_config(
    out_yaml: str = typer.Argument("gridmark.yaml", help="Where to write the default settings"),
):
    """
    Write every tunable threshold with its default value, ready for calibration.
    """
    Path(out_yaml).write_text(dump_settings(), encoding="utf-8")
    rprint(f"[green]Wrote:[/green] {out_yaml}")


# ------------------------------- MAIN --------------------------------
def app_main() -> None:
    """Entry point for console_scripts."""
    try:
        app()
    except KeyboardInterrupt:
        rprint("\n[red]Interrupted[/red]")
        sys.exit(130)


if __name__ == "__main__":
    app_main()
