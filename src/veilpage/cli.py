"""Command-line interface for Veilpage Offline document anonymization.

Provides:
- `run`: Anonymize one document (image or PDF first page).
- `batch`: Process several files with daily quota accounting.
- `activate`: Redeem an activation token for the premium tier.
- `license`: Show the current license tier and remaining credits.
- `reset-license`: Return to the free tier.
"""

from pathlib import Path
from typing import List, Optional

import orjson
import typer
from rich import print
from tqdm import tqdm

from .audit import write_audit
from .batch import BatchReport, collect_inputs, run_batch
from .errors import InvalidOptionsError
from .license import LicenseManager
from .pipeline import InputFile, Orchestrator, PipelineOptions
from .policy import resolve_policy
from .settings import get_settings

app = typer.Typer(add_completion=False, help="Veilpage Offline document anonymizer")


def _manager() -> LicenseManager:
    return LicenseManager.from_settings(get_settings())


def _options(
    anonymize: bool,
    block_size: int,
    quality: float,
    fmt: str,
    text_only: bool,
    lang: Optional[str],
    policy: Optional[str],
) -> PipelineOptions:
    try:
        resolve_policy(policy)
    except FileNotFoundError as exc:
        raise typer.BadParameter(str(exc), param_hint="--policy")
    try:
        return PipelineOptions.parse(
            {
                "anonymize": anonymize,
                "blur_block_size": block_size,
                "output_quality": quality,
                "output_format": fmt,
                "extract_text_only": text_only,
                "language": lang,
                "policy": policy,
            }
        )
    except InvalidOptionsError as exc:
        raise typer.BadParameter(str(exc))


def _write_outputs(
    report: BatchReport, output_dir: Path, opts: PipelineOptions, audit: bool
) -> None:
    output_dir.mkdir(parents=True, exist_ok=True)
    settings = get_settings()
    policy = resolve_policy(opts.policy)
    for file, result in report.results:
        out = result.encoded_file.write_to(output_dir / result.encoded_file.name)
        print(f"[green]Wrote:[/green] {out} ({result.entities_found} entities)")
        if audit:
            audit_path = write_audit(
                file,
                out,
                result,
                opts.model_dump(),
                policy=policy.to_dict() if policy else None,
                hmac_key=settings.hmac_key,
            )
            print(f"[green]Audit:[/green] {audit_path}")
    for name, message in report.errors:
        print(f"[red]Error on {name}:[/red] {message}")
    if report.skipped:
        print(f"[yellow]Daily limit reached, {report.skipped} file(s) skipped.[/yellow]")
        print("[yellow]Activate a premium token for unlimited access.[/yellow]")


@app.command()
def run(
    input: str = typer.Option(..., "--input", "-i", help="Input image or PDF"),
    output_dir: str = typer.Option(".", "--output-dir", "-o", help="Output directory"),
    anonymize: bool = typer.Option(
        True, "--anonymize/--no-anonymize", help="Detect and pixelate PII"
    ),
    block_size: int = typer.Option(20, help="Pixelation block size (1-50)"),
    quality: float = typer.Option(0.92, help="Output quality in (0, 1]"),
    fmt: str = typer.Option("jpeg", "--format", help="Output format: jpeg | png | webp"),
    text_only: bool = typer.Option(False, "--text-only", help="Only extract text"),
    lang: Optional[str] = typer.Option(None, help="Tesseract languages, e.g. fra+eng"),
    policy: Optional[str] = typer.Option(
        None, help="Policy name or YAML path (default, identity, financial)"
    ),
    use_ner: bool = typer.Option(True, "--ner/--no-ner", help="Enable spaCy NER"),
    audit: bool = typer.Option(True, "--audit/--no-audit", help="Write an audit JSON"),
):
    """Anonymize one document and write the result to OUTPUT_DIR.

    Parameters
    ----------
    input:
        Image (JPEG, PNG, WebP, TIFF, BMP) or PDF path.
    output_dir:
        Directory receiving the processed file and its audit record.
    """
    opts = _options(anonymize, block_size, quality, fmt, text_only, lang, policy)
    try:
        file = InputFile.from_path(input)
    except FileNotFoundError as exc:
        print(f"[red]{exc}[/red]")
        raise typer.Exit(1)
    manager = _manager()
    engine = Orchestrator(manager.check(), use_ner=use_ner)
    bar = tqdm(total=100, desc=file.name, unit="%")

    def on_progress(step: str, progress: float, message: str) -> None:
        bar.n = int(progress * 100)
        bar.set_postfix_str(step)
        bar.refresh()

    engine.on_progress(on_progress)
    try:
        engine.initialize()
        report = run_batch([file], engine, manager, opts)
    finally:
        bar.close()
        engine.destroy()
        manager.close()
    _write_outputs(report, Path(output_dir), opts, audit)
    if report.failed or report.skipped:
        raise typer.Exit(1)


@app.command()
def batch(
    inputs: List[str] = typer.Argument(..., help="Files, directories or glob patterns"),
    output_dir: str = typer.Option(..., "--output-dir", "-o", help="Output directory"),
    anonymize: bool = typer.Option(True, "--anonymize/--no-anonymize"),
    block_size: int = typer.Option(20, help="Pixelation block size (1-50)"),
    quality: float = typer.Option(0.92, help="Output quality in (0, 1]"),
    fmt: str = typer.Option("jpeg", "--format", help="Output format: jpeg | png | webp"),
    lang: Optional[str] = typer.Option(None, help="Tesseract languages"),
    policy: Optional[str] = typer.Option(None, help="Policy name or YAML path"),
    use_ner: bool = typer.Option(True, "--ner/--no-ner", help="Enable spaCy NER"),
    audit: bool = typer.Option(True, "--audit/--no-audit", help="Write audit JSONs"),
):
    """Process multiple inputs one after another."""
    files = collect_inputs(inputs)
    if not files:
        print("[red]No inputs found[/red]")
        raise typer.Exit(1)
    opts = _options(anonymize, block_size, quality, fmt, False, lang, policy)
    manager = _manager()
    engine = Orchestrator(manager.check(), use_ner=use_ner)
    with tqdm(total=len(files), desc="Anonymize") as bar:
        try:
            engine.initialize()
            report = run_batch(files, engine, manager, opts, on_file=lambda _f: bar.update(1))
        finally:
            engine.destroy()
            manager.close()
    _write_outputs(report, Path(output_dir), opts, audit)
    print(
        f"[green]Completed {report.succeeded} file(s)[/green], "
        f"{report.failed} error(s), {report.skipped} skipped"
    )
    if report.failed or report.skipped:
        raise typer.Exit(1)


@app.command()
def activate(key: str = typer.Argument(..., help="Activation token XXXX-XXXX-XXXX-XXXX")):
    """Redeem a single-use activation token."""
    manager = _manager()
    try:
        ok = manager.activate(key.strip().upper())
    finally:
        manager.close()
    if not ok:
        print("[red]Invalid, expired or already used token.[/red]")
        raise typer.Exit(1)
    print("[green]Premium license activated.[/green]")


@app.command("license")
def license_status(
    as_json: bool = typer.Option(False, "--json", help="Print raw JSON"),
):
    """Show the current license tier and remaining daily credits."""
    manager = _manager()
    try:
        state = manager.check()
    finally:
        manager.close()
    if as_json:
        typer.echo(orjson.dumps(state.to_dict()).decode("utf-8"))
        return
    if state.is_premium:
        print("[green]Premium[/green]: unlimited files, no watermark")
    else:
        print(
            f"Free: {state.quota_remaining}/{state.daily_quota} credits left today, "
            f"max {state.max_file_size // 1024} KiB per file"
        )


@app.command("reset-license")
def reset_license():
    """Drop the premium activation."""
    manager = _manager()
    try:
        manager.reset()
    finally:
        manager.close()
    print("License reset to the free tier.")


if __name__ == "__main__":
    app()
