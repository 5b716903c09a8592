"""Typer CLI rendering waveform and spectrogram previews to PNG."""

from pathlib import Path
from typing import Annotated

import typer

from audiopreview.analyze_settings import WINDOW_SIZES, AnalyzeSettings, FrequencyScale
from audiopreview.analyzer import Analyzer
from audiopreview.audio_io import (
    AudioLoadError,
    describe_audio_load_error,
    load_audio_buffer,
)
from audiopreview.preview_settings import AnalyzeDefault
from audiopreview.scheduling import ManualScheduler
from audiopreview.spectrogram import SpectrogramPipeline, SpectrogramProvider
from audiopreview.surfaces import ImageSurface
from audiopreview.utils import Timer, setup_logging

app = typer.Typer(
    name="audiopreview-render",
    help="Audio Preview: render waveform and spectrogram figures of an audio file.",
    add_completion=False,
)


def render_figures(analyzer: Analyzer, output: Path, dpi: int = 100) -> None:
    """Compose every figure of an analyzer into one PNG."""
    import matplotlib

    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    figures = analyzer.figures
    settings = analyzer.settings
    heights = [max(1, getattr(f.surface, "height", 200)) for f in figures]
    fig, axes = plt.subplots(
        len(figures),
        1,
        figsize=(14, sum(heights) / dpi + 0.6 * len(figures)),
        gridspec_kw={"height_ratios": heights},
        squeeze=False,
    )
    for ax, figure in zip(axes[:, 0], figures):
        surface = figure.surface
        axis_surface = figure.axis_surface
        if not isinstance(surface, ImageSurface) or not isinstance(axis_surface, ImageSurface):
            continue
        ax.imshow(
            surface.to_rgba(),
            aspect="auto",
            extent=(0.0, 1.0, 0.0, 1.0),
            interpolation="nearest",
        )
        ax.set_xticks([p for p, _ in axis_surface.x_labels])
        ax.set_xticklabels([label for _, label in axis_surface.x_labels], fontsize=7)
        ax.set_yticks([p for p, _ in axis_surface.y_labels])
        ax.set_yticklabels([label for _, label in axis_surface.y_labels], fontsize=7)
        ax.set_title(f"Channel {figure.channel + 1} {figure.kind.value}", fontsize=9, loc="left")
    axes[-1, 0].set_xlabel(f"Time (s) [{settings.min_time:.2f} - {settings.max_time:.2f}]")
    fig.tight_layout()
    output.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output, dpi=dpi)
    plt.close(fig)


@app.command()
def main(
    input_path: Annotated[Path, typer.Argument(help="Input audio file")],
    out: Annotated[Path, typer.Option("--out", "-o", help="Output PNG path")],
    window_size: Annotated[
        int, typer.Option("--window-size", help="STFT window size (256-32768, power of two)")
    ] = 1024,
    hop_size: Annotated[
        int | None, typer.Option("--hop-size", help="Pin the hop size instead of deriving it")
    ] = None,
    min_time: Annotated[float | None, typer.Option("--min-time", help="Visible start (s)")] = None,
    max_time: Annotated[float | None, typer.Option("--max-time", help="Visible end (s)")] = None,
    min_frequency: Annotated[
        float | None, typer.Option("--min-frequency", help="Lowest frequency shown (Hz)")
    ] = None,
    max_frequency: Annotated[
        float | None, typer.Option("--max-frequency", help="Highest frequency shown (Hz)")
    ] = None,
    min_amplitude: Annotated[
        float | None, typer.Option("--min-amplitude", help="Waveform lower bound")
    ] = None,
    max_amplitude: Annotated[
        float | None, typer.Option("--max-amplitude", help="Waveform upper bound")
    ] = None,
    db_floor: Annotated[
        float, typer.Option("--db-floor", help="Spectrogram dB floor (-1000 to 0)")
    ] = -90.0,
    frequency_scale: Annotated[
        str, typer.Option("--frequency-scale", help="Frequency axis: linear, log, mel")
    ] = "linear",
    mel_filters: Annotated[
        int, typer.Option("--mel-filters", help="Mel filter count (20-200)")
    ] = 40,
    no_waveform: Annotated[bool, typer.Option("--no-waveform", help="Skip waveform figures")] = False,
    no_spectrogram: Annotated[
        bool, typer.Option("--no-spectrogram", help="Skip spectrogram figures")
    ] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Verbose logging")] = False,
) -> None:
    """Render the preview figures of INPUT_PATH to a PNG file."""
    setup_logging(verbose=verbose)

    if not input_path.exists():
        typer.echo(f"Error: Input path does not exist: {input_path}", err=True)
        raise typer.Exit(1)

    if window_size not in WINDOW_SIZES:
        typer.echo(
            f"Error: Invalid window size {window_size}. Must be one of: "
            + ", ".join(str(size) for size in WINDOW_SIZES),
            err=True,
        )
        raise typer.Exit(1)

    scale_name = frequency_scale.strip().lower()
    if scale_name not in ("linear", "log", "mel"):
        typer.echo(
            f"Error: Invalid frequency scale '{frequency_scale}'. Must be one of: linear, log, mel",
            err=True,
        )
        raise typer.Exit(1)

    try:
        buffer = load_audio_buffer(input_path)
    except (AudioLoadError, OSError, ValueError) as exc:
        advice = describe_audio_load_error(input_path, exc)
        typer.echo(f"Error: {advice.reason}\n{advice.suggestion}", err=True)
        raise typer.Exit(1) from exc

    default = AnalyzeDefault(
        waveform_visible=not no_waveform,
        spectrogram_visible=not no_spectrogram,
        window_size_index=WINDOW_SIZES.index(window_size),
        min_frequency=min_frequency,
        max_frequency=max_frequency,
        min_amplitude=min_amplitude,
        max_amplitude=max_amplitude,
        spectrogram_db_floor=db_floor,
        frequency_scale=int(FrequencyScale.parse(scale_name)),
        mel_filter_count=mel_filters,
    )
    settings = AnalyzeSettings.from_default_setting(default, buffer)
    if min_time is not None or max_time is not None:
        settings.set_time_range(
            0.0 if min_time is None else min_time,
            buffer.duration if max_time is None else max_time,
        )
    if hop_size is not None:
        settings.hop_size = hop_size

    scheduler = ManualScheduler()
    provider = SpectrogramProvider(buffer, max_workers=0)
    pipeline = SpectrogramPipeline(provider, scheduler)
    analyzer = Analyzer(buffer, settings, pipeline, None, scheduler)
    try:
        with Timer("Render preview"):
            analyzer.analyze()
            scheduler.run_until_idle()
        if not analyzer.figures:
            typer.echo("Error: Nothing to render; all figures are hidden", err=True)
            raise typer.Exit(1)
        render_figures(analyzer, out)
    finally:
        analyzer.dispose()
        pipeline.shutdown()
    typer.echo(f"Rendering complete. Output: {out}")


def cli_main() -> None:
    """Entry point for the audiopreview-render script."""
    app()


if __name__ == "__main__":
    cli_main()
