"""Script to generate multi-channel test audio for the preview figures."""

import argparse
from pathlib import Path

import numpy as np
import soundfile as sf


def generate_test_audio(
    output_path: Path,
    duration: float = 10.0,
    sample_rate: int = 44100,
    channels: int = 2,
    noise_level: float = 0.05,
    click_count: int = 4,
) -> None:
    """Generate synthetic test audio with one distinct pattern per channel.

    Channel 0 carries a logarithmic sweep (50 Hz to Nyquist/2), channel 1 a
    stack of harmonics, later channels steady tones an octave apart. Every
    channel gets a low noise bed and evenly spaced clicks.

    Args:
        output_path: Output WAV file path.
        duration: Duration in seconds.
        sample_rate: Sample rate in Hz.
        channels: Number of channels.
        noise_level: Background noise level (0-1).
        click_count: Number of clicks per channel.
    """
    t = np.arange(int(sample_rate * duration)) / sample_rate
    rng = np.random.default_rng(0)

    data = np.zeros((len(t), channels))
    for ch in range(channels):
        if ch == 0:
            f0, f1 = 50.0, sample_rate / 4
            # Exponential sweep: phase is the integral of f0 * (f1/f0)^(t/T)
            k = np.log(f1 / f0) / duration
            tone = np.sin(2 * np.pi * f0 * (np.exp(k * t) - 1) / k)
        elif ch == 1:
            tone = sum(np.sin(2 * np.pi * 220.0 * n * t) / n for n in range(1, 9))
        else:
            tone = np.sin(2 * np.pi * 110.0 * 2 ** (ch - 1) * t)

        noise = rng.standard_normal(len(t)) * noise_level

        clicks = np.zeros_like(t)
        click_len = int(0.005 * sample_rate)
        for i in range(click_count):
            idx = int(duration / (click_count + 1) * (i + 1) * sample_rate)
            if idx + click_len < len(clicks):
                clicks[idx : idx + click_len] = np.exp(-np.linspace(0, 8, click_len))

        signal = tone + noise + clicks
        data[:, ch] = signal / np.max(np.abs(signal)) * 0.8

    output_path.parent.mkdir(parents=True, exist_ok=True)
    sf.write(output_path, data, sample_rate)
    print(f"Generated test audio: {output_path} ({duration}s, {sample_rate} Hz, {channels} ch)")


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Generate synthetic multi-channel test audio")
    parser.add_argument("output", type=Path, help="Output WAV file path")
    parser.add_argument("--duration", type=float, default=10.0, help="Duration in seconds")
    parser.add_argument("--sample-rate", type=int, default=44100, help="Sample rate in Hz")
    parser.add_argument("--channels", type=int, default=2, help="Number of channels")
    parser.add_argument(
        "--noise-level", type=float, default=0.05, help="Background noise level (0-1)"
    )
    parser.add_argument("--click-count", type=int, default=4, help="Clicks per channel")

    args = parser.parse_args()
    generate_test_audio(
        args.output,
        duration=args.duration,
        sample_rate=args.sample_rate,
        channels=args.channels,
        noise_level=args.noise_level,
        click_count=args.click_count,
    )


if __name__ == "__main__":
    main()
