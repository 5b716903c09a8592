"""Interactive waveform and spectrogram preview engine for audio files."""

from audiopreview.analyze_settings import AnalyzeSettings, FrequencyScale
from audiopreview.analyzer import Analyzer
from audiopreview.audio_buffer import AudioBufferRef
from audiopreview.player import PlayerService
from audiopreview.spectrogram import SpectrogramPipeline, SpectrogramProvider, SpectrogramTile

__version__ = "0.1.0"

__all__ = [
    "AnalyzeSettings",
    "Analyzer",
    "AudioBufferRef",
    "FrequencyScale",
    "PlayerService",
    "SpectrogramPipeline",
    "SpectrogramProvider",
    "SpectrogramTile",
    "__version__",
]
