"""Tests for preview preference models and their persistence."""

import numpy as np
import pytest

from audiopreview.audio_buffer import AudioBufferRef
from audiopreview.gui.settings import SettingsManager
from audiopreview.preview_settings import AnalyzeDefault, PlayerDefault, PreviewSettings


def test_preview_settings_defaults_are_valid():
    """Default settings should produce no validation issues."""
    settings = PreviewSettings()
    assert settings.validate() == []
    assert settings.auto_analyze is False
    assert settings.player_default.volume == 100.0
    assert settings.player_default.enable_seek_to_play is True


def test_analyze_default_validation_detects_range_order():
    default = AnalyzeDefault(min_frequency=5000.0, max_frequency=1000.0)
    issues = default.validate()
    assert issues
    assert any("Minimum frequency" in issue.message for issue in issues)


def test_analyze_default_validation_detects_bad_values():
    default = AnalyzeDefault(
        window_size_index=9,
        mel_filter_count=500,
        spectrogram_db_floor=3.0,
        frequency_scale="bark",
        waveform_vertical_scale=float("nan"),
    )
    fields = {issue.field for issue in default.validate()}
    assert {
        "window_size_index",
        "mel_filter_count",
        "spectrogram_db_floor",
        "frequency_scale",
        "waveform_vertical_scale",
    } <= fields


def test_analyze_default_omits_unset_fields():
    default = AnalyzeDefault(window_size_index=3, frequency_scale="mel")
    assert default.to_dict() == {"window_size_index": 3, "frequency_scale": "mel"}

    restored = AnalyzeDefault.from_dict({"window_size_index": 3, "unknown": 1})
    assert restored.window_size_index == 3
    assert restored.min_frequency is None


def test_player_default_gain_is_clamped():
    assert PlayerDefault(volume=50).gain == pytest.approx(0.5)
    assert PlayerDefault(volume=250).gain == 1.0
    assert PlayerDefault(volume=-5).gain == 0.0
    assert PlayerDefault(volume="loud").volume == 100.0
    assert PlayerDefault(volume=150).validate()


def test_from_dict_rejects_non_dict():
    with pytest.raises(TypeError):
        PreviewSettings.from_dict(["not", "a", "dict"])  # type: ignore[arg-type]


def test_preview_settings_round_trip(tmp_path, monkeypatch):
    """Preview settings should persist across manager instances."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))

    manager = SettingsManager()
    original = PreviewSettings(
        auto_analyze=True,
        analyze_default=AnalyzeDefault(window_size_index=5, spectrogram_db_floor=-72.0),
        player_default=PlayerDefault(volume=40, enable_seek_to_play=False),
    )
    manager.set_preview_settings(original)

    restored = SettingsManager().get_preview_settings()
    assert restored.auto_analyze is True
    assert restored.analyze_default.window_size_index == 5
    assert restored.analyze_default.spectrogram_db_floor == -72.0
    assert restored.player_default.volume == 40.0
    assert restored.player_default.enable_seek_to_play is False


def test_recent_audio_files_most_recent_first(tmp_path, monkeypatch):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    first = tmp_path / "first.wav"
    second = tmp_path / "second.wav"
    first.write_bytes(b"")
    second.write_bytes(b"")

    manager = SettingsManager()
    manager.clear_recent_audio_files()
    manager.add_recent_audio_file(first)
    manager.add_recent_audio_file(second)
    manager.add_recent_audio_file(first)

    paths = [entry.path for entry in manager.get_recent_audio_files()]
    assert paths == [first, second]

    manager.clear_recent_audio_files()
    assert manager.get_recent_audio_files() == []


def test_missing_recent_file_is_skipped(tmp_path, monkeypatch):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    manager = SettingsManager()
    manager.clear_recent_audio_files()
    manager.add_recent_audio_file(tmp_path / "missing.wav")
    assert manager.get_recent_audio_files() == []


def test_recent_audio_file_remembers_stream_layout(tmp_path, monkeypatch):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    path = tmp_path / "take.wav"
    path.write_bytes(b"")
    buffer = AudioBufferRef.from_channels([np.zeros(96000), np.zeros(96000)], 48000)

    manager = SettingsManager()
    manager.clear_recent_audio_files()
    manager.add_recent_audio_file(path, buffer)

    (entry,) = SettingsManager().get_recent_audio_files()
    assert entry.path == path
    assert (entry.channel_count, entry.sample_rate) == (2, 48000)
    assert entry.summary == "2 ch, 48000 Hz, 2.0s"

    manager.remove_recent_audio_file(path)
    assert manager.get_recent_audio_files() == []


def test_malformed_recent_entries_are_dropped(tmp_path, monkeypatch):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    path = tmp_path / "kept.wav"
    path.write_bytes(b"")

    manager = SettingsManager()
    manager.clear_recent_audio_files()
    manager.add_recent_audio_file(path)
    good = manager._load_json("recentAudioFiles", list)
    manager._store_json("recentAudioFiles", [{"path": 3}, "junk", *good])

    (entry,) = manager.get_recent_audio_files()
    assert entry.path == path
    assert entry.summary == ""
