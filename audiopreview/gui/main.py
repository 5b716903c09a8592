"""Main entry point for the Audio Preview GUI."""

import argparse
import logging
import sys
from pathlib import Path

from audiopreview import __version__
from audiopreview.utils import setup_logging

logger = logging.getLogger(__name__)


def _print_help() -> None:
    print(
        "Audio Preview GUI\n\n"
        "Usage:\n"
        "  audiopreview-gui                    Launch the GUI\n"
        "  audiopreview-gui --audio <path>     Open specific audio file\n"
        "  audiopreview-gui --verbose          Enable verbose (DEBUG) logging\n"
        "  audiopreview-gui --help             Show this help and exit\n"
        "  audiopreview-gui --version          Show version and exit\n"
    )


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Parsed arguments.
    """
    parser = argparse.ArgumentParser(description="Audio Preview GUI", add_help=False)
    parser.add_argument("--audio", type=str, help="Open specific audio file")
    parser.add_argument("--help", action="store_true", help="Show help and exit")
    parser.add_argument("--version", action="store_true", help="Show version and exit")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose (DEBUG) logging")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for GUI application."""
    args = _parse_args(argv)

    setup_logging(verbose=args.verbose)

    # Fast-path for CLI flags before importing Qt (avoids EGL/X11 deps for --help/--version)
    if args.help:
        _print_help()
        return
    if args.version:
        print(f"Audio Preview {__version__}")
        return

    audio_path: Path | None = None
    if args.audio:
        audio_path = Path(args.audio)
        if not audio_path.exists():
            print(f"Error: Audio file not found: {audio_path}", file=sys.stderr)
            sys.exit(1)

    # Import Qt and window lazily to avoid loading GUI stack when not needed
    from PySide6.QtWidgets import QApplication

    from audiopreview.gui.main_window import MainWindow

    app = QApplication(sys.argv[:1])
    app.setApplicationName("AudioPreview")
    app.setApplicationVersion(__version__)
    app.setOrganizationName("AudioPreview")

    window = MainWindow()
    window.setWindowTitle("Audio Preview")
    window.show()
    if audio_path is not None:
        window.load_audio_file(audio_path)

    sys.exit(app.exec())


if __name__ == "__main__":
    main()
