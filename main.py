from __future__ import annotations
import argparse
import logging
import random
import sys
from typing import Optional

from dotenv import load_dotenv

from hearcheck.analysis import generate_analysis_text
from hearcheck.app_controller import Mode, parse_mode
from hearcheck.errors import HearcheckError, VoiceUnavailableError
from hearcheck.export.csv_export import export_csv
from hearcheck.export.png import export_graph_png
from hearcheck.logging_config import setup_logging
from hearcheck.screening.words import LANGUAGES
from hearcheck.settings import apply_env_overrides, load_settings
from hearcheck.simulation import SUBJECT_KINDS, HeadlessSession, SimulatedSubject
from hearcheck.version import __version__

logger = logging.getLogger("hearcheck.main")


def _parse_args(argv: list[str]) -> tuple[argparse.Namespace, list[str]]:
    parser = argparse.ArgumentParser(description="Self-administered hearing check")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--language", choices=LANGUAGES, help="Word list and voice language")
    parser.add_argument("--mode", choices=[m.value for m in Mode], default=Mode.PURETONE.value,
                        help="Test mode for --simulate runs")
    parser.add_argument("--simulate", choices=SUBJECT_KINDS,
                        help="Run headless with a simulated listener instead of opening the window")
    parser.add_argument("--seed", type=int, help="Random seed for --simulate runs")
    parser.add_argument("--default-voice", action="store_true",
                        help="Accept the default voice when the language has none installed")
    parser.add_argument("--export-csv", metavar="PATH", help="Write the results table (file or directory)")
    parser.add_argument("--export-png", metavar="PATH", help="Write the results chart")
    parser.add_argument("--log-level", help="Console log level (DEBUG, INFO, WARNING...)")
    parser.add_argument("--output-device", type=int, help="sounddevice output index")
    return parser.parse_known_args(argv)


def run_headless(args: argparse.Namespace, language: str) -> int:
    rng = random.Random(args.seed)
    subject = SimulatedSubject(kind=args.simulate, rng=rng)
    session = HeadlessSession(subject, language=language, seed=args.seed)
    mode = parse_mode(args.mode)
    try:
        bundle = session.run(mode, allow_default_voice=args.default_voice)
    except VoiceUnavailableError as exc:
        logger.error("%s Use --default-voice to continue anyway.", exc)
        return 2

    tone = bundle.puretone or (bundle.gamemode.thresholds if bundle.gamemode else None)
    if tone is not None:
        print(generate_analysis_text(tone, bundle.speech))
    if bundle.speech is not None:
        threshold = bundle.speech.threshold
        shown = "n/a" if threshold is None else f"{threshold * 100:.0f}%"
        print(f"Speech reception threshold: {shown}")
    if args.export_csv:
        print(f"CSV: {export_csv(bundle, args.export_csv)}")
    if args.export_png:
        print(f"PNG: {export_graph_png(bundle, args.export_png)}")
    return 0


def run_gui(args: argparse.Namespace, settings: dict, passthrough: list[str], program: str) -> int:
    from PySide6.QtWidgets import QApplication
    from hearcheck.ui.main_window import MainWindow

    app = QApplication([program, *passthrough])
    win = MainWindow(settings=settings)
    win.show()
    return app.exec()


def main(argv: Optional[list[str]] = None) -> int:
    load_dotenv()
    args_list = sys.argv if argv is None else argv
    args, passthrough = _parse_args(args_list[1:])

    settings = apply_env_overrides(load_settings())
    if args.language:
        settings['language'] = args.language
    if args.output_device is not None:
        settings['output_device'] = args.output_device
    if args.log_level:
        settings['log_level'] = args.log_level.upper()
    setup_logging(settings.get('log_level', 'INFO'))

    try:
        if args.simulate:
            return run_headless(args, settings['language'])
        return run_gui(args, settings, passthrough, args_list[0])
    except HearcheckError as exc:
        logger.error("%s", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
