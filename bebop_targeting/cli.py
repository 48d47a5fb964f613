"""Command line interface for Bebop Targeting.

Modification summary
--------------------
* Values missing from the command line fall back to the JSON settings file
  (``--settings-file`` or ``BEBOP_SETTINGS_FILE``).
* Unknown chords are reported together before anything is scheduled.
* ``--output`` and ``--musicxml`` create missing parent directories and log
  ``OSError`` failures instead of printing a traceback.

Example
-------
Running ``bebop-targeting --progression "| Dm9  G13 | C∆ |" --seed 7 --swing
--output line.mid`` prints the line as text and writes a swung MIDI file.
``--format json`` prints the full generation response instead.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from . import DEFAULT_SETTINGS_FILE, load_settings, options_from_settings
from .api import GeneratorResponse, generate_from_request
from .errors import ProgressionValidationError
from .midi_io import write_midi_file
from .scheduler import SchedulerRequest
from .theory import available_chord_qualities

__all__ = ["build_parser", "run_cli", "main"]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bebop-targeting",
        description="Generate a bebop targeting line over a chord progression.",
    )
    parser.add_argument("--progression", type=str, help='Chord progression, e.g. "| Dm9  G13 | C∆ |".')
    parser.add_argument("--key", type=str, help="Global key of the progression (default: C).")
    parser.add_argument("--tempo", type=int, help="Tempo in beats per minute.")
    parser.add_argument("--swing", dest="swing", action="store_true", default=None, help="Render with swing feel.")
    parser.add_argument("--no-swing", dest="swing", action="store_false", help="Force straight eighths.")
    parser.add_argument("--contour", type=float, help="Contour slider between 0 (wide) and 1 (narrow).")
    parser.add_argument("--seed", type=int, help="Random seed for reproducible output.")
    parser.add_argument("--format", choices=["text", "json"], default="text", help="Output format (default: text).")
    parser.add_argument("--output", type=str, help="Write the line to this MIDI file.")
    parser.add_argument("--musicxml", type=str, help="Write the line to this MusicXML file.")
    parser.add_argument("--settings-file", type=str, help="Path to the JSON settings file.")
    parser.add_argument("--list-chords", action="store_true", help="List supported chord qualities and exit.")
    parser.add_argument("--verbose", action="store_true", help="Log scheduling decisions.")
    return parser


def _format_text(response: GeneratorResponse) -> str:
    meta = response.meta
    lines = ["# Bebop Targeting Preview", f"Progression: {meta.progression}", f"Seed: {meta.seed}"]
    if meta.tempo_bpm:
        lines.append(f"Tempo: {meta.tempo_bpm} BPM")
    if isinstance(meta.swing, bool):
        lines.append(f"Swing: {'on' if meta.swing else 'straight'}")
    lines.append(f"Estimated bars: {meta.total_bars}")
    lines.append("")
    lines.append(response.artifacts.text)
    return "\n".join(lines)


def run_cli(argv: Optional[List[str]] = None) -> None:
    """Parse arguments, generate the line and write the requested outputs.

    Invalid input is logged with ``logging.error`` and terminates the process
    with exit status ``1``.
    """

    args = build_parser().parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.list_chords:
        print("\n".join(sorted(available_chord_qualities())))
        return

    if not args.progression or not args.progression.strip():
        logging.error("A chord progression is required (--progression).")
        sys.exit(1)

    settings_path = Path(args.settings_file).expanduser() if args.settings_file else DEFAULT_SETTINGS_FILE
    settings = load_settings(settings_path)

    tempo = args.tempo if args.tempo is not None else settings.get("tempo_bpm")
    if tempo is not None and (isinstance(tempo, bool) or not isinstance(tempo, (int, float)) or tempo <= 0):
        logging.error("Tempo must be a positive number.")
        sys.exit(1)
    contour = args.contour if args.contour is not None else settings.get("contour_slider")
    if contour is not None and (isinstance(contour, bool) or not isinstance(contour, (int, float)) or not 0 <= contour <= 1):
        logging.error("Contour slider must be between 0 and 1.")
        sys.exit(1)
    swing = args.swing if args.swing is not None else settings.get("swing")

    request = SchedulerRequest(
        progression=args.progression,
        key=args.key or settings.get("key") or "C",
        tempo_bpm=tempo,
        swing=swing,
        contour_slider=contour,
        seed=args.seed,
    )

    try:
        options = options_from_settings(settings)
        response = generate_from_request(request, options)
    except ProgressionValidationError as exc:
        logging.error(str(exc))
        for issue in exc.issues:
            logging.error("Chord %d (%s): %s", issue.index + 1, issue.chord_symbol, issue.message)
        sys.exit(1)
    except ValueError as exc:
        logging.error(str(exc))
        sys.exit(1)

    if args.output:
        try:
            write_midi_file(
                response.notes,
                args.output,
                tempo_bpm=request.tempo_bpm or options.default_tempo_bpm,
                swing=bool(request.swing),
                swing_ratio=response.meta.swing_ratio,
                track_name=request.progression,
            )
        except OSError as exc:
            logging.error("Could not write MIDI file: %s", exc)
            sys.exit(1)

    if args.musicxml:
        path = Path(args.musicxml).expanduser()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(response.artifacts.music_xml, encoding="utf-8")
        except OSError as exc:
            logging.error("Could not write MusicXML file: %s", exc)
            sys.exit(1)
        logging.info("MusicXML file saved to %s", path)

    if args.format == "json":
        print(json.dumps(response.to_dict(), indent=2, ensure_ascii=False))
    else:
        print(_format_text(response))


def main(argv: Optional[List[str]] = None) -> None:
    """Console entry point configuring logging before running the CLI."""

    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    run_cli(argv)


if __name__ == "__main__":
    main()
