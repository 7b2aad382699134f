from __future__ import annotations

import argparse
import logging
import os
import select
import sys
import threading
from pathlib import Path

from rich.console import Console
from rich.table import Table

from .config import EngineSettings
from .errors import TrackerError
from .logging_utils import configure_logging, debug_enabled, log_exception
from .notes import REST_NAME, note_from_name, note_name
from .render import OfflineRenderer
from .scheduler import PlaybackHooks, PlaybackResult, PlaybackScheduler, StopSource
from .sink import AudioSink, NullSink, SoundDeviceSink
from .song import Song
from .songfile import load_song, save_song

_LOGGER = logging.getLogger("steptracker.cli")
_CONSOLE = Console()


def parse_note(text: str) -> int:
    """Accept a note number (``69``) or a note name (``A4``, ``---``)."""
    stripped = text.strip()
    if stripped.lstrip("-").isdigit():
        value = int(stripped)
        if not 0 <= value <= 127:
            raise TrackerError(f"note number {value} outside 0..127")
        return value
    return note_from_name(stripped)


def song_table(song: Song) -> Table:
    loop = (
        f"LOOP: {song.loop.start_row}-{song.loop.end_row}" if song.loop.enabled else "LOOP: OFF"
    )
    table = Table(title=f"BPM: {song.bpm} | {loop}", show_lines=False)
    table.add_column("Row", justify="right")
    for channel in range(song.channel_count):
        table.add_column(f"Ch{channel:02d}")
    for row in range(song.row_count):
        marker = " "
        if song.loop.enabled and row == song.loop.start_row:
            marker = "["
        elif song.loop.enabled and row == song.loop.end_row:
            marker = "]"
        cells = []
        for channel in range(song.channel_count):
            cell = song.cell(channel, row)
            label = note_name(cell.note) if cell.note > 0 else REST_NAME
            if cell.kind == "sample":
                label = f"{label}*"
            cells.append(label)
        table.add_row(f"{marker}{row:02d}", *cells)
    return table


def _stdin_stop_source() -> StopSource | None:
    if os.name != "posix" or not sys.stdin.isatty():
        return None

    def _pressed() -> bool:
        ready, _, _ = select.select([sys.stdin], [], [], 0)
        if ready:
            sys.stdin.readline()
            return True
        return False

    return _pressed


def _print_row(row: int, voices: tuple[str, ...]) -> None:
    _CONSOLE.print(f"Row {row:02d}: {', '.join(voices) if voices else '--- rest ---'}")


def _run_playback(scheduler: PlaybackScheduler, *, row: int | None) -> PlaybackResult:
    outcome: list[PlaybackResult] = []
    error: list[BaseException] = []

    def _runner() -> None:
        try:
            if row is None:
                outcome.append(scheduler.play())
            else:
                outcome.append(scheduler.play_row(row))
        except BaseException as exc:
            error.append(exc)

    thread = threading.Thread(target=_runner, name="steptracker-playback", daemon=True)
    thread.start()
    try:
        while thread.is_alive():
            thread.join(timeout=0.1)
    except KeyboardInterrupt:
        _CONSOLE.print("Playback stopped")
        scheduler.stop()
        thread.join()
    if error:
        raise error[0]
    return outcome[0]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="steptracker")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show the per-row DEBUG trace.")
    sub = parser.add_subparsers(dest="command", required=True)

    new = sub.add_parser("new", help="Write an empty song file.")
    new.add_argument("song", type=Path)
    new.add_argument("--bpm", type=int, default=120)
    new.add_argument("--rows", type=int, default=16)
    new.add_argument("--channels", type=int, default=8)

    show = sub.add_parser("show", help="Print the pattern grid.")
    show.add_argument("song", type=Path)

    export = sub.add_parser("export", help="Render the song to a WAV file.")
    export.add_argument("song", type=Path)
    export.add_argument("-o", "--output", type=Path, default=Path("song.wav"))

    play = sub.add_parser("play", help="Play the song (or one row) live.")
    play.add_argument("song", type=Path)
    play.add_argument("--row", type=int, default=None)
    play.add_argument("--null-sink", action="store_true", help="Keep timing but produce no audio.")

    set_cell = sub.add_parser("set-cell", help="Edit one cell.")
    set_cell.add_argument("song", type=Path)
    set_cell.add_argument("channel", type=int)
    set_cell.add_argument("row", type=int)
    set_cell.add_argument("note", type=str)
    set_cell.add_argument("--sample", type=str, default=None)
    set_cell.add_argument("--base", type=str, default=None, help="Base note of the sample.")

    set_bpm = sub.add_parser("set-bpm", help="Change the tempo (20-300).")
    set_bpm.add_argument("song", type=Path)
    set_bpm.add_argument("bpm", type=int)

    set_loop = sub.add_parser("set-loop", help="Set or clear the loop window.")
    set_loop.add_argument("song", type=Path)
    set_loop.add_argument("start", type=int, nargs="?")
    set_loop.add_argument("end", type=int, nargs="?")
    set_loop.add_argument("--off", action="store_true")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(verbose=args.verbose)
    try:
        settings = EngineSettings.from_env()

        if args.command == "new":
            song = Song.new(channels=args.channels, rows=args.rows, bpm=args.bpm)
            save_song(song, args.song)
            _CONSOLE.print(f"Wrote empty song to {args.song}")
            return 0

        if args.command == "show":
            _CONSOLE.print(song_table(load_song(args.song)))
            return 0

        if args.command == "export":
            song = load_song(args.song)
            with _CONSOLE.status("Rendering rows") as status:

                def _progress(index: int, total: int, row: int) -> None:
                    status.update(f"Rendering row {index + 1}/{total} (pattern row {row})")

                target = OfflineRenderer(settings=settings, on_row=_progress).export(song, args.output)
            _CONSOLE.print(f"Export successful: {target}")
            return 0

        if args.command == "play":
            song = load_song(args.song)
            sink: AudioSink = NullSink() if args.null_sink else SoundDeviceSink(settings=settings)
            scheduler = PlaybackScheduler(
                song,
                sink=sink,
                settings=settings,
                hooks=PlaybackHooks(
                    on_row_start=_print_row,
                    on_loop=lambda count: _CONSOLE.print(f"Loop {count}"),
                ),
                stop_source=_stdin_stop_source(),
            )
            _CONSOLE.print("Press Enter or Ctrl-C to stop...")
            result = _run_playback(scheduler, row=args.row)
            _CONSOLE.print(f"Playback finished. Total loops: {result.loop_count}")
            return 0

        if args.command == "set-cell":
            song = load_song(args.song)
            base = parse_note(args.base) if args.base else None
            cell = song.set_cell(
                args.channel, args.row, parse_note(args.note), sample=args.sample, original_note=base
            )
            save_song(song, args.song)
            detail = ""
            if cell.kind == "sample":
                detail = (
                    f" (sample: {cell.sample}, original: {note_name(cell.original_note)},"
                    f" pitch: {cell.pitch_ratio:.3f}x)"
                )
            _CONSOLE.print(f"Set to: {note_name(cell.note)}{detail}")
            return 0

        if args.command == "set-bpm":
            song = load_song(args.song)
            song.set_bpm(args.bpm)
            save_song(song, args.song)
            _CONSOLE.print(f"BPM changed to {song.bpm}")
            return 0

        if args.command == "set-loop":
            song = load_song(args.song)
            if args.off:
                song.disable_loop()
                _CONSOLE.print("Loop disabled")
            else:
                if args.start is None or args.end is None:
                    parser.error("set-loop needs START and END, or --off")
                song.set_loop(args.start, args.end)
                _CONSOLE.print(f"Loop set to rows {args.start}-{args.end}")
            save_song(song, args.song)
            return 0

        parser.print_help()
        return 1
    except Exception as exc:
        _LOGGER.warning("steptracker CLI failed: %s", exc, exc_info=debug_enabled())
        log_exception("steptracker CLI", exc)
        _CONSOLE.print(f"[red]Error:[/red] {exc}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
