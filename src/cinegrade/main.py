import argparse
import os
import sys
import threading

from loguru import logger

from cinegrade import __version__, config
from cinegrade.errors import CinegradeError, ExportError, PresetLockedError
from cinegrade.logger import create_logger, setup_logging
from cinegrade.presets import CATALOG, PresetId, can_select


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cinegrade", description="Cinematic color grading")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug output on the console")
    sub = parser.add_subparsers(dest="command", required=True)

    grade = sub.add_parser("grade", help="grade a single image")
    grade.add_argument("input")
    grade.add_argument("-o", "--output", required=True)
    grade.add_argument("--preset", default=PresetId.MATRIX.value)
    grade.add_argument("--no-preset", action="store_true", help="skip preset grading and finishing")
    grade.add_argument("--exposure", type=float, default=0.0)
    grade.add_argument("--contrast", type=float, default=0.0)
    grade.add_argument("--shadows", type=float, default=0.0)
    grade.add_argument("--highlights", type=float, default=0.0)
    grade.add_argument("--crop", choices=sorted(config.CROP_OPTIONS), default="original")
    grade.add_argument("--offset", type=float, nargs=2, metavar=("X", "Y"), default=(0.0, 0.0))
    grade.add_argument("--quality", type=int, default=None)
    grade.add_argument("--unlocked", action="store_true", help="allow Pro presets")
    grade.add_argument("--no-raw", action="store_true", help="export from the decoded buffer, not raw data")

    batch = sub.add_parser("batch", help="apply one preset to many images")
    batch.add_argument("inputs", nargs="+")
    batch.add_argument("-d", "--output-dir", required=True)
    batch.add_argument("--preset", default=PresetId.MATRIX.value)
    batch.add_argument("--quality", type=int, default=None)
    batch.add_argument("--unlocked", action="store_true", help="allow Pro presets")

    sub.add_parser("presets", help="list the preset catalog")
    return parser


def _cmd_presets(args) -> int:
    for preset_id, preset in CATALOG.items():
        lock = "pro " if preset.pro_locked else "free"
        print(f"{preset_id.value:<18} {lock}  {preset.title:<22} {preset.subtitle}")
    return 0


def _cmd_grade(args) -> int:
    from cinegrade import file_io
    from cinegrade.pipeline.export import ExportRenderer
    from cinegrade.pipeline.request import CropMode, EditState

    preset_id = PresetId.parse(args.preset)
    if not args.no_preset and not can_select(preset_id, args.unlocked):
        raise PresetLockedError(preset_id.value)

    prefs = config.load_preferences()
    quality = args.quality if args.quality is not None else prefs['export_jpeg_quality']
    export_from_raw = prefs['export_from_raw'] and not args.no_raw

    file_logger = create_logger(os.path.basename(args.input))
    asset = file_io.load_source(args.input, logger=file_logger)
    state = EditState(
        preset=preset_id,
        apply_preset=not args.no_preset,
        exposure=args.exposure,
        contrast=args.contrast,
        shadows=args.shadows,
        highlights=args.highlights,
        crop=CropMode.from_name(args.crop),
        crop_offset=tuple(args.offset),
    ).clamped()

    result = ExportRenderer().render(asset, state, export_from_raw=export_from_raw)
    if not result.ok:
        raise ExportError(f"Nothing to export from {args.input}")
    file_logger.info(f"Rendered from {result.source} buffer")
    if not file_io.save_image(result.image, args.output, quality=quality, logger=file_logger):
        raise ExportError(f"Could not write {args.output}")
    return 0


def _cmd_batch(args) -> int:
    from cinegrade.workers.batch_worker import BatchExporter

    exporter = BatchExporter(args.preset, args.output_dir, quality=args.quality,
                             premium_unlocked=args.unlocked)
    summary = exporter.run(args.inputs)
    print(summary.message)
    return 0 if summary.started and summary.failed == 0 and summary.processed > 0 else 1


COMMANDS = {
    "grade": _cmd_grade,
    "batch": _cmd_batch,
    "presets": _cmd_presets,
}


def main(argv=None) -> int:
    args = _build_parser().parse_args(argv)
    setup_logging(console_level="DEBUG" if args.verbose else "INFO")

    if args.command != "presets":
        # JIT warmup overlaps with decoding
        from cinegrade import math_ops
        threading.Thread(target=math_ops.warmup, daemon=True).start()

    try:
        return COMMANDS[args.command](args)
    except CinegradeError as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
