from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from .batch import Batch
from .config import BacSettings, cli_overrides_from_args
from .encoder import build_convert_cmd, cmd_to_string
from .engine import ConversionEngine
from .errors import ConversionError, ErrorKind
from .ffmpeg_check import Toolchain, probe_ffmpeg, probe_ffprobe
from .logging import bind_run, configure_logging
from .models import ProgressEvent, StatusEvent
from .presets import PRESETS, get_preset, list_presets
from .probe import probe_file
from .settings import (
    VBR_QUALITY_RANGE,
    BitrateMode,
    Channels,
    ConversionSettings,
    OutputFormat,
    Quality,
    SampleRate,
    format_spec,
)


EXIT_OK = 0
EXIT_WITH_FILE_ERRORS = 2
EXIT_PREFLIGHT_FAILED = 3
EXIT_INVALID_ARGS = 4


def _invalid(detail: str) -> ConversionError:
    return ConversionError("", ErrorKind.INVALID_SETTINGS, detail)


def settings_from_args(args: argparse.Namespace) -> ConversionSettings:
    """Build the conversion settings for a run.

    The preset (if any) is applied first and explicit flags after it, so a
    `--format` given alongside a preset drops the preset's bitrate.
    Raises ConversionError(invalid-settings) for values the format cannot take.
    """
    settings = ConversionSettings()
    if getattr(args, "preset", None):
        settings.load_from_preset(get_preset(args.preset))
    if getattr(args, "output_format", None):
        settings.output_format = OutputFormat(args.output_format)
    spec = settings.format_spec

    if getattr(args, "quality", None):
        settings.quality = Quality[args.quality.upper()]
        settings.custom_bitrate = None
    if getattr(args, "bitrate", None) is not None:
        if not spec.supports_bitrate:
            raise _invalid(f"{settings.output_format} is lossless and takes no bitrate")
        if args.bitrate not in spec.bitrate_options:
            options = ", ".join(str(b) for b in spec.bitrate_options)
            raise _invalid(f"{args.bitrate} kbps is not offered for {settings.output_format} (choose from {options})")
        settings.custom_bitrate = args.bitrate
    if getattr(args, "sample_rate", None) is not None:
        if args.sample_rate not in spec.sample_rate_options:
            options = ", ".join(str(r) for r in spec.sample_rate_options)
            raise _invalid(f"{args.sample_rate} Hz is not valid for {settings.output_format} (choose from {options})")
        settings.sample_rate = SampleRate(args.sample_rate)
    if getattr(args, "channels", None) is not None:
        settings.channels = Channels.from_count(args.channels)
    if getattr(args, "mode", None):
        mode = BitrateMode(args.mode)
        if mode is BitrateMode.VARIABLE and not spec.supports_vbr:
            raise _invalid(f"{settings.output_format} does not support variable bitrate")
        settings.bitrate_mode = mode
    if getattr(args, "vbr_quality", None) is not None:
        if args.vbr_quality not in VBR_QUALITY_RANGE:
            raise _invalid(f"VBR quality must be between {VBR_QUALITY_RANGE.start} and {VBR_QUALITY_RANGE.stop - 1}")
        settings.vbr_quality = args.vbr_quality
    return settings


def cmd_preflight(cfg: BacSettings) -> int:
    st = probe_ffmpeg(cfg.ffmpeg_path)
    if not st.available:
        logger.error(f"ffmpeg: NOT FOUND ({st.ffmpeg_path})")
        if st.error:
            logger.error(st.error)
        return EXIT_PREFLIGHT_FAILED
    logger.info(f"ffmpeg: {st.ffmpeg_path}")
    logger.info(f"version: {st.ffmpeg_version}")
    for fmt, ok in st.encoders.items():
        logger.info(f"{fmt} ({format_spec(fmt).codec}): {'YES' if ok else 'NO'}")

    st_probe = probe_ffprobe(cfg.ffprobe_path)
    logger.info(f"ffprobe: {'FOUND' if st_probe.available else 'NOT FOUND'}")
    if st_probe.available:
        logger.info(f"ffprobe path: {st_probe.ffprobe_path}")
    else:
        logger.warning("ffprobe unavailable; source info will be read with mutagen")

    if st.missing_encoders:
        missing = ", ".join(str(f) for f in st.missing_encoders)
        logger.warning(f"ffmpeg lacks encoders for: {missing}")
    return EXIT_OK


def cmd_presets() -> int:
    for preset in list_presets():
        print(f"[{preset.key}]")
        print(preset.detailed_description())
        print()
    return EXIT_OK


def cmd_formats() -> int:
    for fmt in OutputFormat:
        spec = format_spec(fmt)
        kind = "lossless" if spec.lossless else "lossy"
        print(f"{fmt}: .{spec.extension}, codec {spec.codec}, {kind}, VBR {'yes' if spec.supports_vbr else 'no'}")
        if spec.bitrate_options:
            print(f"  bitrates (kbps): {', '.join(str(b) for b in spec.bitrate_options)} (default {spec.default_bitrate})")
        print(f"  sample rates (Hz): {', '.join(str(r) for r in spec.sample_rate_options)}")
    return EXIT_OK


def cmd_info(cfg: BacSettings, files: list[str]) -> int:
    toolchain = Toolchain.resolve(cfg.ffmpeg_path, cfg.ffprobe_path)
    rc = EXIT_OK
    for f in files:
        p = Path(f)
        try:
            result = probe_file(p, ffprobe=toolchain.ffprobe, timeout_s=cfg.process_timeout_s)
        except ConversionError as e:
            logger.error(e.user_message())
            logger.debug(e.detail)
            rc = EXIT_WITH_FILE_ERRORS
            continue
        duration = f", Duration: {result.duration_s:.2f} s" if result.duration_s is not None else ""
        print(f"{p.name}: {result.info_string()}{duration}")
    return rc


def _write_summary(summary_path: Path, payload: dict[str, Any]) -> None:
    try:
        with open(summary_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)
        logger.debug(f"Run summary written: {summary_path}")
    except OSError as e:
        logger.warning(f"Failed to write run summary JSON: {e}")


def cmd_convert(cfg: BacSettings, args: argparse.Namespace) -> int:
    try:
        settings = settings_from_args(args)
    except ConversionError as e:
        logger.error(e.user_message())
        return EXIT_INVALID_ARGS

    batch = Batch()
    batch.add_inputs(args.inputs, recursive=args.recursive)
    if len(batch) == 0:
        logger.error("No supported audio files to convert (mp3, wav, m4a, flac)")
        return EXIT_INVALID_ARGS

    toolchain = Toolchain.resolve(cfg.ffmpeg_path, cfg.ffprobe_path)
    out_dir = Path(args.out_dir).expanduser().absolute()

    if args.dry_run:
        for audio_file in batch:
            cmd, _ = build_convert_cmd(audio_file, settings, out_dir, ffmpeg=toolchain.ffmpeg)
            print(cmd_to_string(cmd))
        return EXIT_OK

    run_id = bind_run()

    def on_event(event: Any) -> None:
        if isinstance(event, StatusEvent):
            logger.debug(f"{event.audio_file.name}: {event.status.display_name}")
        elif isinstance(event, ProgressEvent):
            logger.debug(f"Completed {event.completed} of {event.total} files ({event.fraction:.0%})")

    engine = ConversionEngine(
        toolchain,
        workers=cfg.workers,
        probe=cfg.probe,
        timeout_s=cfg.process_timeout_s,
    )
    engine.subscribe(on_event)
    try:
        summary = engine.run_batch(batch.files, settings, out_dir)
    except ConversionError as e:
        logger.error(e.user_message())
        return EXIT_WITH_FILE_ERRORS
    finally:
        engine.shutdown()

    for r in summary.failures:
        if r.error is not None:
            logger.warning(f"{r.audio_file.name}: {r.error.kind.message}")
    logger.info(f"Conversion complete: {summary.successful} successful, {summary.failed} failed")
    logger.info(f"Output location: {summary.output_dir}")

    if cfg.log_json:
        payload = summary.as_dict()
        payload.update({"run_id": run_id, "settings": settings.describe(), "workers": engine.workers})
        _write_summary(Path(str(cfg.log_json) + ".summary.json"), payload)
    return EXIT_OK if summary.failed == 0 else EXIT_WITH_FILE_ERRORS


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="batch-audio-converter")
    # Config/Logging options (defaults resolved via BacSettings)
    p.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to TOML config (default: ~/.config/batch-audio-converter/config.toml)",
    )
    p.add_argument(
        "--write-config",
        action="store_true",
        help="Write current effective settings to the config file and exit",
    )
    p.add_argument("--log-level", default=None, help="Console log level (DEBUG, INFO, WARNING, ERROR)")
    p.add_argument("--log-json", dest="log_json", default=None, help="Path to write JSON lines log (structured events)")
    p.add_argument("--ffmpeg", dest="ffmpeg_path", default=None, help="ffmpeg binary (default: PATH, then known locations)")
    p.add_argument("--ffprobe", dest="ffprobe_path", default=None, help="ffprobe binary (default: PATH, then known locations)")
    sub = p.add_subparsers(dest="cmd")

    sub.add_parser("preflight", help="Check ffmpeg/ffprobe and encoder availability")
    sub.add_parser("presets", help="List conversion presets")
    sub.add_parser("formats", help="List output formats and the options each accepts")

    p_info = sub.add_parser("info", help="Show codec, sample rate, channels and bitrate of audio files")
    p_info.add_argument("files", nargs="+", help="Audio files to inspect")

    p_conv = sub.add_parser("convert", help="Convert audio files (or directories of them) into one output directory")
    p_conv.add_argument("inputs", nargs="+", help="Audio files and/or directories")
    p_conv.add_argument("--out", "-o", dest="out_dir", required=True, help="Output directory")
    p_conv.add_argument("--recursive", "-r", action="store_true", help="Descend into subdirectories of directory inputs")
    p_conv.add_argument("--preset", choices=list(PRESETS), default=None, help="Apply a preset before other options")
    p_conv.add_argument("--format", "-f", dest="output_format", choices=[f.value for f in OutputFormat], default=None)
    p_conv.add_argument("--quality", choices=[q.name.lower() for q in Quality], default=None, help="Bitrate tier")
    p_conv.add_argument("--bitrate", type=int, default=None, help="Custom bitrate in kbps (overrides --quality)")
    p_conv.add_argument("--sample-rate", type=int, default=None, help="Output sample rate in Hz")
    p_conv.add_argument("--channels", type=int, choices=[c.count for c in Channels], default=None)
    p_conv.add_argument("--mode", choices=[m.value for m in BitrateMode], default=None, help="Constant or variable bitrate")
    p_conv.add_argument("--vbr-quality", type=int, default=None, help="VBR quality 0 (best) .. 5 (smallest)")
    p_conv.add_argument("--workers", type=int, default=None, help="Parallel conversions (default from settings: 4)")
    p_conv.add_argument(
        "--timeout", dest="process_timeout_s", type=float, default=None, help="Kill an encoder running longer than this (s)"
    )
    p_conv.add_argument(
        "--no-probe", dest="probe", action="store_const", const=False, default=None, help="Skip probing sources"
    )
    p_conv.add_argument("--dry-run", action="store_true", help="Print the ffmpeg commands and exit")
    return p


def main(argv: Optional[list[str]] = None) -> int:
    p = build_parser()
    args = p.parse_args(argv)
    # Load settings: defaults + TOML + env + CLI overrides
    overrides = cli_overrides_from_args(args)
    config_path = Path(args.config_path).expanduser() if args.config_path else None
    cfg = BacSettings.load(config_path=config_path, overrides=overrides)

    if args.write_config:
        written = cfg.write(config_path)
        print(f"Config written to: {written}")
        return EXIT_OK
    if not args.cmd:
        p.error("a command is required")

    configure_logging(cfg.log_level, cfg.log_json)
    if args.cmd == "preflight":
        return cmd_preflight(cfg)
    if args.cmd == "presets":
        return cmd_presets()
    if args.cmd == "formats":
        return cmd_formats()
    if args.cmd == "info":
        return cmd_info(cfg, args.files)
    if args.cmd == "convert":
        return cmd_convert(cfg, args)
    p.error("unknown command")
    return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
