"""Entry point for LayerMedia - handles CLI arg parsing."""

from __future__ import annotations

import argparse
import getpass
import sys
from functools import partial

from layermedia import __version__


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config", "-c",
        type=str,
        default=None,
        help="Path to a YAML batch configuration file",
    )
    parser.add_argument(
        "--headless",
        action="store_true",
        help="Only print the final result",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Debug logging",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="layermedia",
        description="Capture, transcode and distribute generative artworks",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("capture", help="Export frames of a live artwork")
    p.add_argument("url")
    p.add_argument("--frames", "-n", type=int, required=True, help="Number of frames")
    p.add_argument("--fps", type=float, default=30.0)
    p.add_argument("--resolution", "-r", choices=["2k", "4k", "8k"], default="2k")
    p.add_argument("--format", "-f", choices=["jpeg", "png"], default="jpeg")
    p.add_argument("--output", "-o", default=None, help="Output directory")
    p.add_argument("--name", default="frames", help="Folder name inside the output directory")
    _add_common(p)

    p = sub.add_parser("extract", help="Extract frames from a video file")
    p.add_argument("video")
    p.add_argument("--fps", type=float, default=30.0)
    p.add_argument("--format", "-f", choices=["jpeg", "png"], default="jpeg")
    p.add_argument("--output", "-o", default=None, help="Output directory")
    p.add_argument("--name", default=None, help="Folder name (default: video file stem)")
    _add_common(p)

    p = sub.add_parser("record", help="Record a live artwork to video")
    p.add_argument("url")
    p.add_argument("--duration", "-d", type=int, required=True, help="Seconds")
    p.add_argument("--format", "-f", choices=["prores", "mp4"], default="mp4")
    p.add_argument("--resolution", "-r", choices=["2k", "4k"], default="2k")
    p.add_argument("--artist", required=True)
    p.add_argument("--title", required=True)
    p.add_argument("--variation", type=int, default=1)
    p.add_argument("--output", "-o", default=None, help="Output directory")
    _add_common(p)

    p = sub.add_parser("web-assets", help="Transcode videos into web delivery formats")
    p.add_argument("files", nargs="*", help="Video files or directories")
    p.add_argument("--output", "-o", default=None, help="Output directory")
    _add_common(p)

    p = sub.add_parser("gif", help="Export size-bounded GIFs")
    p.add_argument("input")
    p.add_argument("--start", type=float, default=None)
    p.add_argument("--end", type=float, default=None)
    p.add_argument("--sizes", nargs="+", default=None, help="10mb 5mb 2mb 1mb")
    p.add_argument("--scales", nargs="+", default=None, help="original 720p 480p 360p 240p")
    p.add_argument("--fps", type=float, default=None)
    p.add_argument("--no-dither", action="store_true")
    _add_common(p)

    p = sub.add_parser("compress", help="Compress a video with H.264")
    p.add_argument("input")
    p.add_argument("--scale", default=None, help="original 1080p 720p 480p")
    p.add_argument("--crf", type=int, default=None)
    p.add_argument("--preset", default=None, help="slow medium fast veryfast")
    p.add_argument("--audio-bitrate", type=int, default=None, help="kbps")
    p.add_argument("--remove-audio", action="store_true", default=None)
    _add_common(p)

    p = sub.add_parser("upload", help="Upload folders to the CDN")
    p.add_argument("folders", nargs="+")
    _add_common(p)

    p = sub.add_parser("download", help="Download everything under the CDN path")
    p.add_argument("destination")
    _add_common(p)

    p = sub.add_parser("scan", help="Count files and bytes under the CDN path")
    _add_common(p)

    p = sub.add_parser("login-cdn", help="Store CDN storage credentials")
    p.add_argument("--zone", required=True, help="Storage zone name")
    p.add_argument("--path", default="", help="Default remote path")
    p.add_argument("--clear", action="store_true", help="Remove stored credentials")
    _add_common(p)

    return parser.parse_args(argv)


def _pick(cli_value, config_value, default):
    """Precedence: CLI > YAML > default."""
    if cli_value is not None:
        return cli_value
    if config_value is not None:
        return config_value
    return default


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    from layermedia.app import configure_logging, ensure_qt_application, run_command
    from layermedia.config import Settings
    from layermedia.orchestrator import Orchestrator
    from layermedia.store import CdnConfig, CredentialStore

    configure_logging(args.verbose)

    settings = Settings.load()
    config = None
    if args.config:
        from layermedia.yaml_config import apply_config_to_settings, load_batch_config

        config = load_batch_config(args.config)
        apply_config_to_settings(config, settings)

    credentials = CredentialStore()
    orchestrator = Orchestrator(settings, credentials)
    run = partial(run_command, headless=args.headless)

    if args.command == "capture":
        from layermedia.capture.frames import GenerativeCaptureRequest
        from layermedia.model.session import ImageFormat

        ensure_qt_application()
        request = GenerativeCaptureRequest(
            url=args.url,
            fps=args.fps,
            total_frames=args.frames,
            resolution=args.resolution,
            image_format=ImageFormat(args.format),
            output_dir=args.output or settings.capture_output_dir,
            folder_name=args.name,
        )
        return run(partial(orchestrator.start_generative_capture, request), orchestrator.stop_capture)

    if args.command == "extract":
        from pathlib import Path

        from layermedia.capture.frames import FrameExtractionRequest
        from layermedia.model.session import ImageFormat

        request = FrameExtractionRequest(
            video_path=args.video,
            fps=args.fps,
            image_format=ImageFormat(args.format),
            output_dir=args.output or settings.capture_output_dir,
            folder_name=args.name or Path(args.video).stem,
        )
        return run(partial(orchestrator.start_video_frame_extraction, request), orchestrator.stop_capture)

    if args.command == "record":
        from layermedia.capture.recorder import RecordingRequest

        ensure_qt_application()
        request = RecordingRequest(
            url=args.url,
            duration_seconds=args.duration,
            format=args.format,
            resolution=args.resolution,
            artist_name=args.artist,
            artwork_title=args.title,
            variation=args.variation,
            output_dir=args.output or "",
        )
        return run(partial(orchestrator.start_recording, request), orchestrator.stop_recording)

    if args.command == "web-assets":
        from layermedia.fanout.web_assets import find_video_files

        # Precedence: CLI positional args > YAML inputs
        sources = args.files or (config.inputs if config else [])
        files = [f for source in sources for f in find_video_files(source)]
        if not files:
            print("Error: no input video files found", file=sys.stderr)
            return 1
        output = args.output or (config.web_assets_dir if config else None)
        return run(
            partial(orchestrator.start_web_asset_fanout, files, output),
            orchestrator.cancel_web_assets,
        )

    if args.command == "gif":
        from layermedia.encode.ffprobe import get_duration
        from layermedia.encode.gif import GifRequest

        start = _pick(args.start, config and config.gif_start, 0.0)
        end = _pick(args.end, config and config.gif_end, None)
        if end is None:
            from layermedia.errors import LayerMediaError

            try:
                end = get_duration(args.input, ffprobe=settings.resolved_ffprobe_path)
            except (LayerMediaError, OSError) as e:
                print(f"Error: {e}", file=sys.stderr)
                return 1
        request = GifRequest(
            input_path=args.input,
            start_time=start,
            end_time=end,
            target_sizes=[s.lower() for s in _pick(args.sizes, config and config.gif_sizes, ["5mb"])],
            scales=_pick(args.scales, config and config.gif_scales, ["480p"]),
            fps=_pick(args.fps, config and config.gif_fps, 15.0),
            dithering=_pick(
                False if args.no_dither else None, config and config.gif_dithering, True
            ),
        )
        return run(partial(orchestrator.generate_gif, request), orchestrator.cancel_gif)

    if args.command == "compress":
        from layermedia.encode.compress import CompressRequest

        request = CompressRequest(
            input_path=args.input,
            scale=_pick(args.scale, config and config.compress_scale, "original"),
            crf=_pick(args.crf, config and config.compress_crf, 23),
            preset=_pick(args.preset, config and config.compress_preset, "medium"),
            audio_bitrate_kbps=_pick(args.audio_bitrate, config and config.compress_audio_bitrate, 128),
            remove_audio=_pick(args.remove_audio, config and config.compress_remove_audio, False),
        )
        return run(partial(orchestrator.compress_video, request), orchestrator.cancel_compression)

    if args.command == "upload":
        return run(partial(orchestrator.upload_folders, args.folders), orchestrator.cancel_transfer)

    if args.command == "download":
        return run(partial(orchestrator.download_all, args.destination), orchestrator.cancel_transfer)

    if args.command == "scan":
        from layermedia.errors import LayerMediaError

        try:
            files, total_bytes = orchestrator.scan_remote()
        except LayerMediaError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        print(f"{files} files, {total_bytes / 1e6:.1f}MB")
        return 0

    if args.command == "login-cdn":
        if args.clear:
            credentials.clear_cdn_config()
            print("CDN credentials removed.")
            return 0
        api_key = getpass.getpass("Storage API key: ")
        if not api_key:
            print("Error: an API key is required", file=sys.stderr)
            return 1
        credentials.set_cdn_config(CdnConfig(api_key, args.zone, args.path.strip("/")))
        print(f"CDN credentials saved for zone {args.zone}.")
        return 0

    return 1


if __name__ == "__main__":
    sys.exit(main())
