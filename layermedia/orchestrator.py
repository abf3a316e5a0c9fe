"""The command surface: every long-running operation and its stop command.

Each command blocks until done, streams events to ``on_event`` and returns
the terminal event. Stop/cancel commands may be called from any thread,
any number of times, whether or not the matching command is running.
Frame export, video frame extraction and recording share one capture
slot; starting one while another runs fails immediately with a busy
error.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

from layermedia.capture.frames import (
    FrameExtractionRequest,
    GenerativeCaptureRequest,
    SurfaceFactory,
    capture_generative_frames,
    default_surface_factory,
    extract_video_frames,
)
from layermedia.capture.recorder import RecordingRequest, record_artwork
from layermedia.cdn import sync
from layermedia.cdn.storage import BunnyStorage
from layermedia.config import Settings
from layermedia.encode.compress import CompressRequest, compress_video
from layermedia.encode.gif import GifRequest, generate_gifs
from layermedia.encode.process import EncoderProcess
from layermedia.errors import SpawnError, ValidationError
from layermedia.fanout.web_assets import generate_web_assets
from layermedia.model.cancel import CancelToken
from layermedia.model.progress import (
    CompressProgress,
    DownloadProgress,
    FrameCaptureProgress,
    GifProgress,
    ProgressEmitter,
    RecordingProgress,
    Status,
    UploadProgress,
    WebAssetProgress,
)
from layermedia.model.session import CapturePurpose, CaptureSlot
from layermedia.store import CdnConfig, CredentialStore

logger = logging.getLogger(__name__)

StorageFactory = Callable[[CdnConfig, Settings], BunnyStorage]


def default_storage_factory(config: CdnConfig, settings: Settings) -> BunnyStorage:
    return BunnyStorage(
        config.storage_api_key,
        config.storage_zone_name,
        base_url=settings.cdn_base_url,
        timeout=settings.http_timeout_sec,
        chunk_size=settings.download_chunk_bytes,
    )


class Orchestrator:
    def __init__(
        self,
        settings: Settings | None = None,
        credentials: CredentialStore | None = None,
        surface_factory: SurfaceFactory = default_surface_factory,
        storage_factory: StorageFactory = default_storage_factory,
        process_factory: Callable[..., EncoderProcess] = EncoderProcess,
    ):
        self.settings = settings or Settings()
        self.credentials = credentials or CredentialStore()
        self.capture_slot = CaptureSlot()
        self._surface_factory = surface_factory
        self._storage_factory = storage_factory
        self._process_factory = process_factory
        self._lock = threading.Lock()
        self._tokens: dict[str, set[CancelToken]] = {}

    # Live cancel tokens of the non-capture commands, keyed by command family

    def _start(self, kind: str) -> CancelToken:
        token = CancelToken()
        with self._lock:
            self._tokens.setdefault(kind, set()).add(token)
        return token

    def _done(self, kind: str, token: CancelToken) -> None:
        with self._lock:
            live = self._tokens.get(kind, set())
            live.discard(token)
            if not live:
                self._tokens.pop(kind, None)

    def _cancel(self, kind: str) -> None:
        with self._lock:
            live = list(self._tokens.get(kind, ()))
        if live:
            logger.info("Cancelling %d %s command(s)", len(live), kind)
        for token in live:
            token.cancel()

    def _stop_capture_purpose(self, purpose: CapturePurpose) -> None:
        session = self.capture_slot.active
        if session is not None and session.purpose is purpose:
            logger.info("Stopping %s capture at frame %d", purpose.value, session.current_frame_index)
            session.cancel_token.cancel()

    # Capture

    def start_generative_capture(
        self,
        request: GenerativeCaptureRequest,
        on_event: Callable[[FrameCaptureProgress], None] | None = None,
    ) -> FrameCaptureProgress:
        return capture_generative_frames(
            request,
            self.capture_slot,
            on_event,
            settings=self.settings,
            surface_factory=self._surface_factory,
        )

    def start_video_frame_extraction(
        self,
        request: FrameExtractionRequest,
        on_event: Callable[[FrameCaptureProgress], None] | None = None,
    ) -> FrameCaptureProgress:
        try:
            ffmpeg = self.settings.resolved_ffmpeg_path
            ffprobe = self.settings.resolved_ffprobe_path
        except SpawnError as e:
            return ProgressEmitter(on_event).finish(
                FrameCaptureProgress(0, 0, Status.ERROR, error=str(e))
            )
        return extract_video_frames(
            request, ffmpeg, ffprobe, self.capture_slot, on_event,
            process_factory=self._process_factory,
        )

    def stop_capture(self) -> None:
        self._stop_capture_purpose(CapturePurpose.FRAMES)

    def start_recording(
        self,
        request: RecordingRequest,
        on_event: Callable[[RecordingProgress], None] | None = None,
    ) -> RecordingProgress:
        try:
            ffmpeg = self.settings.resolved_ffmpeg_path
        except SpawnError as e:
            return ProgressEmitter(on_event).finish(RecordingProgress(0, Status.ERROR, error=str(e)))
        return record_artwork(
            request,
            ffmpeg,
            self.capture_slot,
            on_event,
            settings=self.settings,
            surface_factory=self._surface_factory,
            process_factory=self._process_factory,
        )

    def stop_recording(self) -> None:
        self._stop_capture_purpose(CapturePurpose.RECORDING)

    # Transcoding

    def start_web_asset_fanout(
        self,
        file_paths: list[str],
        output_dir: str | None = None,
        on_event: Callable[[WebAssetProgress], None] | None = None,
    ) -> WebAssetProgress:
        try:
            ffmpeg = self.settings.resolved_ffmpeg_path
            ffprobe = self.settings.resolved_ffprobe_path
        except SpawnError as e:
            return ProgressEmitter(on_event).finish(
                WebAssetProgress("", "", "", 0, Status.ERROR, error=str(e))
            )
        token = self._start("web_assets")
        try:
            return generate_web_assets(
                file_paths,
                output_dir or self.settings.web_assets_output_dir,
                ffmpeg,
                ffprobe,
                on_event,
                cancel_token=token,
                minimum_duration=self.settings.min_web_asset_duration_sec,
                process_factory=self._process_factory,
            )
        finally:
            self._done("web_assets", token)

    def cancel_web_assets(self) -> None:
        self._cancel("web_assets")

    def generate_gif(
        self,
        request: GifRequest,
        on_event: Callable[[GifProgress], None] | None = None,
    ) -> GifProgress:
        try:
            ffmpeg = self.settings.resolved_ffmpeg_path
        except SpawnError as e:
            return ProgressEmitter(on_event).finish(
                GifProgress(0, 0, "", "", 0, Status.ERROR, error=str(e))
            )
        token = self._start("gif")
        try:
            return generate_gifs(
                request, ffmpeg, on_event, cancel_token=token, process_factory=self._process_factory
            )
        finally:
            self._done("gif", token)

    def cancel_gif(self) -> None:
        self._cancel("gif")

    def compress_video(
        self,
        request: CompressRequest,
        on_event: Callable[[CompressProgress], None] | None = None,
    ) -> CompressProgress:
        try:
            ffmpeg = self.settings.resolved_ffmpeg_path
            ffprobe = self.settings.resolved_ffprobe_path
        except SpawnError as e:
            return ProgressEmitter(on_event).finish(
                CompressProgress(0, 0, 0, Status.ERROR, error=str(e))
            )
        token = self._start("compress")
        try:
            return compress_video(
                request, ffmpeg, ffprobe, on_event,
                cancel_token=token, process_factory=self._process_factory,
            )
        finally:
            self._done("compress", token)

    def cancel_compression(self) -> None:
        self._cancel("compress")

    # CDN

    def _storage(self) -> tuple[BunnyStorage, CdnConfig]:
        config = self.credentials.get_cdn_config()
        if config is None:
            raise ValidationError("CDN is not configured. Run 'layermedia login-cdn' first.")
        return self._storage_factory(config, self.settings), config

    def upload_folders(
        self,
        local_paths: list[str],
        on_event: Callable[[UploadProgress], None] | None = None,
    ) -> UploadProgress:
        try:
            storage, config = self._storage()
        except ValidationError as e:
            return ProgressEmitter(on_event).finish(UploadProgress(0, 0, "", Status.ERROR, error=str(e)))
        token = self._start("transfer")
        try:
            return sync.upload_folders(
                storage, local_paths, config.default_remote_path, on_event, token
            )
        finally:
            self._done("transfer", token)
            storage.close()

    def download_all(
        self,
        destination: str,
        on_event: Callable[[DownloadProgress], None] | None = None,
    ) -> DownloadProgress:
        try:
            storage, config = self._storage()
        except ValidationError as e:
            return ProgressEmitter(on_event).finish(
                DownloadProgress(0, 0, 0, 0, Status.ERROR, error=str(e))
            )
        token = self._start("transfer")
        try:
            return sync.download_all(
                storage, config.default_remote_path, destination, on_event, token
            )
        finally:
            self._done("transfer", token)
            storage.close()

    def scan_remote(self) -> tuple[int, int]:
        """Return ``(total_files, total_bytes)`` under the configured remote path.

        Raises:
            ValidationError: If the CDN is not configured.
            TransferError: If the listing fails for a reason other than not-found.
        """
        storage, config = self._storage()
        try:
            return sync.scan_remote(storage, config.default_remote_path)
        finally:
            storage.close()

    def cancel_transfer(self) -> None:
        self._cancel("transfer")
