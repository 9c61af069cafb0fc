"""Stream analysis of local media files using ffprobe."""

import json
import subprocess
from pathlib import Path
from typing import Optional

from catalogsync.exceptions import AnalysisError
from catalogsync.models.metadata import AudioStream, MediaFile, MediaMetadata, VideoStream
from catalogsync.utils.logger import get_logger

logger = get_logger(__name__)


def _int(value) -> Optional[int]:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _stream_bitrate(stream: dict) -> Optional[int]:
    """Stream bitrate in bps; MKV muxers often only write a BPS tag."""
    bitrate = _int(stream.get("bit_rate"))
    if bitrate:
        return bitrate
    tags = stream.get("tags", {})
    return _int(tags.get("BPS") or tags.get("BPS-eng"))


def _bit_depth(stream: dict) -> Optional[int]:
    depth = _int(stream.get("bits_per_raw_sample"))
    if depth:
        return depth
    pix_fmt = stream.get("pix_fmt") or ""
    if "12le" in pix_fmt or "12be" in pix_fmt:
        return 12
    if "10le" in pix_fmt or "10be" in pix_fmt:
        return 10
    return 8 if pix_fmt else None


def parse_ffprobe_output(data: dict, file_path: Path) -> MediaMetadata:
    """Convert ffprobe JSON into MediaMetadata (bitrates in bps).

    Args:
        data: Decoded ``ffprobe -show_streams -show_format`` output
        file_path: File the output belongs to

    Returns:
        MediaMetadata with a single MediaFile
    """
    fmt = data.get("format", {})
    video: Optional[VideoStream] = None
    audio_streams: list[AudioStream] = []

    for position, stream in enumerate(data.get("streams", [])):
        codec_type = stream.get("codec_type")
        disposition = stream.get("disposition", {})
        tags = stream.get("tags", {})

        if codec_type == "video" and video is None and not disposition.get("attached_pic"):
            side_data = " ".join(s.get("side_data_type", "") for s in stream.get("side_data_list", []))
            video = VideoStream(
                codec=stream.get("codec_name"),
                profile=stream.get("profile"),
                width=_int(stream.get("width")),
                height=_int(stream.get("height")),
                bitrate=_stream_bitrate(stream),
                frame_rate=stream.get("avg_frame_rate") or stream.get("r_frame_rate"),
                bit_depth=_bit_depth(stream),
                range_hint="dovi" if "DOVI" in side_data else None,
                color_primaries=stream.get("color_primaries"),
                color_transfer=stream.get("color_transfer"),
            )
        elif codec_type == "audio":
            audio_streams.append(
                AudioStream(
                    index=_int(stream.get("index")) if stream.get("index") is not None else position,
                    codec=stream.get("codec_name"),
                    profile=stream.get("profile"),
                    channels=_int(stream.get("channels")),
                    channel_layout=stream.get("channel_layout"),
                    bitrate=_stream_bitrate(stream),
                    sample_rate=_int(stream.get("sample_rate")),
                    language=tags.get("language"),
                    title=tags.get("title"),
                    is_default=disposition.get("default", 0) == 1,
                )
            )

    duration = fmt.get("duration")
    duration_ms = round(float(duration) * 1000) if duration else None

    media_file = MediaFile(
        file_path=str(file_path),
        file_size_bytes=_int(fmt.get("size")),
        duration_ms=duration_ms,
        container=fmt.get("format_name") or file_path.suffix.lstrip("."),
        total_bitrate=_int(fmt.get("bit_rate")),
        video=video,
        audio_streams=audio_streams,
    )
    return MediaMetadata(
        item_id=str(file_path),
        title=fmt.get("tags", {}).get("title") or file_path.stem,
        files=[media_file],
        bitrate_unit="bps",
    )


class FileAnalyzer:
    """Analyze media files with ffprobe."""

    def __init__(self, ffprobe_path: str = "ffprobe", timeout: int = 30):
        self.ffprobe_path = ffprobe_path
        self.timeout = timeout

    def analyze(self, file_path: Path) -> MediaMetadata:
        """Probe a file's container and streams.

        Blocking; callers in async code run it with ``asyncio.to_thread``.

        Args:
            file_path: Path to media file

        Returns:
            MediaMetadata with bitrates in bps

        Raises:
            AnalysisError: If the file is missing or ffprobe fails
        """
        file_path = Path(file_path)
        if not file_path.exists():
            raise AnalysisError(f"File not found: {file_path}")

        logger.debug("Analyzing file", file=str(file_path))

        cmd = [
            self.ffprobe_path,
            "-v",
            "quiet",
            "-print_format",
            "json",
            "-show_streams",
            "-show_format",
            str(file_path),
        ]

        try:
            result = subprocess.run(
                cmd, capture_output=True, text=True, check=True, timeout=self.timeout
            )
            data = json.loads(result.stdout)
        except subprocess.TimeoutExpired as e:
            logger.error("ffprobe timeout", file=str(file_path), timeout=self.timeout)
            raise AnalysisError(f"ffprobe timed out after {self.timeout}s: {file_path}") from e
        except subprocess.CalledProcessError as e:
            logger.error(
                "ffprobe failed",
                file=str(file_path),
                returncode=e.returncode,
                stderr=e.stderr,
            )
            raise AnalysisError(f"ffprobe failed ({e.returncode}): {file_path}") from e
        except json.JSONDecodeError as e:
            logger.error("Failed to parse ffprobe output", file=str(file_path), error=str(e))
            raise AnalysisError(f"Invalid ffprobe output for {file_path}") from e
        except OSError as e:
            raise AnalysisError(f"Cannot run {self.ffprobe_path}: {e}") from e

        metadata = parse_ffprobe_output(data, file_path)
        media_file = metadata.primary_file
        logger.debug(
            "File analyzed",
            file=str(file_path),
            has_video=media_file.video is not None,
            audio_tracks=len(media_file.audio_streams),
            duration_ms=media_file.duration_ms,
        )
        return metadata
