"""Per-item pipeline: provider metadata to canonical MediaItem."""

from typing import Optional

from catalogsync.core.bitrate import (
    AudioInput,
    BitrateReconciler,
    total_bitrate_from_file,
)
from catalogsync.core.normalizer import (
    HDR_NONE,
    detect_object_audio,
    normalize_audio_channels,
    normalize_audio_codec,
    normalize_bitrate,
    normalize_container,
    normalize_frame_rate,
    normalize_hdr_format,
    normalize_resolution,
    normalize_sample_rate,
    normalize_video_codec,
    resolution_rank,
)
from catalogsync.core.selector import AudioTrackSelector
from catalogsync.core.versions import VersionNameExtractor
from catalogsync.exceptions import ItemConversionError
from catalogsync.models.media import MediaItem, MediaVersion
from catalogsync.models.metadata import MediaFile, MediaMetadata
from catalogsync.models.track import AudioTrack
from catalogsync.utils.language import normalize_language
from catalogsync.utils.logger import get_logger

logger = get_logger(__name__)


def version_sort_key(version: MediaVersion) -> tuple:
    """Quality ordering of versions: resolution, then HDR, then video bitrate."""
    return (
        resolution_rank(version.resolution),
        version.hdr_format != HDR_NONE,
        version.video_bitrate_kbps,
    )


class MediaItemBuilder:
    """Normalize, reconcile bitrates, select audio and assemble a MediaItem."""

    def __init__(
        self,
        reconciler: Optional[BitrateReconciler] = None,
        selector: Optional[AudioTrackSelector] = None,
        extractor: Optional[VersionNameExtractor] = None,
    ):
        self.reconciler = reconciler or BitrateReconciler()
        self.selector = selector or AudioTrackSelector()
        self.extractor = extractor or VersionNameExtractor()

    def build(
        self,
        metadata: MediaMetadata,
        source_id: str,
        source_type: str,
        library_id: str,
    ) -> Optional[MediaItem]:
        """Build the canonical record for one catalog entry.

        Args:
            metadata: Adapter output for the entry
            source_id: Source the entry came from
            source_type: Kind of source ("plex", "jellyfin", ...)
            library_id: Library the entry belongs to

        Returns:
            The canonical MediaItem, or None when no file has a video stream

        Raises:
            ItemConversionError: If the entry has no id or title
        """
        if not metadata.item_id:
            raise ItemConversionError("item has no provider id")
        if not metadata.title or not metadata.title.strip():
            raise ItemConversionError(f"item {metadata.item_id} has no title")

        versions = [
            self.build_version(f, metadata.bitrate_unit)
            for f in metadata.files
            if f.video is not None
        ]
        if not versions:
            logger.debug("Skipping item without video stream", item_id=metadata.item_id)
            return None

        self.extractor.extract(versions)
        best = max(versions, key=version_sort_key)

        item = MediaItem(
            provider_item_id=str(metadata.item_id),
            source_id=source_id,
            source_type=source_type,
            library_id=str(library_id),
            title=metadata.title.strip(),
            media_type=metadata.media_type,
            year=metadata.year,
            series_title=metadata.series_title,
            season_number=metadata.season_number,
            episode_number=metadata.episode_number,
            versions=versions,
            imdb_id=metadata.imdb_id,
            tmdb_id=metadata.tmdb_id,
            poster_url=metadata.poster_url,
            fanart_url=metadata.fanart_url,
        )
        item.apply_version(best)
        return item

    def build_version(self, media_file: MediaFile, bitrate_unit: str = "auto") -> MediaVersion:
        """Normalize one file's streams into a MediaVersion."""
        video = media_file.video

        total_kbps = total_bitrate_from_file(media_file.file_size_bytes, media_file.duration_ms)
        if total_kbps is None:
            total_kbps = normalize_bitrate(media_file.total_bitrate, bitrate_unit) or None

        inputs = []
        for stream in media_file.audio_streams:
            inputs.append(
                AudioInput(
                    codec=normalize_audio_codec(stream.codec, stream.profile),
                    channels=normalize_audio_channels(stream.channels, stream.channel_layout),
                    reported_kbps=normalize_bitrate(stream.bitrate, bitrate_unit),
                )
            )

        split = self.reconciler.reconcile(
            inputs,
            video_kbps=normalize_bitrate(video.bitrate, bitrate_unit),
            total_kbps=total_kbps,
            height=video.height,
        )

        tracks = []
        for stream, audio_input, kbps in zip(media_file.audio_streams, inputs, split.audio_kbps):
            tracks.append(
                AudioTrack(
                    index=stream.index,
                    codec=audio_input.codec,
                    channels=audio_input.channels,
                    bitrate_kbps=kbps,
                    language=normalize_language(stream.language),
                    title=stream.title,
                    is_default=stream.is_default,
                    sample_rate=normalize_sample_rate(stream.sample_rate),
                    has_object_audio=audio_input.codec == "DTS:X"
                    or detect_object_audio(
                        stream.codec, stream.profile, stream.title, stream.channel_layout
                    ),
                )
            )

        version = MediaVersion(
            file_path=media_file.file_path,
            file_size_bytes=media_file.file_size_bytes,
            duration_ms=media_file.duration_ms,
            container=normalize_container(media_file.container),
            resolution=normalize_resolution(video.width, video.height),
            width=video.width,
            height=video.height,
            video_codec=normalize_video_codec(video.codec),
            video_bitrate_kbps=split.video_kbps,
            video_frame_rate=normalize_frame_rate(video.frame_rate),
            color_bit_depth=video.bit_depth,
            hdr_format=normalize_hdr_format(
                video.range_hint,
                video.color_primaries,
                video.color_transfer,
                video.bit_depth,
                video.profile,
            ),
            total_bitrate_kbps=split.total_kbps,
            audio_tracks=tracks,
            has_object_audio=self.selector.has_object_audio(tracks),
        )

        best_track = self.selector.select(tracks)
        if best_track is not None:
            version.best_audio_index = best_track.index
            version.audio_codec = best_track.codec
            version.audio_channels = best_track.channels
            version.audio_bitrate_kbps = best_track.bitrate_kbps

        return version
