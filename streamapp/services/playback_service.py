"""
Playback, recording and view-count resolution for streams.

Once a stream has ended its vendor asset (``asset_id`` / ``asset_playback_id``)
is preferred over the stream's own playback id. Identifiers discovered while
answering a request are written back to the stream row so later requests can
skip the vendor round trips.
"""
import logging
import time

import requests
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from streamapp import db, cache
from streamapp.events import broadcast_stream_update
from streamapp.services.livepeer_service import (
    LivepeerService, LivepeerError, asset_source_stream_id, asset_status_phase,
    is_asset_ready, session_recording_url,
)
from streamapp.utils.helpers import get_current_utc

logger = logging.getLogger(__name__)

VENDOR_ERRORS = (LivepeerError, requests.RequestException, ValueError)
HLS_TYPES = ('application/x-mpegURL', 'application/vnd.apple.mpegurl')


class PlaybackError(Exception):
    pass


class AssetNotReady(PlaybackError):
    """The vendor asset exists but is still processing."""

    def __init__(self, status, source='asset'):
        super().__init__(f"Asset is {status}. Please try again in a few moments.")
        self.status = status
        self.source = source


class PlaybackUnavailable(PlaybackError):
    pass


class RecordingUnavailable(PlaybackError):
    pass


def _commit(stream, action):
    try:
        db.session.commit()
        return True
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"PlaybackService: Failed to {action} for stream {stream.id}: {e}")
        return False


def _thumbnail(livepeer, playback_id, max_retries=2):
    return livepeer.generate_and_verify_thumbnail(
        playback_id,
        max_retries=max_retries,
        retry_delay=current_app.config.get('THUMBNAIL_RETRY_DELAY', 2),
    )


def remember_asset(stream, asset):
    """Caches a discovered vendor asset on the stream row."""
    if not asset or not asset.get('id'):
        return
    if stream.asset_id == asset['id'] and stream.asset_playback_id == asset.get('playbackId'):
        return
    stream.asset_id = asset['id']
    if asset.get('playbackId'):
        stream.asset_playback_id = asset['playbackId']
    if _commit(stream, 'store asset id'):
        logger.info(f"PlaybackService: Stored asset {asset['id']} for stream {stream.id}")


@cache.memoize(timeout=30)
def fetch_total_views(playback_id):
    return LivepeerService().get_total_views(playback_id)


def resolve_views_playback_id(stream, livepeer=None) -> tuple[str | None, bool]:
    """
    Picks the playback id that lifetime views should be counted against.

    Returns:
        A tuple (playback_id, is_asset_playback_id). For an ended stream whose
        asset is not ready yet this is (None, False).
    """
    livepeer = livepeer or LivepeerService()

    if stream.has_ended and stream.asset_id:
        if stream.asset_playback_id:
            return stream.asset_playback_id, True
        try:
            asset = livepeer.get_asset(stream.asset_id)
        except VENDOR_ERRORS as e:
            logger.warning(f"PlaybackService: Could not fetch asset {stream.asset_id} for stream {stream.id}: {e}")
            asset = None
        if asset and asset.get('playbackId'):
            remember_asset(stream, asset)
            return asset['playbackId'], True

    if stream.has_ended and stream.livepeer_stream_id:
        asset = livepeer.get_stream_asset(stream.livepeer_stream_id)
        if asset and asset.get('playbackId'):
            remember_asset(stream, asset)
            return asset['playbackId'], True
        logger.info(f"PlaybackService: Views unavailable for ended stream {stream.id} until its asset is ready")
        return None, False

    return stream.livepeer_playback_id, False


def find_recording(stream, livepeer=None) -> bool:
    """
    Locates a VOD URL for an ended stream and persists it.

    Sources are tried in order: recorded sessions, the stream's recordings,
    a ready asset, and finally the stream playback id served as HLS.
    Returns True when the row was updated.
    """
    livepeer = livepeer or LivepeerService()
    if not stream.has_ended or not stream.livepeer_stream_id:
        return False

    vod_url = stream.vod_url
    preview_image_url = stream.preview_image_url

    try:
        stream_data = livepeer.get_stream(stream.livepeer_stream_id)
        sessions = stream_data.get('sessions') or []
        if not sessions:
            sessions = livepeer.get_stream_sessions(stream.livepeer_stream_id, limit=10, record_only=True)
        for session in sessions:
            if session.get('record') and (session.get('recordingUrl') or session.get('playbackUrl')):
                vod_url = vod_url or session.get('recordingUrl') or session.get('playbackUrl')
                break
        recordings = stream_data.get('recordings') or []
        if not vod_url and recordings:
            vod_url = recordings[0].get('recordingUrl') or recordings[0].get('playbackUrl')
    except VENDOR_ERRORS as e:
        logger.warning(f"PlaybackService: Session lookup failed for stream {stream.id}: {e}")

    if not vod_url:
        asset = livepeer.get_stream_asset(stream.livepeer_stream_id)
        if asset and is_asset_ready(asset):
            remember_asset(stream, asset)
            if asset.get('playbackId'):
                vod_url = livepeer.hls_url(asset['playbackId'])
            elif asset.get('playbackUrl'):
                vod_url = asset['playbackUrl']
            if not preview_image_url and asset.get('playbackId'):
                preview_image_url = _thumbnail(livepeer, asset['playbackId'])
        elif asset:
            logger.info(f"PlaybackService: Asset for stream {stream.id} is {asset_status_phase(asset)}")

    if not vod_url and stream.livepeer_playback_id:
        vod_url = livepeer.hls_url(stream.livepeer_playback_id)

    if vod_url and vod_url != stream.vod_url:
        stream.vod_url = vod_url
        stream.preview_image_url = preview_image_url or stream.preview_image_url
        return _commit(stream, 'store recording')
    return False


def ensure_preview_image(stream, livepeer=None) -> bool:
    livepeer = livepeer or LivepeerService()
    if stream.preview_image_url or not (stream.livepeer_stream_id or stream.livepeer_playback_id):
        return False

    preview_image_url = None
    if stream.has_ended and stream.livepeer_stream_id:
        asset = livepeer.get_stream_asset(stream.livepeer_stream_id)
        if asset and asset.get('playbackId'):
            preview_image_url = _thumbnail(livepeer, asset['playbackId'])
    if not preview_image_url and stream.livepeer_playback_id:
        preview_image_url = _thumbnail(livepeer, stream.livepeer_playback_id)

    if preview_image_url:
        stream.preview_image_url = preview_image_url
        return _commit(stream, 'store preview image')
    return False


def sync_live_state(stream, livepeer=None) -> bool:
    """
    Mirrors the vendor's view of a not-yet-ended stream onto the row.

    Fills in missing playback id, stream key and preview image, and keeps
    ``is_live``, ``viewer_count`` and ``started_at`` current. Changes are
    committed and broadcast to the stream's realtime room.
    """
    livepeer = livepeer or LivepeerService()
    if stream.has_ended or not stream.livepeer_stream_id:
        return False

    is_active, stream_data, viewer_count = livepeer.get_stream_status(stream.livepeer_stream_id)
    changed = False

    if stream_data is not None:
        if not stream.livepeer_playback_id and stream_data.get('playbackId'):
            stream.livepeer_playback_id = stream_data['playbackId']
            changed = True
        if not stream.livepeer_stream_key and stream_data.get('streamKey'):
            stream.livepeer_stream_key = stream_data['streamKey']
            changed = True
        if not stream.preview_image_url and stream_data.get('playbackId'):
            preview_image_url = _thumbnail(livepeer, stream_data['playbackId'])
            if preview_image_url:
                stream.preview_image_url = preview_image_url
                changed = True
        if viewer_count != stream.viewer_count:
            stream.viewer_count = viewer_count
            changed = True

    if is_active != stream.is_live:
        logger.info(f"PlaybackService: Stream {stream.id} is_live {stream.is_live} -> {is_active}")
        stream.is_live = is_active
        changed = True
    if is_active and not stream.started_at:
        stream.started_at = get_current_utc()
        changed = True

    if changed and _commit(stream, 'sync live state'):
        broadcast_stream_update(stream)
    return changed


def enrich_stream_for_listing(stream, livepeer=None) -> dict:
    """
    Computes the vendor-derived fields of a stream list entry.

    Thumbnails found for ended or scheduled streams are persisted; the
    auto-updating thumbnail of a live stream is only returned.
    """
    livepeer = livepeer or LivepeerService()
    extra = {}

    if not stream.preview_image_url and (stream.livepeer_stream_id or stream.livepeer_playback_id):
        thumbnail_url = None
        if stream.has_ended:
            if stream.livepeer_stream_id:
                asset = livepeer.get_stream_asset(stream.livepeer_stream_id)
                if asset and asset.get('playbackId'):
                    remember_asset(stream, asset)
                    thumbnail_url = _thumbnail(livepeer, asset['playbackId'])
            if not thumbnail_url and stream.livepeer_playback_id:
                thumbnail_url = _thumbnail(livepeer, stream.livepeer_playback_id)
        elif stream.livepeer_playback_id:
            if stream.is_live:
                thumbnail_url = livepeer.get_live_thumbnail_url(stream.livepeer_playback_id)
            else:
                thumbnail_url = _thumbnail(livepeer, stream.livepeer_playback_id)

        if thumbnail_url:
            if stream.is_live:
                extra['thumbnail_url'] = thumbnail_url
                extra['preview_image_url'] = thumbnail_url
            else:
                stream.preview_image_url = thumbnail_url
                _commit(stream, 'store listing thumbnail')

    if stream.livepeer_playback_id and not stream.has_ended:
        extra['viewer_count'] = livepeer.get_viewer_count(stream.livepeer_playback_id)
    else:
        extra['viewer_count'] = 0

    views_playback_id, _ = resolve_views_playback_id(stream, livepeer)
    extra['total_views_playback_id'] = views_playback_id
    extra['total_views'] = fetch_total_views(views_playback_id) if views_playback_id else None
    return extra


def end_stream(stream, livepeer=None):
    """
    Marks a stream as ended and gathers its recording.

    The vendor needs a moment to finalize the recording, so the asset is
    looked up after ``STREAM_END_GRACE_SECONDS``. Falls back to the
    stream's recording and finally to the playback info source URL.
    """
    livepeer = livepeer or LivepeerService()
    stream.is_live = False
    stream.ended_at = get_current_utc()
    if not _commit(stream, 'end stream'):
        raise PlaybackError("Failed to end stream")
    broadcast_stream_update(stream)

    stream_id = stream.livepeer_stream_id
    playback_id = stream.livepeer_playback_id
    if not (stream_id and playback_id):
        return stream

    grace = current_app.config.get('STREAM_END_GRACE_SECONDS', 5)
    if grace:
        time.sleep(grace)

    vod_url = stream.vod_url
    preview_image_url = stream.preview_image_url

    asset = livepeer.get_stream_asset(stream_id)
    if asset:
        source_stream_id = asset_source_stream_id(asset)
        if source_stream_id != stream_id:
            logger.error(f"PlaybackService: Asset {asset.get('id')} does not belong to stream {stream_id} (source {source_stream_id})")
        elif is_asset_ready(asset):
            remember_asset(stream, asset)
            if asset.get('playbackId'):
                vod_url = livepeer.hls_url(asset['playbackId'])
                if not preview_image_url:
                    preview_image_url = _thumbnail(livepeer, asset['playbackId'],
                                                   max_retries=current_app.config.get('THUMBNAIL_MAX_RETRIES', 3))
            elif asset.get('playbackUrl'):
                vod_url = asset['playbackUrl']

    if not preview_image_url:
        preview_image_url = _thumbnail(livepeer, playback_id)

    if not vod_url:
        recording = livepeer.get_stream_recording(stream_id)
        if recording:
            vod_url = recording.get('recordingUrl') or recording.get('playbackUrl')

    if not vod_url:
        try:
            livepeer.wait_for_vod(playback_id,
                                  max_wait=current_app.config.get('VOD_WAIT_SECONDS', 30),
                                  interval=current_app.config.get('VOD_POLL_INTERVAL', 2))
            info = livepeer.get_playback_info(playback_id)
            sources = info.get('source') or []
            if sources and isinstance(sources[0], dict) and sources[0].get('url'):
                vod_url = sources[0]['url']
        except VENDOR_ERRORS as e:
            logger.warning(f"PlaybackService: No playback info for ended stream {stream.id}: {e}")

    stream.vod_url = vod_url or None
    stream.preview_image_url = preview_image_url or None
    _commit(stream, 'store recording after end')
    return stream


def _pick_playback_urls(info, playback_id, livepeer):
    hls_url = None
    mp4_url = None
    sources = info.get('source') if isinstance(info, dict) else None

    if isinstance(sources, list):
        sources = [s for s in sources if isinstance(s, dict)]
        hls = next((s for s in sources
                    if s.get('type') in HLS_TYPES or s.get('mime') in HLS_TYPES
                    or '.m3u8' in (s.get('url') or '')), None)
        if hls and hls.get('url'):
            hls_url = hls['url']
        mp4 = next((s for s in sources
                    if s.get('type') == 'video/mp4' or s.get('mime') == 'video/mp4'
                    or '.mp4' in (s.get('url') or '')), None)
        if mp4 and mp4.get('url'):
            mp4_url = mp4['url']
        if not hls_url and not mp4_url and sources and sources[0].get('url'):
            first_url = sources[0]['url']
            if 'm3u8' in first_url:
                hls_url = first_url
            elif '.mp4' in first_url:
                mp4_url = first_url

    if not hls_url and info.get('hlsUrl'):
        hls_url = info['hlsUrl']
    if not mp4_url and info.get('mp4Url'):
        mp4_url = info['mp4Url']
    if not hls_url and not mp4_url and info.get('playbackUrl'):
        if '.mp4' in info['playbackUrl'] and 'm3u8' not in info['playbackUrl']:
            mp4_url = info['playbackUrl']
        else:
            hls_url = info['playbackUrl']

    if not hls_url and playback_id:
        hls_url = livepeer.hls_url(playback_id)
    return hls_url, mp4_url


def _ready_stream_asset(stream, livepeer):
    """Returns the stream's ready asset, raising AssetNotReady for one still processing."""
    asset = livepeer.get_stream_asset(stream.livepeer_stream_id)
    if not asset:
        return None
    if not is_asset_ready(asset):
        raise AssetNotReady(asset_status_phase(asset))
    return asset


def resolve_playback(stream, playback_id, livepeer=None) -> dict:
    """
    Resolves playable HLS/MP4 URLs for a playback id.

    For ended streams the ready asset's playback id replaces the one the
    client passed in.
    """
    livepeer = livepeer or LivepeerService()
    is_ended = stream is not None and stream.has_ended
    actual_playback_id = playback_id
    info = None

    if is_ended and stream.livepeer_stream_id:
        asset = _ready_stream_asset(stream, livepeer)
        if asset and asset.get('playbackId'):
            remember_asset(stream, asset)
            actual_playback_id = asset['playbackId']
            try:
                info = livepeer.get_playback_info(actual_playback_id)
            except VENDOR_ERRORS as e:
                logger.warning(f"PlaybackService: No playback info for asset playbackId {actual_playback_id}: {e}")

    if info is None:
        try:
            info = livepeer.get_playback_info(playback_id)
            actual_playback_id = playback_id
        except VENDOR_ERRORS as e:
            logger.warning(f"PlaybackService: No playback info for {playback_id}: {e}")
            if not is_ended and stream is not None and stream.livepeer_stream_id:
                asset = livepeer.get_stream_asset(stream.livepeer_stream_id)
                if asset and is_asset_ready(asset) and asset.get('playbackId'):
                    actual_playback_id = asset['playbackId']
                    try:
                        info = livepeer.get_playback_info(actual_playback_id)
                    except VENDOR_ERRORS as asset_error:
                        logger.warning(f"PlaybackService: No playback info for asset {actual_playback_id}: {asset_error}")

    if info is None:
        hint = ("For ended streams, asset playbackId is required for VOD playback." if is_ended
                else "This might be a stream playbackId, not an asset playbackId.")
        raise PlaybackUnavailable(f"Failed to get playback info for playbackId: {playback_id}. {hint}")

    hls_url, mp4_url = _pick_playback_urls(info, actual_playback_id, livepeer)
    return {
        'playback_id': actual_playback_id,
        'original_playback_id': playback_id,
        'hls_url': hls_url,
        'mp4_url': mp4_url,
        'playback_info': info,
    }


def _asset_recording(asset, livepeer, fallback_source_id=None):
    playback_url = asset.get('playbackUrl') or (
        livepeer.hls_url(asset['playbackId']) if asset.get('playbackId') else None
    )
    return {
        'id': asset.get('id'),
        'playback_id': asset.get('playbackId'),
        'playback_url': playback_url,
        'status': asset_status_phase(asset),
        'duration': asset.get('duration'),
        'created_at': asset.get('createdAt'),
        'source_stream_id': asset_source_stream_id(asset) or fallback_source_id,
    }


def resolve_asset_recording(asset_id, livepeer=None) -> dict | None:
    """Recording for an explicit asset id; vendor errors propagate."""
    livepeer = livepeer or LivepeerService()
    asset = livepeer.get_asset(asset_id)
    if not asset:
        return None
    if not is_asset_ready(asset):
        raise AssetNotReady(asset_status_phase(asset), source='asset_by_id')
    recording = _asset_recording(asset, livepeer)
    if recording['playback_url'] or recording['playback_id']:
        return recording
    return None


def resolve_recording(stream, livepeer=None) -> tuple[str, dict]:
    """
    Finds the recording of an ended stream.

    Returns:
        A tuple (source, recording) where source names where it was found:
        "asset", "session", "stream_metadata" or "stream_playback_id".
    """
    livepeer = livepeer or LivepeerService()
    stream_id = stream.livepeer_stream_id

    asset = _ready_stream_asset(stream, livepeer)
    if asset:
        remember_asset(stream, asset)
        recording = _asset_recording(asset, livepeer, fallback_source_id=stream_id)
        if recording['playback_url']:
            return 'asset', recording

    sessions = livepeer.get_stream_sessions(stream_id, limit=10, record_only=True)
    session = next((s for s in sessions
                    if s.get('record') and (s.get('recordingUrl') or s.get('playbackUrl') or s.get('playbackId'))), None)
    if session:
        session_playback_id = (session.get('playbackId') or (session.get('playback') or {}).get('id')
                               or stream.livepeer_playback_id)
        recording_url = session_recording_url(session)
        return 'session', {
            'id': session.get('id'),
            'playback_id': session_playback_id,
            'playback_url': recording_url or (livepeer.hls_url(session_playback_id) if session_playback_id else None),
            'status': 'ready',
            'duration': session.get('duration') or session.get('recordingDuration'),
            'created_at': session.get('createdAt') or session.get('createdAtTimestamp'),
            'source_stream_id': stream_id,
        }

    try:
        stream_data = livepeer.get_stream(stream_id)
        recordings = stream_data.get('recordings') or []
        if recordings:
            recording = recordings[0]
            return 'stream_metadata', {
                'id': recording.get('id') or stream_id,
                'playback_id': recording.get('playbackId') or stream.livepeer_playback_id,
                'playback_url': recording.get('recordingUrl') or recording.get('playbackUrl'),
                'status': 'ready',
                'duration': recording.get('duration'),
                'created_at': recording.get('createdAt'),
                'source_stream_id': stream_id,
            }
    except VENDOR_ERRORS as e:
        logger.warning(f"PlaybackService: Stream metadata lookup failed for {stream_id}: {e}")

    if stream.livepeer_playback_id:
        return 'stream_playback_id', {
            'id': stream_id,
            'playback_id': stream.livepeer_playback_id,
            'playback_url': livepeer.hls_url(stream.livepeer_playback_id),
            'status': 'ready',
            'source_stream_id': stream_id,
        }

    raise RecordingUnavailable(
        "Recording not available yet. Livepeer is still processing the recording. Please try again in a few minutes."
    )
