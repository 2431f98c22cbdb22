import logging
import time
from datetime import datetime
from urllib.parse import quote

import requests
from flask import current_app

logger = logging.getLogger(__name__)

ACTIVE_SESSION_STATUSES = ('ready', 'active', 'streaming')
RECENT_ACTIVITY_WINDOW_MS = 5 * 60 * 1000
THUMBNAIL_PNG_HRN = 'Thumbnail (PNG)'


class LivepeerError(Exception):
    """Base class for Livepeer Studio failures."""


class LivepeerConfigError(LivepeerError):
    """Raised when the API key is not configured."""


class LivepeerAPIError(LivepeerError):
    def __init__(self, message, status_code=None, body=None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


def _nested(data, *keys):
    """Safely walks nested dicts, returning None on the first missing level."""
    current = data
    for key in keys:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def _timestamp_ms(value) -> float:
    """Coerces an ISO string or epoch number into a sortable millisecond value."""
    if value is None:
        return 0
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(value)
    except (TypeError, ValueError):
        pass
    try:
        return datetime.fromisoformat(str(value).replace('Z', '+00:00')).timestamp() * 1000
    except ValueError:
        return 0


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _created_ms(item) -> float:
    if not isinstance(item, dict):
        return 0
    return _timestamp_ms(item.get('createdAt') or item.get('createdAtTimestamp')
                         or item.get('created') or item.get('createdTimestamp'))


def _is_png_source(source) -> bool:
    return isinstance(source, dict) and (
        source.get('type') == 'image/png' or source.get('hrn') == THUMBNAIL_PNG_HRN
    )


def asset_source_stream_id(asset):
    if not isinstance(asset, dict):
        return None
    return (asset.get('sourceStreamId')
            or _nested(asset, 'source', 'streamId')
            or _nested(asset, 'source', 'id')
            or asset.get('sourceId')
            or _nested(asset, 'sourceStream', 'id'))


def session_recording_url(session):
    if not isinstance(session, dict):
        return None
    return (session.get('recordingUrl')
            or session.get('playbackUrl')
            or _nested(session, 'playback', 'hls')
            or _nested(session, 'playback', 'url')
            or session.get('mp4Url'))


def is_asset_ready(asset) -> bool:
    """An asset is ready when ``status.phase`` (or a plain string status) is "ready"."""
    if not isinstance(asset, dict):
        return False
    status = asset.get('status')
    if isinstance(status, dict):
        return status.get('phase') == 'ready'
    return status == 'ready'


def asset_status_phase(asset):
    if not isinstance(asset, dict):
        return None
    status = asset.get('status')
    if isinstance(status, dict):
        return status.get('phase')
    return status


class LivepeerService:
    """
    Thin client for the Livepeer Studio REST API.

    Calls that a request cannot proceed without (creating/fetching streams,
    assets and playback info) raise ``LivepeerAPIError``. Lookups that only
    enrich a response (sessions, viewer counts, thumbnails, metrics) log and
    return an empty value instead.
    """

    def __init__(self, api_key=None):
        self.api_key = api_key if api_key is not None else current_app.config.get('LIVEPEER_API_KEY')
        self.base_url = current_app.config.get('LIVEPEER_API_URL', 'https://livepeer.studio/api').rstrip('/')
        self.playback_base_url = current_app.config.get('LIVEPEER_PLAYBACK_URL', 'https://playback.livepeer.com/hls').rstrip('/')
        self.timeout = current_app.config.get('LIVEPEER_REQUEST_TIMEOUT', 15)
        self.session = requests.Session()

    # --- transport -------------------------------------------------------

    def _request(self, method, path, timeout=None, **kwargs) -> requests.Response:
        if not self.api_key:
            raise LivepeerConfigError("LIVEPEER_API_KEY is not set")
        headers = kwargs.pop('headers', {})
        headers['Authorization'] = f"Bearer {self.api_key}"
        return self.session.request(
            method,
            f"{self.base_url}{path}",
            headers=headers,
            timeout=timeout or self.timeout,
            **kwargs
        )

    def _strict_json(self, method, path, action, timeout=None, **kwargs):
        response = self._request(method, path, timeout=timeout, **kwargs)
        if not response.ok:
            logger.error(f"LivepeerService: Failed to {action}: {response.status_code} {response.text[:300]}")
            raise LivepeerAPIError(f"Failed to {action}: {response.status_code}",
                                   status_code=response.status_code, body=response.text)
        return response.json()

    def hls_url(self, playback_id):
        return f"{self.playback_base_url}/{playback_id}/index.m3u8"

    # --- streams ---------------------------------------------------------

    def create_stream(self, name: str) -> dict:
        """Creates a recorded vendor stream and returns the raw vendor payload."""
        logger.info(f"LivepeerService: Creating stream '{name}'")
        return self._strict_json('POST', '/stream', 'create stream', json={'name': name, 'record': True})

    def get_stream(self, stream_id: str) -> dict:
        data = self._strict_json('GET', f'/stream/{stream_id}', 'get stream')
        data['playbackId'] = data.get('playbackId') or _nested(data, 'playback', 'id')
        return data

    def get_stream_sessions(self, stream_id: str, limit: int = 20, record_only: bool = True) -> list:
        """
        Returns the stream's sessions, newest first.

        Sessions surface recording metadata almost immediately after a stream
        ends. With ``record_only`` only sessions that recorded or expose a
        playable URL are kept.
        """
        try:
            response = self._request('GET', f'/stream/{stream_id}/sessions', params={'limit': limit})
            if not response.ok:
                if response.status_code != 404:
                    logger.warning(f"LivepeerService: Sessions lookup for {stream_id} failed with {response.status_code}")
                return []
            data = response.json()
        except (LivepeerError, requests.RequestException, ValueError) as e:
            logger.warning(f"LivepeerService: Could not fetch sessions for {stream_id}: {e}")
            return []

        if isinstance(data, list):
            sessions = data
        elif isinstance(data, dict) and isinstance(data.get('data'), list):
            sessions = data['data']
        elif isinstance(data, dict) and isinstance(data.get('sessions'), list):
            sessions = data['sessions']
        else:
            sessions = []

        if record_only:
            sessions = [
                s for s in sessions
                if isinstance(s, dict) and (
                    s.get('record') is True or s.get('recordingUrl')
                    or s.get('playbackUrl') or _nested(s, 'playback', 'hls')
                )
            ]
        return sorted(sessions, key=_created_ms, reverse=True)

    def get_stream_status(self, stream_id: str) -> tuple[bool, dict | None, int]:
        """
        Works out whether a vendor stream is currently broadcasting.

        Returns:
            A tuple (is_active, stream, viewer_count). On any failure the
            stream is reported inactive and ``stream`` is None.
        """
        try:
            stream = self.get_stream(stream_id)
        except (LivepeerError, requests.RequestException, ValueError) as e:
            logger.error(f"LivepeerService: Error checking stream status for {stream_id}: {e}")
            return False, None, 0

        sessions = stream.get('sessions') or []
        has_active_session = any(
            isinstance(s, dict) and (s.get('status') in ACTIVE_SESSION_STATUSES or s.get('record') is True)
            for s in sessions
        )
        last_seen = stream.get('lastSeen')
        if not _is_number(last_seen):
            last_seen = 0
        last_seen_ms = last_seen if last_seen > 1_000_000_000_000 else last_seen * 1000
        has_recent_activity = last_seen > 0 and (time.time() * 1000 - last_seen_ms) < RECENT_ACTIVITY_WINDOW_MS

        is_active = bool(
            stream.get('isActive') is True
            or has_active_session
            or stream.get('isRecording') is True
            or len(sessions) > 0
            or (_is_number(stream.get('sourceSegmentsDuration')) and stream['sourceSegmentsDuration'] > 0)
            or has_recent_activity
        )

        viewer_count = 0
        if stream.get('playbackId'):
            viewer_count = self.get_viewer_count(stream['playbackId'])

        logger.info(f"LivepeerService: Stream {stream_id} active={is_active} viewers={viewer_count}")
        return is_active, stream, viewer_count

    def get_stream_recording(self, stream_id: str) -> dict | None:
        """Finds the newest recording of a stream from its sessions or the stream object."""
        try:
            for session in self.get_stream_sessions(stream_id, limit=10, record_only=True):
                recording_url = session_recording_url(session)
                if recording_url:
                    return {
                        'id': session.get('id'),
                        'recordingUrl': recording_url,
                        'playbackUrl': recording_url,
                        'playbackId': session.get('playbackId') or _nested(session, 'playback', 'id'),
                        'duration': session.get('duration') or session.get('recordingDuration'),
                        'createdAt': session.get('createdAt'),
                    }

            stream = self.get_stream(stream_id)
            recordings = stream.get('recordings') or []
            if recordings:
                return recordings[0]

            for session in stream.get('sessions') or []:
                if isinstance(session, dict) and session.get('record') and session.get('recordingUrl'):
                    return {
                        'id': session.get('id'),
                        'recordingUrl': session['recordingUrl'],
                        'playbackUrl': session.get('playbackUrl'),
                    }
        except (LivepeerError, requests.RequestException, ValueError) as e:
            logger.error(f"LivepeerService: Error fetching stream recording for {stream_id}: {e}")
        return None

    # --- playback & thumbnails -------------------------------------------

    def get_playback_info(self, playback_id: str) -> dict:
        return self._strict_json('GET', f'/playback/{playback_id}', 'get playback info')

    def wait_for_vod(self, playback_id: str, max_wait: float = 30, interval: float = 2) -> bool:
        """Polls playback info until the vendor reports it as a VOD."""
        deadline = time.monotonic() + max_wait
        while True:
            try:
                info = self.get_playback_info(playback_id)
                if info.get('type') == 'vod':
                    logger.info(f"LivepeerService: VOD ready for playbackId {playback_id}")
                    return True
            except (LivepeerError, requests.RequestException, ValueError) as e:
                logger.info(f"LivepeerService: VOD not ready yet for {playback_id}: {e}")
            if time.monotonic() + interval > deadline:
                return False
            time.sleep(interval)

    def get_thumbnail_url_from_playback_info(self, playback_id: str) -> str | None:
        if not playback_id:
            return None
        try:
            info = self.get_playback_info(playback_id)
        except (LivepeerError, requests.RequestException, ValueError) as e:
            logger.info(f"LivepeerService: No playback info for thumbnail of {playback_id}: {e}")
            return None

        if _nested(info, 'meta', 'thumbnail'):
            return info['meta']['thumbnail']

        for sources in (_nested(info, 'meta', 'source'), info.get('source')):
            if isinstance(sources, list):
                png = next((s for s in sources if _is_png_source(s) and s.get('url')), None)
                if png:
                    return png['url']

        sources = info.get('source')
        if isinstance(sources, list):
            for source in sources:
                if not isinstance(source, dict) or not source.get('url'):
                    continue
                if (source.get('type') or '').startswith('image/') or 'thumbnail' in source['url']:
                    return source['url']

        for recording in info.get('recordings') or []:
            if isinstance(recording, dict) and recording.get('thumbnail'):
                return recording['thumbnail']

        logger.info(f"LivepeerService: No thumbnail found in playback info for {playback_id} (type={info.get('type')})")
        return None

    def get_live_thumbnail_url(self, playback_id: str) -> str | None:
        """Returns the auto-updating PNG thumbnail a live stream exposes, if any."""
        if not playback_id:
            return None
        try:
            info = self.get_playback_info(playback_id)
        except (LivepeerError, requests.RequestException, ValueError) as e:
            logger.info(f"LivepeerService: Could not get live thumbnail for {playback_id}: {e}")
            return None
        sources = _nested(info, 'meta', 'source') or info.get('source') or []
        if isinstance(sources, list):
            png = next((s for s in sources if _is_png_source(s) and s.get('url')), None)
            if png:
                return png['url']
        return None

    def verify_thumbnail_availability(self, url: str) -> bool:
        if not url:
            return False
        try:
            response = requests.get(url, headers={'Accept': 'image/*'}, timeout=10)
        except requests.RequestException as e:
            logger.info(f"LivepeerService: Thumbnail not reachable yet at {url}: {e}")
            return False
        content_type = response.headers.get('Content-Type', '')
        is_image = response.ok and (
            content_type.startswith('image/')
            or any(kind in content_type for kind in ('jpeg', 'png', 'webp'))
        )
        if not is_image:
            logger.warning(f"LivepeerService: Thumbnail URL returned {response.status_code} with content type '{content_type}'")
        return is_image

    def generate_and_verify_thumbnail(self, playback_id: str, max_retries: int = 3, retry_delay: float = 2) -> str | None:
        """
        Looks up a thumbnail URL and waits for it to become fetchable.

        Thumbnails are produced asynchronously, so the URL is returned even
        when verification never succeeds; None means playback info carries
        no thumbnail at all.
        """
        thumbnail_url = self.get_thumbnail_url_from_playback_info(playback_id)
        if not thumbnail_url:
            return None

        for attempt in range(max_retries):
            if self.verify_thumbnail_availability(thumbnail_url):
                return thumbnail_url
            if attempt < max_retries - 1:
                time.sleep(retry_delay * (attempt + 1))

        logger.warning(f"LivepeerService: Thumbnail for {playback_id} not verified after {max_retries} attempts, using it anyway")
        return thumbnail_url

    # --- viewership ------------------------------------------------------

    def get_viewer_count(self, playback_id: str) -> int:
        if not playback_id:
            return 0
        try:
            response = self._request('GET', '/data/views/now',
                                     params={'playbackId': playback_id, 'breakdownBy': 'playbackId'})
            if response.status_code == 404:
                return 0
            response.raise_for_status()
            data = response.json()
        except (LivepeerError, requests.RequestException, ValueError) as e:
            logger.error(f"LivepeerService: Error fetching viewer count for {playback_id}: {e}")
            return 0

        if isinstance(data, list) and data:
            match = next((item for item in data if isinstance(item, dict) and item.get('playbackId') == playback_id), None)
            for candidate in (match, data[0]):
                if isinstance(candidate, dict) and isinstance(candidate.get('viewCount'), (int, float)):
                    return int(candidate['viewCount'])
        return 0

    def get_historical_views(self, playback_id: str, from_ts=None, to_ts=None, granularity=None) -> dict | None:
        if not playback_id:
            return None
        params = {'playbackId': playback_id}
        if from_ts:
            params['from'] = from_ts
        if to_ts:
            params['to'] = to_ts
        if granularity:
            params['granularity'] = granularity
        try:
            response = self._request('GET', '/data/views', params=params)
            if not response.ok:
                if response.status_code not in (404, 501):
                    logger.warning(f"LivepeerService: Historical views error {response.status_code} for {playback_id}")
                return None
            data = response.json()
        except (LivepeerError, requests.RequestException, ValueError) as e:
            logger.info(f"LivepeerService: Historical views unavailable for {playback_id}: {e}")
            return None

        if not isinstance(data, dict):
            return None
        return {
            'playback_id': playback_id,
            'total_views': data.get('totalViews') or data.get('total_views') or data.get('total'),
            'peak_viewers': data.get('peakViewers') or data.get('peak_viewers') or data.get('peak'),
            'data': data.get('data') or data.get('views') or data.get('history'),
        }

    def get_total_views(self, playback_id: str) -> int | None:
        """Lifetime view count for a playback id, or None when the vendor has none."""
        if not playback_id:
            return None
        encoded_id = quote(playback_id, safe='')
        try:
            response = self._request('GET', f'/data/views/query/total/{encoded_id}', timeout=10)
        except (LivepeerError, requests.RequestException) as e:
            logger.error(f"LivepeerService: Error fetching total views for {playback_id}: {e}")
            return None

        if response.status_code in (401, 403, 404) or not response.ok:
            logger.info(f"LivepeerService: Total views for {playback_id} unavailable ({response.status_code})")
            return None
        try:
            result = response.json()
        except ValueError:
            return None

        if isinstance(result, list):
            if result and isinstance(result[0], dict) and isinstance(result[0].get('viewCount'), (int, float)):
                return int(result[0]['viewCount'])
            return None
        if isinstance(result, dict):
            if isinstance(result.get('viewCount'), (int, float)):
                return int(result['viewCount'])
            for key in ('data', 'result', 'body'):
                nested = result.get(key)
                if isinstance(nested, dict) and isinstance(nested.get('viewCount'), (int, float)):
                    return int(nested['viewCount'])
        logger.warning(f"LivepeerService: viewCount not found in total views response for {playback_id}")
        return None

    def get_peak_viewers(self, playback_id: str) -> int | None:
        historical = self.get_historical_views(playback_id)
        if historical and historical.get('peak_viewers') is not None:
            return historical['peak_viewers']
        return None

    def _optional_metrics(self, path, label):
        try:
            response = self._request('GET', path)
            if not response.ok:
                if response.status_code not in (404, 501):
                    logger.warning(f"LivepeerService: {label} metrics error {response.status_code}")
                return None
            return response.json() or None
        except (LivepeerError, requests.RequestException, ValueError) as e:
            logger.info(f"LivepeerService: {label} metrics unavailable: {e}")
            return None

    def get_stream_metrics(self, stream_id: str) -> dict | None:
        if not stream_id:
            return None
        return self._optional_metrics(f'/stream/{stream_id}/metrics', 'Stream')

    def get_asset_metrics(self, asset_id: str) -> dict | None:
        if not asset_id:
            return None
        return self._optional_metrics(f'/asset/{asset_id}/metrics', 'Asset')

    # --- assets ----------------------------------------------------------

    def list_assets(self, source_stream_id: str | None = None) -> list:
        params = {'sourceStreamId': source_stream_id} if source_stream_id else None
        data = self._strict_json('GET', '/asset', 'list assets', timeout=5, params=params)
        if isinstance(data, list):
            return data
        if isinstance(data, dict):
            for key in ('data', 'assets', 'items'):
                if isinstance(data.get(key), list):
                    return data[key]
            for value in data.values():
                if isinstance(value, list):
                    return value
        return []

    def get_asset(self, asset_id: str) -> dict:
        data = self._strict_json('GET', f'/asset/{asset_id}', 'get asset')
        data['playbackId'] = data.get('playbackId') or _nested(data, 'playback', 'id') or _nested(data, 'data', 'playbackId')
        return data

    def _direct_stream_asset(self, stream_id):
        """
        Returns (resolved, asset) from ``/stream/{id}/asset``; ``resolved`` is
        False when the caller should fall back to listing assets.
        """
        try:
            response = self._request('GET', f'/stream/{stream_id}/asset', timeout=8)
        except requests.RequestException as e:
            logger.warning(f"LivepeerService: Error fetching /stream/{stream_id}/asset, falling back to listing: {e}")
            return False, None
        if not response.ok:
            if response.status_code != 404:
                logger.warning(f"LivepeerService: /stream/{stream_id}/asset returned {response.status_code}")
            return False, None
        try:
            asset = response.json()
        except ValueError:
            return False, None

        source_id = asset_source_stream_id(asset)
        if source_id and source_id != stream_id:
            logger.warning(f"LivepeerService: Asset {asset.get('id')} reports source stream {source_id}, expected {stream_id}")
        if asset.get('playbackId'):
            if is_asset_ready(asset):
                return True, asset
            logger.info(f"LivepeerService: Asset {asset.get('id')} for stream {stream_id} not ready ({asset_status_phase(asset)})")
            return True, None
        return False, None

    def get_stream_asset(self, stream_id: str) -> dict | None:
        """
        Finds the ready VOD asset recorded from a vendor stream.

        The direct ``/stream/{id}/asset`` endpoint is tried first; otherwise
        assets are listed and filtered by their source stream id. Only ready
        assets are returned so players never receive a half-processed asset.
        """
        try:
            resolved, asset = self._direct_stream_asset(stream_id)
            if resolved:
                return asset

            try:
                all_assets = self.list_assets(stream_id)
            except (LivepeerAPIError, requests.RequestException, ValueError) as e:
                logger.warning(f"LivepeerService: Filtered asset listing failed ({e}), listing all assets")
                all_assets = self.list_assets()

            assets = [a for a in all_assets if asset_source_stream_id(a) == stream_id]
            if not assets:
                logger.warning(f"LivepeerService: No assets found for stream {stream_id}")
                return None
            assets.sort(key=_created_ms, reverse=True)

            for candidate in assets:
                if not candidate.get('id'):
                    continue
                try:
                    full_asset = self.get_asset(candidate['id'])
                except (LivepeerError, requests.RequestException, ValueError) as e:
                    logger.warning(f"LivepeerService: Could not fetch asset {candidate.get('id')}: {e}")
                    continue
                if is_asset_ready(full_asset) and (full_asset.get('playbackUrl') or full_asset.get('playbackId')):
                    return full_asset

            if any(a.get('playbackId') for a in assets):
                logger.info(f"LivepeerService: Assets for stream {stream_id} exist but are not ready yet")
                return None

            return next((a for a in assets if a.get('playbackUrl') or a.get('status') == 'ready'), None)
        except (LivepeerError, requests.RequestException, ValueError) as e:
            logger.error(f"LivepeerService: Error fetching stream asset for {stream_id}: {e}")
            return None
