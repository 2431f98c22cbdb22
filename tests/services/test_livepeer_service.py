import time
import unittest
from unittest.mock import MagicMock, patch

import requests

from streamapp import create_app
from streamapp.services.livepeer_service import (
    LivepeerAPIError, LivepeerConfigError, LivepeerService, asset_source_stream_id, is_asset_ready,
)
from config import TestingConfig


def _response(status_code=200, payload=None, headers=None):
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    response.text = str(payload)
    response.headers = headers or {}
    response.json.return_value = payload
    if not response.ok:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status_code} Error")
    return response


class LivepeerServiceTestCase(unittest.TestCase):
    def setUp(self):
        self.app = create_app(TestingConfig)
        self.app_context = self.app.app_context()
        self.app_context.push()
        self.service = LivepeerService()

    def tearDown(self):
        self.app_context.pop()

    # --- transport ---

    def test_missing_api_key_raises_config_error(self):
        service = LivepeerService(api_key='')
        with self.assertRaises(LivepeerConfigError):
            service.create_stream('no key')

    @patch.object(requests.Session, 'request')
    def test_create_stream_sends_bearer_and_record_flag(self, mock_request):
        mock_request.return_value = _response(201, {'id': 'lp-1', 'playbackId': 'pb-1', 'streamKey': 'key'})

        result = self.service.create_stream('Sunday breaks')

        self.assertEqual(result['id'], 'lp-1')
        args, kwargs = mock_request.call_args
        self.assertEqual(args, ('POST', 'https://livepeer.studio/api/stream'))
        self.assertEqual(kwargs['headers']['Authorization'], 'Bearer test-livepeer-key')
        self.assertEqual(kwargs['json'], {'name': 'Sunday breaks', 'record': True})

    @patch.object(LivepeerService, '_request')
    def test_get_stream_normalizes_playback_id(self, mock_request):
        mock_request.return_value = _response(200, {'id': 'lp-1', 'playback': {'id': 'pb-nested'}})
        self.assertEqual(self.service.get_stream('lp-1')['playbackId'], 'pb-nested')

    @patch.object(LivepeerService, '_request')
    def test_strict_calls_raise_api_error(self, mock_request):
        mock_request.return_value = _response(500, {'errors': ['boom']})
        with self.assertRaises(LivepeerAPIError) as ctx:
            self.service.get_stream('lp-1')
        self.assertEqual(ctx.exception.status_code, 500)

    # --- sessions & status ---

    @patch.object(LivepeerService, '_request')
    def test_sessions_unwrapped_filtered_and_sorted(self, mock_request):
        mock_request.return_value = _response(200, {'data': [
            {'id': 'old', 'record': True, 'createdAt': 1_700_000_000_000},
            {'id': 'no-record', 'createdAt': 1_800_000_000_000},
            {'id': 'new', 'recordingUrl': 'https://rec/new.m3u8', 'createdAt': '2030-01-01T00:00:00Z'},
        ]})

        sessions = self.service.get_stream_sessions('lp-1', limit=5)

        self.assertEqual([s['id'] for s in sessions], ['new', 'old'])
        self.assertEqual(mock_request.call_args[1]['params'], {'limit': 5})

    @patch.object(LivepeerService, '_request')
    def test_sessions_never_raise(self, mock_request):
        mock_request.return_value = _response(404, {})
        self.assertEqual(self.service.get_stream_sessions('lp-1'), [])

        mock_request.side_effect = requests.ConnectionError('down')
        self.assertEqual(self.service.get_stream_sessions('lp-1'), [])

        mock_request.side_effect = None
        mock_request.return_value = _response(200, {'unexpected': 'shape'})
        self.assertEqual(self.service.get_stream_sessions('lp-1'), [])

    @patch.object(LivepeerService, 'get_viewer_count', return_value=12)
    @patch.object(LivepeerService, 'get_stream')
    def test_stream_status_active_flags(self, mock_get_stream, mock_viewers):
        mock_get_stream.return_value = {'id': 'lp-1', 'isActive': True, 'playbackId': 'pb-1'}
        self.assertEqual(self.service.get_stream_status('lp-1'), (True, mock_get_stream.return_value, 12))

        mock_get_stream.return_value = {'id': 'lp-1', 'lastSeen': int(time.time()) - 30}
        is_active, _, viewers = self.service.get_stream_status('lp-1')
        self.assertTrue(is_active)
        self.assertEqual(viewers, 0)

        mock_get_stream.return_value = {'id': 'lp-1', 'lastSeen': (time.time() - 3600) * 1000}
        self.assertFalse(self.service.get_stream_status('lp-1')[0])

        mock_get_stream.return_value = {'id': 'lp-1', 'lastSeen': '2024-05-01T12:00:00Z', 'sourceSegmentsDuration': '12'}
        self.assertEqual(self.service.get_stream_status('lp-1'), (False, mock_get_stream.return_value, 0))

    @patch.object(LivepeerService, 'get_stream', side_effect=LivepeerAPIError('Failed to get stream: 404', 404))
    def test_stream_status_on_error(self, mock_get_stream):
        self.assertEqual(self.service.get_stream_status('lp-1'), (False, None, 0))

    @patch.object(LivepeerService, 'get_stream')
    @patch.object(LivepeerService, 'get_stream_sessions')
    def test_stream_recording_prefers_sessions(self, mock_sessions, mock_get_stream):
        mock_sessions.return_value = [{'id': 's1', 'record': True, 'playback': {'hls': 'https://rec/s1.m3u8'}}]
        self.assertEqual(self.service.get_stream_recording('lp-1')['recordingUrl'], 'https://rec/s1.m3u8')
        mock_get_stream.assert_not_called()

        mock_sessions.return_value = []
        mock_get_stream.return_value = {'recordings': [{'id': 'r1', 'recordingUrl': 'https://rec/r1.m3u8'}]}
        self.assertEqual(self.service.get_stream_recording('lp-1')['id'], 'r1')

    # --- playback & thumbnails ---

    @patch('streamapp.services.livepeer_service.time.sleep')
    @patch.object(LivepeerService, 'get_playback_info')
    def test_wait_for_vod(self, mock_info, mock_sleep):
        mock_info.side_effect = [{'type': 'live'}, {'type': 'vod'}]
        self.assertTrue(self.service.wait_for_vod('pb-1', max_wait=30, interval=1))
        self.assertEqual(mock_info.call_count, 2)

        mock_info.side_effect = None
        mock_info.return_value = {'type': 'live'}
        self.assertFalse(self.service.wait_for_vod('pb-1', max_wait=0, interval=1))

    @patch.object(LivepeerService, 'get_playback_info')
    def test_thumbnail_lookup_order(self, mock_info):
        mock_info.return_value = {'meta': {'thumbnail': 'https://img/meta.jpg',
                                           'source': [{'type': 'image/png', 'url': 'https://img/png.png'}]}}
        self.assertEqual(self.service.get_thumbnail_url_from_playback_info('pb-1'), 'https://img/meta.jpg')

        mock_info.return_value = {'meta': {'source': [
            {'type': 'html5/application/vnd.apple.mpegurl', 'url': 'https://cdn/index.m3u8'},
            {'hrn': 'Thumbnail (PNG)', 'url': 'https://img/live.png'},
        ]}}
        self.assertEqual(self.service.get_thumbnail_url_from_playback_info('pb-1'), 'https://img/live.png')
        self.assertEqual(self.service.get_live_thumbnail_url('pb-1'), 'https://img/live.png')

        mock_info.return_value = {'source': [{'url': 'https://img/thumbnails/0.jpg'}]}
        self.assertEqual(self.service.get_thumbnail_url_from_playback_info('pb-1'), 'https://img/thumbnails/0.jpg')

        mock_info.return_value = {'recordings': [{'thumbnail': 'https://img/rec.jpg'}]}
        self.assertEqual(self.service.get_thumbnail_url_from_playback_info('pb-1'), 'https://img/rec.jpg')

        mock_info.side_effect = LivepeerAPIError('Failed to get playback info: 404', 404)
        self.assertIsNone(self.service.get_thumbnail_url_from_playback_info('pb-1'))

    @patch('streamapp.services.livepeer_service.requests.get')
    def test_verify_thumbnail_availability(self, mock_get):
        mock_get.return_value = _response(200, None, headers={'Content-Type': 'image/png'})
        self.assertTrue(self.service.verify_thumbnail_availability('https://img/t.png'))

        mock_get.return_value = _response(200, None, headers={'Content-Type': 'text/html'})
        self.assertFalse(self.service.verify_thumbnail_availability('https://img/t.png'))

        mock_get.side_effect = requests.Timeout('slow')
        self.assertFalse(self.service.verify_thumbnail_availability('https://img/t.png'))

    @patch('streamapp.services.livepeer_service.time.sleep')
    @patch.object(LivepeerService, 'verify_thumbnail_availability')
    @patch.object(LivepeerService, 'get_thumbnail_url_from_playback_info', return_value='https://img/t.png')
    def test_generate_and_verify_thumbnail_backoff(self, mock_url, mock_verify, mock_sleep):
        mock_verify.side_effect = [False, False, True]
        self.assertEqual(self.service.generate_and_verify_thumbnail('pb-1', max_retries=3, retry_delay=2),
                         'https://img/t.png')
        self.assertEqual([c[0][0] for c in mock_sleep.call_args_list], [2, 4])

        # Unverified thumbnails are still returned
        mock_verify.side_effect = None
        mock_verify.return_value = False
        self.assertEqual(self.service.generate_and_verify_thumbnail('pb-1', max_retries=2, retry_delay=0),
                         'https://img/t.png')

        mock_url.return_value = None
        self.assertIsNone(self.service.generate_and_verify_thumbnail('pb-1'))

    # --- viewership ---

    @patch.object(LivepeerService, '_request')
    def test_viewer_count(self, mock_request):
        mock_request.return_value = _response(200, [
            {'playbackId': 'other', 'viewCount': 99},
            {'playbackId': 'pb-1', 'viewCount': 4},
        ])
        self.assertEqual(self.service.get_viewer_count('pb-1'), 4)

        mock_request.return_value = _response(200, [{'playbackId': 'other', 'viewCount': 9}])
        self.assertEqual(self.service.get_viewer_count('pb-1'), 9)

        mock_request.return_value = _response(404, None)
        self.assertEqual(self.service.get_viewer_count('pb-1'), 0)

        mock_request.return_value = _response(500, None)
        self.assertEqual(self.service.get_viewer_count('pb-1'), 0)

        self.assertEqual(self.service.get_viewer_count(None), 0)

    @patch.object(LivepeerService, '_request')
    def test_total_views_response_shapes(self, mock_request):
        mock_request.return_value = _response(200, {'viewCount': 15})
        self.assertEqual(self.service.get_total_views('pb/1'), 15)
        self.assertEqual(mock_request.call_args[0][1], '/data/views/query/total/pb%2F1')

        mock_request.return_value = _response(200, [{'viewCount': 7}])
        self.assertEqual(self.service.get_total_views('pb-1'), 7)

        mock_request.return_value = _response(200, {'result': {'viewCount': 3}})
        self.assertEqual(self.service.get_total_views('pb-1'), 3)

        mock_request.return_value = _response(200, {'something': 'else'})
        self.assertIsNone(self.service.get_total_views('pb-1'))

        mock_request.return_value = _response(403, None)
        self.assertIsNone(self.service.get_total_views('pb-1'))

    @patch.object(LivepeerService, '_request')
    def test_historical_and_peak_viewers(self, mock_request):
        mock_request.return_value = _response(200, {'totalViews': 30, 'peak': 6, 'data': [{'t': 1}]})
        historical = self.service.get_historical_views('pb-1')
        self.assertEqual(historical, {'playback_id': 'pb-1', 'total_views': 30, 'peak_viewers': 6, 'data': [{'t': 1}]})
        self.assertEqual(self.service.get_peak_viewers('pb-1'), 6)

        mock_request.return_value = _response(501, None)
        self.assertIsNone(self.service.get_historical_views('pb-1'))
        self.assertIsNone(self.service.get_peak_viewers('pb-1'))

    @patch.object(LivepeerService, '_request')
    def test_optional_metrics(self, mock_request):
        mock_request.return_value = _response(200, {'bytes': 10})
        self.assertEqual(self.service.get_stream_metrics('lp-1'), {'bytes': 10})
        mock_request.return_value = _response(404, None)
        self.assertIsNone(self.service.get_asset_metrics('asset-1'))

    # --- assets ---

    @patch.object(LivepeerService, '_request')
    def test_list_assets_wrappers(self, mock_request):
        for payload in ([{'id': 'a'}], {'data': [{'id': 'a'}]}, {'assets': [{'id': 'a'}]}, {'whatever': [{'id': 'a'}]}):
            mock_request.return_value = _response(200, payload)
            self.assertEqual(self.service.list_assets('lp-1'), [{'id': 'a'}])
        self.assertEqual(mock_request.call_args[1]['params'], {'sourceStreamId': 'lp-1'})
        self.assertEqual(mock_request.call_args[1]['timeout'], 5)

    def test_asset_helpers(self):
        self.assertTrue(is_asset_ready({'status': {'phase': 'ready'}}))
        self.assertTrue(is_asset_ready({'status': 'ready'}))
        self.assertFalse(is_asset_ready({'status': {'phase': 'processing'}}))
        self.assertFalse(is_asset_ready(None))
        self.assertEqual(asset_source_stream_id({'source': {'streamId': 'lp-1'}}), 'lp-1')
        self.assertEqual(asset_source_stream_id({'sourceStream': {'id': 'lp-2'}}), 'lp-2')

    @patch.object(LivepeerService, '_request')
    def test_stream_asset_direct_endpoint(self, mock_request):
        ready = {'id': 'asset-1', 'playbackId': 'apb', 'status': {'phase': 'ready'}, 'sourceStreamId': 'lp-1'}
        mock_request.return_value = _response(200, ready)
        self.assertEqual(self.service.get_stream_asset('lp-1'), ready)

        mock_request.return_value = _response(200, dict(ready, status={'phase': 'processing'}))
        self.assertIsNone(self.service.get_stream_asset('lp-1'))

    @patch.object(LivepeerService, 'get_asset')
    @patch.object(LivepeerService, 'list_assets')
    @patch.object(LivepeerService, '_direct_stream_asset', return_value=(False, None))
    def test_stream_asset_from_listing(self, mock_direct, mock_list, mock_get_asset):
        mock_list.return_value = [
            {'id': 'foreign', 'sourceStreamId': 'lp-9', 'createdAt': 3},
            {'id': 'older', 'sourceStreamId': 'lp-1', 'createdAt': 1},
            {'id': 'newer', 'source': {'streamId': 'lp-1'}, 'createdAt': 2},
        ]
        mock_get_asset.side_effect = lambda asset_id: {
            'newer': {'id': 'newer', 'playbackId': 'pb-newer', 'status': {'phase': 'processing'}},
            'older': {'id': 'older', 'playbackId': 'pb-older', 'status': {'phase': 'ready'}},
        }[asset_id]

        asset = self.service.get_stream_asset('lp-1')

        self.assertEqual(asset['id'], 'older')
        self.assertEqual([c[0][0] for c in mock_get_asset.call_args_list], ['newer', 'older'])

    @patch.object(LivepeerService, 'get_asset')
    @patch.object(LivepeerService, 'list_assets')
    @patch.object(LivepeerService, '_direct_stream_asset', return_value=(False, None))
    def test_stream_asset_none_while_processing(self, mock_direct, mock_list, mock_get_asset):
        mock_list.return_value = [{'id': 'a1', 'sourceStreamId': 'lp-1', 'playbackId': 'pb-a1'}]
        mock_get_asset.return_value = {'id': 'a1', 'playbackId': 'pb-a1', 'status': {'phase': 'processing'}}
        self.assertIsNone(self.service.get_stream_asset('lp-1'))

        mock_list.return_value = []
        self.assertIsNone(self.service.get_stream_asset('lp-1'))

    def test_hls_url(self):
        self.assertEqual(self.service.hls_url('pb-1'), 'https://playback.livepeer.com/hls/pb-1/index.m3u8')


if __name__ == '__main__':
    unittest.main()
