import unittest
from unittest.mock import MagicMock, patch

import requests

from streamapp import create_app
from streamapp.services import ens_service, storage_service
from streamapp.services.pinata_service import PinataError, PinataService, build_mint_metadata
from streamapp.services.storage_service import StorageError
from config import TestingConfig

VITALIK = '0xd8da6bf26964af9d7eed9e03e53415d37aa96045'
VITALIK_CHECKSUM = '0xd8dA6BF26964aF9D7eEd9e03E53415D37aA96045'


class PinataServiceTestCase(unittest.TestCase):
    def setUp(self):
        self.app = create_app(TestingConfig)
        self.app_context = self.app.app_context()
        self.app_context.push()

    def tearDown(self):
        self.app_context.pop()

    @patch('streamapp.services.pinata_service.requests.post')
    def test_pin_json(self, mock_post):
        mock_post.return_value = MagicMock(status_code=200)
        mock_post.return_value.json.return_value = {'IpfsHash': 'QmHash', 'PinSize': 120}

        uri = PinataService().pin_json({'name': 'Stream Mint #1'})

        self.assertEqual(uri, 'ipfs://QmHash')
        args, kwargs = mock_post.call_args
        self.assertEqual(args[0], 'https://api.pinata.cloud/pinning/pinJSONToIPFS')
        self.assertEqual(kwargs['headers']['pinata_api_key'], 'test-pinata-key')
        self.assertEqual(kwargs['json'], {'name': 'Stream Mint #1'})

    @patch('streamapp.services.pinata_service.requests.post')
    def test_pin_file(self, mock_post):
        mock_post.return_value = MagicMock(status_code=200)
        mock_post.return_value.json.return_value = {'IpfsHash': 'QmFile'}

        self.assertEqual(PinataService().pin_file('cover.png', b'png-bytes', 'image/png'), 'ipfs://QmFile')
        self.assertEqual(mock_post.call_args[1]['files'], {'file': ('cover.png', b'png-bytes', 'image/png')})

    @patch('streamapp.services.pinata_service.requests.post')
    def test_pin_failures(self, mock_post):
        mock_post.return_value = MagicMock(status_code=401)
        mock_post.return_value.raise_for_status.side_effect = requests.HTTPError('401 Unauthorized')
        with self.assertRaises(PinataError):
            PinataService().pin_json({})

        self.app.config['PINATA_API_KEY'] = None
        with self.assertRaises(PinataError):
            PinataService().pin_json({})

    def test_build_mint_metadata(self):
        metadata = build_mint_metadata('stream-1', 'ipfs://QmImage')
        self.assertEqual(metadata, {
            'name': 'Stream Mint #stream-1',
            'description': '',
            'image': 'ipfs://QmImage',
            'attributes': [{'trait_type': 'Stream ID', 'value': 'stream-1'}],
        })


class StorageServiceTestCase(unittest.TestCase):
    def setUp(self):
        self.app = create_app(TestingConfig)
        self.app_context = self.app.app_context()
        self.app_context.push()
        storage_service._client = None

    def tearDown(self):
        storage_service._client = None
        self.app_context.pop()

    @patch('streamapp.services.storage_service.create_client')
    def test_upload_file(self, mock_create_client):
        bucket_api = mock_create_client.return_value.storage.from_.return_value
        bucket_api.get_public_url.return_value = 'https://test.supabase.co/storage/v1/object/public/avatars/1-a.png'

        with patch('streamapp.services.storage_service.build_object_name', return_value='1-a.png'):
            url = storage_service.upload_file(b'data', 'a.png', 'image/png')

        self.assertTrue(url.endswith('/avatars/1-a.png'))
        mock_create_client.assert_called_once_with('https://test.supabase.co', 'test-supabase-key')
        mock_create_client.return_value.storage.from_.assert_called_with('avatars')
        bucket_api.upload.assert_called_once_with('1-a.png', b'data', file_options={'content-type': 'image/png'})

    @patch('streamapp.services.storage_service.create_client')
    def test_client_is_reused(self, mock_create_client):
        self.assertIs(storage_service.client(), storage_service.client())
        mock_create_client.assert_called_once()

    @patch('streamapp.services.storage_service.create_client')
    def test_upload_failure_wrapped(self, mock_create_client):
        bucket_api = mock_create_client.return_value.storage.from_.return_value
        bucket_api.upload.side_effect = RuntimeError('Bucket not found')
        with self.assertRaises(StorageError):
            storage_service.upload_file(b'data', 'a.png', 'image/png', bucket='missing')

    def test_missing_configuration(self):
        self.app.config['SUPABASE_URL'] = None
        with self.assertRaises(StorageError):
            storage_service.client()

    def test_build_object_name(self):
        name = storage_service.build_object_name('cover.png')
        prefix, _, rest = name.partition('-')
        self.assertTrue(prefix.isdigit())
        self.assertEqual(rest, 'cover.png')


class EnsServiceTestCase(unittest.TestCase):
    def setUp(self):
        self.app = create_app(TestingConfig)
        self.app_context = self.app.app_context()
        self.app_context.push()

    def tearDown(self):
        self.app_context.pop()

    def test_is_ens_name(self):
        self.assertTrue(ens_service.is_ens_name('vitalik.eth'))
        self.assertFalse(ens_service.is_ens_name('.eth'))
        self.assertFalse(ens_service.is_ens_name(VITALIK))
        self.assertFalse(ens_service.is_ens_name(None))

    def test_normalize_plain_address(self):
        self.assertEqual(ens_service.normalize_to_address(VITALIK), VITALIK_CHECKSUM)
        self.assertIsNone(ens_service.normalize_to_address('not-an-address'))
        self.assertIsNone(ens_service.normalize_to_address(''))

    @patch('streamapp.services.ens_service.get_web3')
    def test_resolve_ens_name(self, mock_get_web3):
        mock_get_web3.return_value.ens.address.return_value = VITALIK_CHECKSUM
        self.assertEqual(ens_service.normalize_to_address('vitalik.eth'), VITALIK_CHECKSUM)

        mock_get_web3.return_value.ens.address.return_value = None
        self.assertIsNone(ens_service.resolve_ens_name('unregistered.eth'))

        mock_get_web3.return_value.ens.address.side_effect = requests.ConnectionError('rpc down')
        self.assertIsNone(ens_service.resolve_ens_name('vitalik.eth'))


if __name__ == '__main__':
    unittest.main()
