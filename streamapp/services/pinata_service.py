import logging

import requests
from flask import current_app

logger = logging.getLogger(__name__)


class PinataError(Exception):
    pass


class PinataService:
    """Pins JSON documents and files to IPFS through Pinata."""

    def __init__(self):
        self.api_key = current_app.config.get('PINATA_API_KEY')
        self.secret_api_key = current_app.config.get('PINATA_SECRET_API_KEY')
        self.base_url = current_app.config.get('PINATA_API_URL', 'https://api.pinata.cloud').rstrip('/')

    def _headers(self):
        if not self.api_key or not self.secret_api_key:
            raise PinataError("PINATA_API_KEY and PINATA_SECRET_API_KEY are not set")
        return {
            'pinata_api_key': self.api_key,
            'pinata_secret_api_key': self.secret_api_key,
        }

    def _pin(self, endpoint, **kwargs) -> str:
        try:
            response = requests.post(f"{self.base_url}/pinning/{endpoint}", headers=self._headers(), timeout=30, **kwargs)
            response.raise_for_status()
            ipfs_hash = response.json()['IpfsHash']
        except (requests.RequestException, KeyError, ValueError) as e:
            logger.error(f"PinataService: {endpoint} failed: {e}")
            raise PinataError(f"Failed to pin to IPFS: {e}") from e
        logger.info(f"PinataService: Pinned {ipfs_hash} via {endpoint}")
        return f"ipfs://{ipfs_hash}"

    def pin_json(self, document: dict) -> str:
        """Returns the ``ipfs://`` URI of the pinned document."""
        return self._pin('pinJSONToIPFS', json=document)

    def pin_file(self, filename: str, data: bytes, content_type: str = 'application/octet-stream') -> str:
        return self._pin('pinFileToIPFS', files={'file': (filename, data, content_type)})


def build_mint_metadata(stream_id, image_uri, description=None) -> dict:
    """ERC-1155 style metadata for a stream's mint."""
    return {
        'name': f"Stream Mint #{stream_id}",
        'description': description or '',
        'image': image_uri,
        'attributes': [
            {'trait_type': 'Stream ID', 'value': stream_id},
        ],
    }
