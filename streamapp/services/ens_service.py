import logging

import requests
from ens.exceptions import ENSException
from flask import current_app
from web3 import Web3
from web3.exceptions import Web3Exception

logger = logging.getLogger(__name__)

_web3: Web3 | None = None


def get_web3() -> Web3:
    """Mainnet client used for ENS lookups, created on first use."""
    global _web3
    if _web3 is None:
        provider_uri = current_app.config.get('WEB3_PROVIDER_URI', 'https://cloudflare-eth.com')
        _web3 = Web3(Web3.HTTPProvider(provider_uri, request_kwargs={'timeout': 10}))
    return _web3


def is_ens_name(name) -> bool:
    return bool(name) and name.endswith('.eth') and len(name) > 4


def resolve_ens_name(ens_name: str) -> str | None:
    try:
        address = get_web3().ens.address(ens_name)
    except (ENSException, Web3Exception, requests.RequestException, ValueError) as e:
        logger.warning(f"EnsService: Could not resolve '{ens_name}': {e}")
        return None
    return address or None


def normalize_to_address(value: str) -> str | None:
    """
    Turns an address or ENS name into a checksummed address.

    Returns None for anything that is neither, or for ENS names that do not
    resolve.
    """
    if not value:
        return None
    if Web3.is_address(value):
        return Web3.to_checksum_address(value)
    if is_ens_name(value):
        return resolve_ens_name(value)
    return None
