"""
Centralized Algorand network configuration.
Retrieves all settings from Django settings.py which reads from environment variables.
"""

from django.conf import settings
from algosdk.v2client import algod

from .validators import validate_network

USER_AGENT = 'randcash-backend/algosdk'


def get_network_config(network: str) -> dict:
    """Config for one of the supported networks; raises InvalidNetwork otherwise"""
    return settings.ALGORAND_NETWORKS[validate_network(network)]


def get_network_name(network: str) -> str:
    return get_network_config(network)['name']


def get_default_network() -> str:
    return validate_network(settings.ALGORAND_DEFAULT_NETWORK)


def get_algod_client(network: str) -> algod.AlgodClient:
    """Get Algorand Algod client for a network, with Nodely API key support"""
    cfg = get_network_config(network)
    address = cfg['algod_address']
    token = cfg.get('algod_token') or ''
    headers = {'User-Agent': USER_AGENT}

    if 'nodely' in (address or '').lower():
        if token:
            headers['X-API-Key'] = token
        return algod.AlgodClient('', address, headers=headers)

    return algod.AlgodClient(token, address, headers=headers)
