"""
Shared AWS client module
Boto3 clients are created lazily and cached per region so every probe,
matcher and controller in a test session reuses the same connection pool.

Usage:
    from cloudspec.common.aws_clients import get_s3_client, get_stepfunctions_client
"""

import logging
import boto3
from typing import Any, Dict, Optional, Tuple

from cloudspec.common.config import get_settings

logger = logging.getLogger(__name__)

# (service, region) -> client
_clients: Dict[Tuple[str, str], Any] = {}


def _get_client(service_name: str, region: Optional[str] = None):
    region = region or get_settings().region
    cache_key = (service_name, region)
    client = _clients.get(cache_key)
    if client is None:
        client = boto3.client(service_name, region_name=region)
        _clients[cache_key] = client
        logger.debug("%s client initialized (region=%s)", service_name, region)
    return client


def get_s3_client(region: Optional[str] = None):
    """
    S3 client singleton

    Returns:
        boto3.client('s3')
    """
    return _get_client("s3", region)


def get_stepfunctions_client(region: Optional[str] = None):
    """
    Step Functions client singleton

    Returns:
        boto3.client('stepfunctions')
    """
    return _get_client("stepfunctions", region)


def get_cloudformation_client(region: Optional[str] = None):
    """
    CloudFormation client singleton

    Returns:
        boto3.client('cloudformation')
    """
    return _get_client("cloudformation", region)


def reset_clients() -> None:
    """Forget cached clients (needed when moto or credentials change under a test)"""
    _clients.clear()
