"""Image download and HTTP client utilities"""
from .image import (
    ImageFetcher,
    FetchError,
    decode_image_bytes
)
from .http import get_shared_http_client, close_shared_http_client

__all__ = [
    'ImageFetcher',
    'FetchError',
    'decode_image_bytes',
    'get_shared_http_client',
    'close_shared_http_client'
]
