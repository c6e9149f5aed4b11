"""Image download and decoding utilities.

Images are fetched over HTTP(S) with a bounded number of attempts and a
linear backoff between them, then decoded into RGB numpy arrays, which is
the layout the recognition engine expects.
"""

import asyncio
import logging
from typing import Optional

import cv2
import httpx
import numpy as np

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
RETRY_DELAY = 1.0  # seconds, multiplied by the attempt number
FETCH_TIMEOUT = 5.0
USER_AGENT = "Face-Recognition-API/1.0"


class ImageProcessingError(Exception):
    """Base exception for image processing errors."""
    pass


class ImageDecodingError(ImageProcessingError):
    """Exception raised when the downloaded payload is empty."""
    pass


class ImageFormatError(ImageProcessingError):
    """Exception raised when the payload cannot be read as an image."""
    pass


class FetchError(Exception):
    """Raised once every attempt to load an image has failed."""

    def __init__(self, url: str, attempts: int, reason: str):
        self.url = url
        self.attempts = attempts
        self.reason = reason
        super().__init__(f"Failed to load image {url} after {attempts} attempts: {reason}")


def decode_image_bytes(data: bytes) -> np.ndarray:
    """Decode an encoded image buffer.

    Args:
        data: Raw bytes of a JPEG/PNG/... file.

    Returns:
        Decoded image as numpy array in RGB format.

    Raises:
        ImageDecodingError: If the buffer is empty.
        ImageFormatError: If the buffer cannot be read as an image.
    """
    if not data:
        raise ImageDecodingError("Empty image payload")

    nparr = np.frombuffer(data, np.uint8)
    try:
        image = cv2.imdecode(nparr, cv2.IMREAD_COLOR)
        if image is None:
            raise ImageFormatError("Failed to decode image data")
        return cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
    except cv2.error as e:
        raise ImageFormatError(f"Failed to decode image data: {e}") from e


class ImageFetcher:
    """Downloads and decodes images with retries."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        max_retries: int = MAX_RETRIES,
        retry_delay: float = RETRY_DELAY,
        timeout: float = FETCH_TIMEOUT,
        user_agent: str = USER_AGENT,
    ):
        self.client = client
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.user_agent = user_agent

    async def fetch_image(self, url: str) -> np.ndarray:
        """Fetch ``url`` and decode it.

        Network errors, non-2xx responses, undecodable payloads and downloads
        taking longer than ``timeout`` all count as a failed attempt. Attempt ``n`` is followed by a pause of
        ``retry_delay * n`` seconds.

        Raises:
            FetchError: After ``max_retries`` failed attempts.
        """
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_retries + 1):
            try:
                # httpx only bounds each phase; the deadline covers the whole download
                return await asyncio.wait_for(self._attempt(url), timeout=self.timeout)
            except asyncio.TimeoutError:
                last_error = TimeoutError(f"Timed out after {self.timeout} seconds")
                logger.warning(
                    f"Attempt {attempt}/{self.max_retries} failed for URL {url}: {last_error}"
                )
            except (httpx.HTTPError, httpx.InvalidURL, ImageProcessingError) as e:
                last_error = e
                logger.warning(
                    f"Attempt {attempt}/{self.max_retries} failed for URL {url}: {e}"
                )

            if attempt < self.max_retries:
                await asyncio.sleep(self.retry_delay * attempt)

        raise FetchError(url, self.max_retries, str(last_error))

    async def _attempt(self, url: str) -> np.ndarray:
        response = await self.client.get(
            url,
            timeout=self.timeout,
            headers={"User-Agent": self.user_agent},
        )
        response.raise_for_status()
        return decode_image_bytes(response.content)
