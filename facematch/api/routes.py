"""Group photo matching API routes.

``POST /`` takes a dataset of labeled reference image URLs and a group
photo URL, and reports the best matching label for every face found in the
group photo.
"""

import asyncio
import json
import logging
import traceback
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from ..config import get_settings
from ..core.face_detection import (
    ModelLoadError,
    NoFacesDetectedError,
    RecognitionEngine,
    get_engine
)
from ..core.matcher import FaceMatcher, to_match_entry
from ..core.reference_set import EmptyReferenceSetError, build_reference_set
from ..models.types import (
    Detection,
    ErrorResponse,
    MatchRequest,
    MatchResponse,
    ServerErrorResponse
)
from ..utils.http import get_shared_http_client
from ..utils.image import ImageFetcher

logger = logging.getLogger(__name__)

router = APIRouter()


class GroupImageError(Exception):
    """The group photo could not be downloaded or analysed."""
    pass


class BodyTooLargeError(Exception):
    """The request body exceeds the configured size limit."""
    pass


def body_too_large_response(limit: int) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
        content={
            "error": "Request body too large",
            "details": f"Body must not exceed {limit} bytes",
        },
    )


async def _read_json_body(request: Request, limit: int) -> Any:
    """Read and parse the body, stopping as soon as it exceeds ``limit`` bytes.

    Chunked uploads carry no Content-Length, so the size is counted here.
    """
    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if len(body) > limit:
            raise BodyTooLargeError(f"Body exceeds {limit} bytes")
    return json.loads(bytes(body))


def get_image_fetcher() -> ImageFetcher:
    settings = get_settings()
    return ImageFetcher(
        get_shared_http_client(),
        max_retries=settings.fetch_max_retries,
        retry_delay=settings.fetch_retry_delay,
        timeout=settings.fetch_timeout,
        user_agent=settings.fetch_user_agent
    )


def _client_error(error: str, details: Optional[str] = None, **extra: Any) -> JSONResponse:
    body: ErrorResponse = {'error': error}
    if details is not None:
        body['details'] = details
    body.update(extra)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body)


def _server_error(error: str, exc: Exception, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> JSONResponse:
    body: ServerErrorResponse = {'error': error, 'message': str(exc)}
    if get_settings().is_development:
        body['stack'] = ''.join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return JSONResponse(status_code=status_code, content=body)


def _validation_error(body: Any, exc: ValidationError) -> JSONResponse:
    """Map a request schema failure to the field the caller got wrong."""
    if not isinstance(body, dict):
        return _client_error("Invalid request body", "Body must be a JSON object")

    fields = {error['loc'][0] for error in exc.errors() if error['loc']}
    if 'dataset' in fields:
        return _client_error(
            "Invalid dataset format",
            "Dataset must be a non-empty array",
            received=body.get('dataset')
        )
    return _client_error(
        "Invalid group_img",
        "group_img must be a valid URL string",
        received=body.get('group_img')
    )


async def _detect_group_faces(
    url: str,
    fetcher: ImageFetcher,
    engine: RecognitionEngine
) -> List[Detection]:
    try:
        image = await fetcher.fetch_image(url)
        return await engine.detect_all_faces(image)
    except ModelLoadError:
        raise
    except Exception as e:
        raise GroupImageError(str(e)) from e


async def _match_group_photo(
    payload: MatchRequest,
    engine: RecognitionEngine,
    fetcher: ImageFetcher
) -> Dict:
    await engine.ensure_ready()

    reference_set = await build_reference_set(payload.dataset, fetcher, engine)

    logger.info("Processing group image...")
    detections = await _detect_group_faces(payload.group_img, fetcher, engine)
    if not detections:
        raise NoFacesDetectedError("No faces detected in group image")

    logger.info(f"Detected {len(detections)} faces in group image")

    matcher = FaceMatcher(
        reference_set,
        threshold=get_settings().match_threshold,
        distance=engine.face_distance
    )
    matches = [to_match_entry(matcher.match(d['descriptor'])) for d in detections]

    response: MatchResponse = {
        'success': True,
        'totalFacesDetected': len(detections),
        'matches': matches
    }
    return response


@router.post("/", response_model=MatchResponse)
async def match_faces(
    request: Request,
    engine: RecognitionEngine = Depends(get_engine),
    fetcher: ImageFetcher = Depends(get_image_fetcher)
):
    """Match every face in a group photo against labeled reference images.

    Request body::

        {"dataset": [{"id": 1, "imglink": "https://..."}, ...],
         "group_img": "https://..."}

    Returns:
        ``{success, totalFacesDetected, matches}`` with one
        ``{label, distance, confidence}`` per detected face, in detection
        order. Faces with no reference within the threshold are labeled
        ``unknown``.

    Client errors answer 400 with ``{error, details?, received?}``; server
    errors answer 500 with ``{error, message, stack?}``.
    """
    logger.info("Received match request")

    limit = get_settings().max_body_size
    try:
        body = await _read_json_body(request, limit)
    except BodyTooLargeError as e:
        logger.warning(f"Rejected request: {str(e)}")
        return body_too_large_response(limit)
    except ValueError:
        return _client_error("Invalid request body", "Body must be valid JSON")

    try:
        payload = MatchRequest.model_validate(body)
    except ValidationError as e:
        logger.warning(f"Validation error: {e.errors()}")
        return _validation_error(body, e)

    try:
        return await asyncio.wait_for(
            _match_group_photo(payload, engine, fetcher),
            timeout=get_settings().request_timeout
        )
    except EmptyReferenceSetError as e:
        logger.warning(f"Reference set error: {str(e)}")
        return _client_error(str(e))
    except NoFacesDetectedError as e:
        logger.warning(f"Face detection error: {str(e)}")
        return _client_error(str(e))
    except ModelLoadError as e:
        logger.error(f"Error loading models: {str(e)}")
        return _server_error("Failed to load face recognition models", e)
    except GroupImageError as e:
        logger.error(f"Error processing group image: {str(e)}")
        return _server_error("Failed to process group image", e)
    except asyncio.TimeoutError:
        timeout = get_settings().request_timeout
        logger.error(f"Request deadline of {timeout}s exceeded")
        return _server_error(
            "Request timed out",
            TimeoutError(f"Request did not complete within {timeout} seconds"),
            status_code=status.HTTP_504_GATEWAY_TIMEOUT
        )
    except Exception as e:
        logger.exception("Error in match handler")
        return _server_error("Internal server error", e)
