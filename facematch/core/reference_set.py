"""Reference set construction.

Every dataset entry is validated, downloaded and run through single-face
detection concurrently. Entries that fail at any step are logged and
dropped; the request only fails when nothing survives.
"""

import asyncio
import logging
from typing import Any, List, Optional

from pydantic import ValidationError

from ..models.types import DatasetEntry, LabeledDescriptor
from ..utils.image import ImageFetcher
from .face_detection import ModelLoadError, NoFacesDetectedError, RecognitionEngine

logger = logging.getLogger(__name__)


class EmptyReferenceSetError(Exception):
    """Raised when no dataset entry yields a usable face descriptor."""
    pass


class InvalidEntryError(ValueError):
    """A dataset entry does not have the expected shape."""
    pass


def parse_entry(raw: Any) -> DatasetEntry:
    """Validate one raw dataset entry.

    Raises:
        InvalidEntryError: If the entry is not an object with a non-empty
            ``id`` and an http(s) ``imglink``.
    """
    if not isinstance(raw, dict):
        raise InvalidEntryError("Invalid dataset entry format")
    try:
        return DatasetEntry.model_validate(raw)
    except ValidationError as e:
        first = e.errors()[0]
        if first["type"] == "missing":
            raise InvalidEntryError("Missing required fields: id or imglink") from e
        message = first["msg"].removeprefix("Value error, ")
        raise InvalidEntryError(message) from e


async def process_entry(
    raw: Any,
    fetcher: ImageFetcher,
    engine: RecognitionEngine,
) -> LabeledDescriptor:
    """Turn one dataset entry into a labeled descriptor.

    Raises:
        InvalidEntryError: Malformed entry.
        FetchError: The image could not be downloaded or decoded.
        NoFacesDetectedError: No face in the image.
    """
    entry = parse_entry(raw)

    logger.info(f"Processing image for id {entry.label}")
    image = await fetcher.fetch_image(entry.imglink)

    detection = await engine.detect_single_face(image)
    if detection is None:
        raise NoFacesDetectedError("No face detected in image")

    return {'label': entry.label, 'descriptors': [detection['descriptor']]}


def _describe_entry(raw: Any) -> str:
    if isinstance(raw, dict):
        return f"id {raw.get('id')!r} ({raw.get('imglink')!r})"
    return repr(raw)


async def build_reference_set(
    dataset: List[Any],
    fetcher: ImageFetcher,
    engine: RecognitionEngine,
) -> List[LabeledDescriptor]:
    """Build labeled descriptors for every processable dataset entry.

    All entries run concurrently and are awaited to completion; a failing
    entry never cancels its siblings. Output keeps dataset order.

    Raises:
        EmptyReferenceSetError: If every entry failed.
        ModelLoadError: If the engine could not be loaded while processing.
    """
    logger.info(f"Processing {len(dataset)} images from dataset")

    outcomes = await asyncio.gather(
        *(process_entry(raw, fetcher, engine) for raw in dataset),
        return_exceptions=True
    )

    reference_set: List[LabeledDescriptor] = []
    load_error: Optional[ModelLoadError] = None
    for raw, outcome in zip(dataset, outcomes):
        if isinstance(outcome, ModelLoadError):
            load_error = outcome
        elif isinstance(outcome, Exception):
            logger.warning(f"Error processing image for {_describe_entry(raw)}: {outcome}")
        elif isinstance(outcome, BaseException):
            raise outcome
        else:
            reference_set.append(outcome)

    if load_error is not None:
        raise load_error

    logger.info(
        f"Generated {len(reference_set)} valid descriptors out of {len(dataset)} images"
    )

    if not reference_set:
        raise EmptyReferenceSetError(
            "No valid face descriptors could be generated from the dataset"
        )

    return reference_set
