"""Recognition engine adapter.

Wraps the ``face_recognition`` library (dlib face detector, 68-point
landmark predictor and ResNet descriptor network) behind a small async
interface. The models are loaded once per process behind a readiness gate
and then shared read-only by every request.
"""

import asyncio
import importlib
import logging
import threading
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..config import get_settings
from ..models.types import Box, Detection

logger = logging.getLogger(__name__)

# Files face_recognition loads at import time
REQUIRED_MODEL_FILES = {
    "face detector": "mmod_human_face_detector.dat",
    "landmark estimator": "shape_predictor_68_face_landmarks.dat",
    "descriptor network": "dlib_face_recognition_resnet_model_v1.dat",
}

# (top, right, bottom, left), as returned by face_recognition
Location = Tuple[int, int, int, int]


class FaceDetectionError(Exception):
    """Base exception for face detection errors."""
    pass


class NoFacesDetectedError(FaceDetectionError):
    """Exception raised when no face is detected in an image."""
    pass


class ModelLoadError(FaceDetectionError):
    """Exception raised when the recognition models cannot be loaded."""
    pass


def resolve_models_dir() -> Path:
    """Directory holding the dlib model weights used by face_recognition."""
    import face_recognition_models

    return Path(face_recognition_models.pose_predictor_model_location()).parent


def location_to_box(location: Location) -> Box:
    top, right, bottom, left = location
    return {
        'x': int(left),
        'y': int(top),
        'width': int(right - left),
        'height': int(bottom - top)
    }


def location_area(location: Location) -> int:
    top, right, bottom, left = location
    return (right - left) * (bottom - top)


class RecognitionEngine:
    """Face detection and descriptor extraction backed by face_recognition.

    Detection, landmark and descriptor calls run in a worker thread so the
    event loop keeps serving downloads. They are serialized by a lock because
    the dlib networks are not safe to run concurrently.
    """

    def __init__(self, detection_model: str = "hog", num_jitters: int = 1, upsample: int = 1):
        self.detection_model = detection_model
        self.num_jitters = num_jitters
        self.upsample = upsample
        self._api = None
        self._load_lock = asyncio.Lock()
        self._inference_lock = threading.Lock()

    @property
    def is_ready(self) -> bool:
        return self._api is not None

    async def ensure_ready(self) -> None:
        """Load the models once; concurrent callers wait for the same load.

        A failed load is not cached, so a later call tries again.

        Raises:
            ModelLoadError: If any of the models cannot be loaded.
        """
        if self._api is not None:
            return
        async with self._load_lock:
            if self._api is None:
                self._api = await asyncio.to_thread(self._load)

    def _load(self):
        try:
            models_dir = resolve_models_dir()
        except ImportError as e:
            raise ModelLoadError(f"Model package is not installed: {e}") from e

        missing = [
            f"{name} ({filename})"
            for name, filename in REQUIRED_MODEL_FILES.items()
            if not (models_dir / filename).is_file()
        ]
        if missing:
            raise ModelLoadError(f"Missing models in {models_dir}: {', '.join(missing)}")

        try:
            api = importlib.import_module("face_recognition")
        except Exception as e:
            raise ModelLoadError(str(e)) from e

        logger.info(f"Models loaded successfully from {models_dir}")
        return api

    def _locate(self, image: np.ndarray) -> List[Location]:
        return self._api.face_locations(
            image,
            number_of_times_to_upsample=self.upsample,
            model=self.detection_model
        )

    def _describe(self, image: np.ndarray, locations: List[Location]) -> List[Detection]:
        landmarks = self._api.face_landmarks(image, locations)
        encodings = self._api.face_encodings(
            image,
            known_face_locations=locations,
            num_jitters=self.num_jitters,
            model="large"
        )
        return [
            {
                'box': location_to_box(location),
                'landmarks': points,
                'descriptor': np.asarray(encoding)
            }
            for location, points, encoding in zip(locations, landmarks, encodings)
        ]

    def _detect_single(self, image: np.ndarray) -> Optional[Detection]:
        with self._inference_lock:
            locations = self._locate(image)
            if not locations:
                return None
            # Larger faces are usually the intended subject
            best = max(locations, key=location_area)
            detections = self._describe(image, [best])
        return detections[0] if detections else None

    def _detect_all(self, image: np.ndarray) -> List[Detection]:
        with self._inference_lock:
            locations = self._locate(image)
            if not locations:
                return []
            return self._describe(image, locations)

    async def detect_single_face(self, image: np.ndarray) -> Optional[Detection]:
        """Detect the most prominent face in a reference image.

        Returns:
            The detection with its descriptor, or None when no face is found.
        """
        await self.ensure_ready()
        return await asyncio.to_thread(self._detect_single, image)

    async def detect_all_faces(self, image: np.ndarray) -> List[Detection]:
        """Detect every face in an image, each with its own descriptor."""
        await self.ensure_ready()
        return await asyncio.to_thread(self._detect_all, image)

    def face_distance(self, known: Sequence[np.ndarray], query: np.ndarray) -> np.ndarray:
        """Distance between ``query`` and each of ``known`` in the engine's metric."""
        if self._api is None:
            raise ModelLoadError("Recognition models are not loaded")
        return self._api.face_distance(np.asarray(known), query)


_engine: Optional[RecognitionEngine] = None


def get_engine() -> RecognitionEngine:
    """Process-wide recognition engine."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = RecognitionEngine(
            detection_model=settings.detection_model,
            num_jitters=settings.num_jitters
        )
    return _engine
