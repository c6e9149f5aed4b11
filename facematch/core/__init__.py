"""Core face detection and matching functionality"""
from .face_detection import (
    RecognitionEngine,
    ModelLoadError,
    NoFacesDetectedError,
    get_engine
)
from .matcher import FaceMatcher, UNKNOWN_LABEL
from .reference_set import build_reference_set, EmptyReferenceSetError

__all__ = [
    'RecognitionEngine',
    'ModelLoadError',
    'NoFacesDetectedError',
    'get_engine',
    'FaceMatcher',
    'UNKNOWN_LABEL',
    'build_reference_set',
    'EmptyReferenceSetError'
]
