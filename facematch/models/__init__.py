"""Data models and type definitions"""
from .types import (
    Box,
    Detection,
    LabeledDescriptor,
    MatchResult,
    MatchEntry,
    MatchResponse,
    ErrorResponse,
    ServerErrorResponse,
    DatasetEntry,
    MatchRequest,
)

__all__ = [
    'Box',
    'Detection',
    'LabeledDescriptor',
    'MatchResult',
    'MatchEntry',
    'MatchResponse',
    'ErrorResponse',
    'ServerErrorResponse',
    'DatasetEntry',
    'MatchRequest',
]
