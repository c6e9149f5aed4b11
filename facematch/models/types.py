"""Data models and type definitions"""
import re
from typing import Any, Dict, List, Tuple, Union

import numpy as np
from pydantic import BaseModel, Field, StrictFloat, StrictInt, StrictStr, field_validator
from typing_extensions import NotRequired, TypedDict

URL_PATTERN = re.compile(r"^https?://.+")


class Box(TypedDict):
    x: int
    y: int
    width: int
    height: int


class Detection(TypedDict):
    box: Box
    landmarks: Dict[str, List[Tuple[int, int]]]
    descriptor: np.ndarray


class LabeledDescriptor(TypedDict):
    label: str
    descriptors: List[np.ndarray]


class MatchResult(TypedDict):
    label: str
    distance: float


class MatchEntry(TypedDict):
    label: str
    distance: float
    confidence: str


class MatchResponse(TypedDict):
    success: bool
    totalFacesDetected: int
    matches: List[MatchEntry]


class ErrorResponse(TypedDict):
    error: str
    details: NotRequired[str]
    received: NotRequired[Any]


class ServerErrorResponse(TypedDict):
    error: str
    message: str
    stack: NotRequired[str]


class DatasetEntry(BaseModel):
    """One labeled reference image from the request dataset."""

    id: Union[StrictStr, StrictInt, StrictFloat]
    imglink: StrictStr

    @field_validator("id")
    @classmethod
    def id_not_empty(cls, value):
        if value == "" or value == 0:
            raise ValueError("Missing required fields: id or imglink")
        return value

    @field_validator("imglink")
    @classmethod
    def imglink_is_url(cls, value: str) -> str:
        if not value:
            raise ValueError("Missing required fields: id or imglink")
        if not URL_PATTERN.match(value):
            raise ValueError("Invalid image URL format")
        return value

    @property
    def label(self) -> str:
        # 1.0 and 1 name the same person
        if isinstance(self.id, float) and self.id.is_integer():
            return str(int(self.id))
        return str(self.id)


class MatchRequest(BaseModel):
    """Body of ``POST /``.

    Dataset entries are kept raw here; each one is validated on its own by
    the reference set builder so a bad entry cannot fail the whole request.
    """

    dataset: List[Any] = Field(min_length=1)
    group_img: StrictStr

    @field_validator("group_img")
    @classmethod
    def group_img_is_url(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("group_img must not be empty")
        if not URL_PATTERN.match(value):
            raise ValueError("group_img must be an http(s) URL")
        return value
