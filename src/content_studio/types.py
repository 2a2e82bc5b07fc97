from __future__ import annotations

import base64
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Union


class Modality(str, Enum):
    """Kind of generation a request asks for."""

    TEXT = "text"
    GROUNDED_TEXT = "grounded-text"
    STRUCTURED = "structured"
    IMAGE = "image"
    IMAGE_INVERSION = "image-inversion"
    VIDEO = "video"


class OperationStatus(str, Enum):
    """Lifecycle state of a video job."""

    INITIATED = "INITIATED"
    POLLING = "POLLING"
    DONE = "DONE"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (OperationStatus.DONE, OperationStatus.FAILED)


@dataclass(frozen=True, slots=True)
class ImageArtifact:
    """Self-describing image payload (MIME type plus raw bytes)."""

    mime_type: str
    data: bytes

    @property
    def base64_data(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.base64_data}"

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True, slots=True)
class ImageConfig:
    aspect_ratio: str = "1:1"
    size: str = "1K"


@dataclass(frozen=True, slots=True)
class GroundingSource:
    uri: str
    title: str = ""


@dataclass(frozen=True, slots=True)
class TextResult:
    text: str
    sources: tuple[GroundingSource, ...] = ()


@dataclass(frozen=True, slots=True)
class StructuredResult:
    value: Any
    raw_text: str


@dataclass(frozen=True, slots=True)
class ImageResult:
    images: tuple[ImageArtifact, ...] = ()

    @property
    def is_empty(self) -> bool:
        """True when the service returned no usable image."""
        return not self.images


@dataclass(frozen=True, slots=True)
class Operation:
    """Immutable snapshot of a video job; the tracker replaces snapshots instead of mutating them."""

    handle: str
    status: OperationStatus = OperationStatus.INITIATED
    result_location: str | None = None
    error: str | None = None
    polls: int = 0
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


@dataclass(frozen=True, slots=True)
class VideoResult:
    """A finished video job together with its directly downloadable URL."""

    operation: Operation
    download_url: str


@dataclass(frozen=True, slots=True)
class TextRequest:
    prompt: str
    system_instruction: str | None = None
    grounded: bool = False
    output_language: str | None = None

    @property
    def modality(self) -> Modality:
        return Modality.GROUNDED_TEXT if self.grounded else Modality.TEXT


@dataclass(frozen=True, slots=True)
class StructuredRequest:
    prompt: str
    schema: Mapping[str, Any]
    system_instruction: str | None = None

    @property
    def modality(self) -> Modality:
        return Modality.STRUCTURED


@dataclass(frozen=True, slots=True)
class ImageRequest:
    prompt: str
    config: ImageConfig = field(default_factory=ImageConfig)
    source_image: ImageArtifact | None = None

    @property
    def modality(self) -> Modality:
        return Modality.IMAGE


@dataclass(frozen=True, slots=True)
class ImageInversionRequest:
    image: ImageArtifact
    instruction: str

    @property
    def modality(self) -> Modality:
        return Modality.IMAGE_INVERSION


@dataclass(frozen=True, slots=True)
class VideoRequest:
    prompt: str
    aspect_ratio: str = "9:16"
    resolution: str | None = None
    count: int = 1

    @property
    def modality(self) -> Modality:
        return Modality.VIDEO


GenerationRequest = Union[TextRequest, StructuredRequest, ImageRequest, ImageInversionRequest, VideoRequest]
GenerationResult = Union[TextResult, StructuredResult, ImageResult, str, Operation]
