"""
Per-modality request builders and response parsers for the Gemini REST API.

Each handler owns one request variant: it names the model and endpoint, builds the
JSON body, and normalizes the response into a result type.
"""
from __future__ import annotations

import base64
import binascii
import json
from dataclasses import replace
from typing import Any, Dict, Generic, List, TypeVar

from ..config import GeminiConfig
from ..errors import SchemaParseError, ServiceError, ValidationError
from ..types import (
    GroundingSource,
    ImageArtifact,
    ImageInversionRequest,
    ImageRequest,
    ImageResult,
    Operation,
    OperationStatus,
    StructuredRequest,
    StructuredResult,
    TextRequest,
    TextResult,
    VideoRequest,
)

SUPPORTED_VIDEO_ASPECT_RATIOS = frozenset({"16:9", "9:16"})

RequestT = TypeVar("RequestT")
ResultT = TypeVar("ResultT")


def _first_candidate(data: Dict[str, Any]) -> Dict[str, Any]:
    candidates = data.get("candidates") or []
    return candidates[0] if candidates else {}


def _parts(data: Dict[str, Any]) -> List[Dict[str, Any]]:
    content = _first_candidate(data).get("content") or {}
    return list(content.get("parts") or [])


def response_text(data: Dict[str, Any]) -> str:
    """Concatenate the text parts of the first candidate, skipping thought summaries."""
    return "".join(
        part["text"]
        for part in _parts(data)
        if isinstance(part.get("text"), str) and not part.get("thought")
    )


def _user_content(parts: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [{"role": "user", "parts": parts}]


def _inline_part(image: ImageArtifact) -> Dict[str, Any]:
    return {"inlineData": {"mimeType": image.mime_type, "data": image.base64_data}}


def _system_instruction(text: str | None) -> Dict[str, Any] | None:
    if not text:
        return None
    return {"parts": [{"text": text}]}


class ModalityHandler(Generic[RequestT, ResultT]):
    """Base contract shared by every modality handler."""

    def model(self, config: GeminiConfig) -> str:
        raise NotImplementedError

    def endpoint(self, config: GeminiConfig) -> str:
        return f"models/{self.model(config)}:generateContent"

    def validate(self, request: RequestT) -> None:
        """Reject requests before any network traffic; no-op by default."""

    def build_body(self, request: RequestT, config: GeminiConfig) -> Dict[str, Any]:
        raise NotImplementedError

    def parse(self, request: RequestT, data: Dict[str, Any]) -> ResultT:
        raise NotImplementedError


class TextHandler(ModalityHandler[TextRequest, TextResult]):
    def model(self, config: GeminiConfig) -> str:
        return config.text_model

    def build_body(self, request: TextRequest, config: GeminiConfig) -> Dict[str, Any]:
        instruction = request.system_instruction or ""
        if request.output_language:
            language_rule = f"Write the entire response in {request.output_language}."
            instruction = f"{instruction}\n\n{language_rule}" if instruction else language_rule

        body: Dict[str, Any] = {"contents": _user_content([{"text": request.prompt}])}
        system = _system_instruction(instruction)
        if system:
            body["systemInstruction"] = system
        if request.grounded:
            body["tools"] = [{"google_search": {}}]
        return body

    def parse(self, request: TextRequest, data: Dict[str, Any]) -> TextResult:
        sources: List[GroundingSource] = []
        metadata = _first_candidate(data).get("groundingMetadata") or {}
        for chunk in metadata.get("groundingChunks") or []:
            web = chunk.get("web") or {}
            if web.get("uri"):
                sources.append(GroundingSource(uri=web["uri"], title=web.get("title") or ""))
        return TextResult(text=response_text(data), sources=tuple(sources))


class StructuredHandler(ModalityHandler[StructuredRequest, StructuredResult]):
    def model(self, config: GeminiConfig) -> str:
        return config.text_model

    def validate(self, request: StructuredRequest) -> None:
        if not request.schema:
            raise ValidationError("Structured requests require a response schema")

    def build_body(self, request: StructuredRequest, config: GeminiConfig) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "contents": _user_content([{"text": request.prompt}]),
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": dict(request.schema),
            },
        }
        system = _system_instruction(request.system_instruction)
        if system:
            body["systemInstruction"] = system
        return body

    def parse(self, request: StructuredRequest, data: Dict[str, Any]) -> StructuredResult:
        raw_text = response_text(data)
        try:
            value = json.loads(raw_text)
        except json.JSONDecodeError as exc:
            raise SchemaParseError(f"Structured output is not valid JSON: {exc.msg}", raw_text) from exc
        return StructuredResult(value=value, raw_text=raw_text)


class ImageHandler(ModalityHandler[ImageRequest, ImageResult]):
    def model(self, config: GeminiConfig) -> str:
        return config.image_model

    def build_body(self, request: ImageRequest, config: GeminiConfig) -> Dict[str, Any]:
        parts: List[Dict[str, Any]] = [{"text": request.prompt}]
        if request.source_image is not None:
            parts.insert(0, _inline_part(request.source_image))
        return {
            "contents": _user_content(parts),
            "generationConfig": {
                "responseModalities": ["TEXT", "IMAGE"],
                "imageConfig": {
                    "aspectRatio": request.config.aspect_ratio,
                    "imageSize": request.config.size,
                },
            },
        }

    def parse(self, request: ImageRequest, data: Dict[str, Any]) -> ImageResult:
        images: List[ImageArtifact] = []
        for part in _parts(data):
            inline = part.get("inlineData")
            if not inline or not inline.get("data"):
                continue
            try:
                image_bytes = base64.b64decode(inline["data"])
            except (ValueError, binascii.Error) as exc:
                raise ServiceError(f"Service returned undecodable image data: {exc}") from exc
            images.append(ImageArtifact(mime_type=inline.get("mimeType") or "image/png", data=image_bytes))
        return ImageResult(images=tuple(images))


class ImageInversionHandler(ModalityHandler[ImageInversionRequest, str]):
    def model(self, config: GeminiConfig) -> str:
        return config.image_model

    def build_body(self, request: ImageInversionRequest, config: GeminiConfig) -> Dict[str, Any]:
        return {"contents": _user_content([_inline_part(request.image), {"text": request.instruction}])}

    def parse(self, request: ImageInversionRequest, data: Dict[str, Any]) -> str:
        return response_text(data).strip()


class VideoHandler(ModalityHandler[VideoRequest, Operation]):
    def model(self, config: GeminiConfig) -> str:
        return config.video_model

    def endpoint(self, config: GeminiConfig) -> str:
        return f"models/{self.model(config)}:predictLongRunning"

    def validate(self, request: VideoRequest) -> None:
        if request.aspect_ratio not in SUPPORTED_VIDEO_ASPECT_RATIOS:
            raise ValidationError(
                f"Unsupported video aspect ratio '{request.aspect_ratio}'; "
                f"expected one of {', '.join(sorted(SUPPORTED_VIDEO_ASPECT_RATIOS))}"
            )
        if not request.prompt.strip():
            raise ValidationError("Video prompt must not be empty")
        if request.count < 1:
            raise ValidationError("Video count must be at least 1")

    def build_body(self, request: VideoRequest, config: GeminiConfig) -> Dict[str, Any]:
        return {
            "instances": [{"prompt": request.prompt}],
            "parameters": {
                "aspectRatio": request.aspect_ratio,
                "resolution": request.resolution or config.video_resolution,
                "sampleCount": request.count,
            },
        }

    def parse(self, request: VideoRequest, data: Dict[str, Any]) -> Operation:
        handle = data.get("name")
        if not handle:
            raise ServiceError(f"Video job response missing operation name: {list(data.keys())}")
        return Operation(
            handle=handle,
            status=OperationStatus.INITIATED,
            metadata={"aspect_ratio": request.aspect_ratio, "prompt": request.prompt},
        )

    def parse_poll(self, operation: Operation, data: Dict[str, Any]) -> Operation:
        """
        Fold one status response into a new snapshot of ``operation``.

        Payloads that do not have the documented shape raise ``ServiceError``.
        """
        polls = operation.polls + 1
        error = data.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else str(error)
            return replace(operation, status=OperationStatus.FAILED, error=message or "unknown error", polls=polls)

        if not data.get("done"):
            return replace(operation, status=OperationStatus.POLLING, polls=polls)

        response = _mapping(data.get("response"), "response")
        uri = _video_uri(response)
        if uri:
            return replace(operation, status=OperationStatus.DONE, result_location=uri, polls=polls)

        generated = _mapping(response.get("generateVideoResponse"), "response.generateVideoResponse")
        filtered = generated.get("raiMediaFilteredReasons") or []
        if not isinstance(filtered, list):
            filtered = [filtered]
        detail = "; ".join(str(reason) for reason in filtered) or "job finished without a generated video"
        return replace(operation, status=OperationStatus.FAILED, error=detail, polls=polls)


def _mapping(value: Any, field: str) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ServiceError(f"Video job status has a malformed '{field}': {type(value).__name__}")
    return value


def _video_uri(response: Dict[str, Any]) -> str | None:
    videos = response.get("generatedVideos")
    field = "response.generatedVideos"
    if videos is None:
        field = "response.generateVideoResponse.generatedSamples"
        videos = _mapping(response.get("generateVideoResponse"), "response.generateVideoResponse").get(
            "generatedSamples"
        )
    if videos is None:
        return None
    if not isinstance(videos, list):
        raise ServiceError(f"Video job status has a malformed '{field}': {type(videos).__name__}")
    for entry in videos:
        video = _mapping(_mapping(entry, field).get("video"), f"{field}.video")
        uri = video.get("uri")
        if isinstance(uri, str) and uri:
            return uri
    return None
