from __future__ import annotations

import logging
from typing import List

from pydantic import Field

from ..errors import ValidationError
from ..media import ImageSource, load_source_image
from ..types import ImageArtifact, ImageConfig, ImageResult
from .base import StoreKey, Task, TaskContext, TaskModel, require

log = logging.getLogger(__name__)


class ImageInputs(TaskModel):
    prompt: str = ""
    aspect_ratio: str = "1:1"
    image_size: str = "1K"


class ImageResults(TaskModel):
    images: List[str] = Field(default_factory=list, description="Generated images as data URLs")
    reversed_prompt: str = ""


class ImageAssistantTask(Task[ImageInputs, ImageResults]):
    """
    Product image generation with an optional reference image.

    The reference image is held in memory only and never persisted.
    """

    input_key = StoreKey.IMAGE_INPUTS
    result_key = StoreKey.IMAGE_RESULTS
    input_model = ImageInputs
    result_model = ImageResults

    def __init__(self, context: TaskContext) -> None:
        super().__init__(context)
        self.source_image: ImageArtifact | None = None

    def set_source_image(self, source: ImageSource) -> ImageArtifact:
        self.source_image = load_source_image(source)
        return self.source_image

    def clear_source_image(self) -> None:
        self.source_image = None

    async def reverse_prompt(self) -> str:
        """Describe the reference image and adopt the description as the prompt input."""
        if self.source_image is None:
            raise ValidationError("No reference image loaded")
        prompt = await self.client.reverse_image_prompt(self.source_image)
        if prompt:
            self.results.update(reversed_prompt=prompt)
            self.inputs.update(prompt=prompt)
        else:
            log.warning("Image inversion returned no usable prompt")
        return prompt

    async def generate(self) -> ImageResult:
        inputs = self.inputs.value
        prompt = require(inputs.prompt, "prompt")
        result = await self.client.generate_image(
            prompt,
            ImageConfig(aspect_ratio=inputs.aspect_ratio, size=inputs.image_size),
            self.source_image,
        )
        if result.is_empty:
            log.warning("Image generation returned no images; keeping previous results")
        else:
            self.results.update(images=[image.data_url for image in result.images])
        return result
