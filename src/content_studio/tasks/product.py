from __future__ import annotations

from typing import Any, List

from pydantic import Field, ValidationError as PydanticValidationError

from ..errors import SchemaParseError, ValidationError
from ..schema import array_schema, object_schema, string_schema
from .base import StoreKey, Task, TaskModel, require

PRODUCT_LISTING_SCHEMA = object_schema(
    {
        "titles": array_schema(string_schema()),
        "bullets": array_schema(string_schema()),
        "attributes": array_schema(
            object_schema({"param": string_schema(), "value": string_schema()})
        ),
        "imagePrompts": array_schema(string_schema()),
    }
)


class ProductInputs(TaskModel):
    prod_info: str = ""
    brand: str = ""
    keyword: str = ""
    amazon_url: str = ""
    bullet_points: str = ""


class ProductAttribute(TaskModel):
    param: str
    value: str


class ProductListing(TaskModel):
    titles: List[str] = Field(default_factory=list)
    bullets: List[str] = Field(default_factory=list)
    image_prompts: List[str] = Field(default_factory=list, alias="imagePrompts")
    attributes: List[ProductAttribute] = Field(default_factory=list)


class ProductListingTask(Task[ProductInputs, ProductListing]):
    """SEO titles, bullet points, attributes and image prompts as structured data."""

    input_key = StoreKey.PRODUCT_INPUTS
    result_key = StoreKey.PRODUCT_RESULTS
    input_model = ProductInputs
    result_model = ProductListing

    def build_prompt(self, inputs: ProductInputs) -> str:
        keyword = require(inputs.keyword, "keyword")
        return self.with_company_context(
            "\n".join(
                [
                    "You are a cross-border e-commerce listing expert.",
                    f"Brand: {inputs.brand}",
                    f"Core keyword: {keyword}",
                    f"Amazon reference: URL ({inputs.amazon_url}) | Bullets ({inputs.bullet_points})",
                    f"Product details: {inputs.prod_info}",
                    f"1. Generate exactly 5 SEO product titles (max 128 characters) ending with \"{keyword}\".",
                    "2. Generate 5 bullet points.",
                    "3. Generate exactly 10 technical attributes as param/value pairs.",
                    "4. Generate 6 image prompts (1 main studio shot, 5 secondary), each with a 1:1 aspect ratio.",
                    "Write everything in English only.",
                ]
            )
        )

    async def generate(self) -> ProductListing:
        prompt = self.build_prompt(self.inputs.value)
        result = await self.client.generate_structured(prompt, PRODUCT_LISTING_SCHEMA)
        listing = _validate_listing(result.value, result.raw_text)
        return self.results.set(listing)


def _validate_listing(value: Any, raw_text: str) -> ProductListing:
    try:
        return ProductListing.model_validate(value)
    except PydanticValidationError as exc:
        raise SchemaParseError(f"Product listing does not match the declared schema: {exc}", raw_text) from exc


PRODUCT_FISSION_SCHEMA = object_schema(
    {
        "title": string_schema(),
        "bullets": array_schema(string_schema()),
        "mainImagePrompt": string_schema(),
        "subImagePrompts": array_schema(string_schema()),
    }
)


class FissionInputs(TaskModel):
    amazon_url: str = ""
    brand: str = ""
    keyword: str = ""


class FissionListing(TaskModel):
    title: str = ""
    bullets: List[str] = Field(default_factory=list)
    main_image_prompt: str = Field(default="", alias="mainImagePrompt")
    sub_image_prompts: List[str] = Field(default_factory=list, alias="subImagePrompts")


class ProductFissionTask(Task[FissionInputs, FissionListing]):
    """Derive an optimized variant listing from an existing Amazon product."""

    input_key = StoreKey.FISSION_INPUTS
    result_key = StoreKey.FISSION_RESULTS
    input_model = FissionInputs
    result_model = FissionListing

    def build_prompt(self, inputs: FissionInputs) -> str:
        if not (inputs.amazon_url.strip() or inputs.keyword.strip()):
            raise ValidationError("Provide an Amazon URL or a core keyword")
        return self.with_company_context(
            "\n".join(
                [
                    f"Amazon URL: {inputs.amazon_url}",
                    f"Brand name: {inputs.brand}",
                    f"Core keyword: {inputs.keyword}",
                    "",
                    'TASK: Parse the Amazon product and create a "fission" version (a new variant optimization).',
                    "1. Optimized title: max 128 chars, Title Case, no symbols except - and /.",
                    "2. Five product bullet points: English only, high conversion focus.",
                    "3. Six image prompts: 1 main image (Amazon standard studio shot) and 5 sub images "
                    "(features, detail, environment, multi-angle, packaging). Specify a 1:1 aspect ratio in each.",
                    "OUTPUT ENGLISH ONLY.",
                ]
            ),
            label="Company Info",
        )

    async def generate(self) -> FissionListing:
        prompt = self.build_prompt(self.inputs.value)
        result = await self.client.generate_structured(prompt, PRODUCT_FISSION_SCHEMA)
        try:
            listing = FissionListing.model_validate(result.value)
        except PydanticValidationError as exc:
            raise SchemaParseError(f"Fission listing does not match the declared schema: {exc}", result.raw_text) from exc
        return self.results.set(listing)
