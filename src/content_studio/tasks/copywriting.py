from __future__ import annotations

import re
from typing import List

from pydantic import Field

from ..types import TextResult
from .base import StoreKey, Task, TaskModel, require


class CopyInputs(TaskModel):
    brief: str = Field(default="", description="Product background, selling points or requirements")
    platforms: List[str] = Field(default_factory=lambda: ["Facebook", "Instagram", "LinkedIn"])
    target_market: str = ""
    language: str = "English"


class CopyResult(TaskModel):
    text: str = ""


class CopywritingTask(Task[CopyInputs, CopyResult]):
    """Free-text copy generation; subclasses set the keys and the system instruction."""

    input_model = CopyInputs
    result_model = CopyResult
    system_instruction = "You are a senior cross-border marketing copywriter."

    def build_prompt(self, inputs: CopyInputs) -> str:
        lines = [f"Brief: {require(inputs.brief, 'brief')}"]
        if inputs.platforms:
            lines.append(f"Platforms: {', '.join(inputs.platforms)}")
        if inputs.target_market:
            lines.append(f"Target market: {inputs.target_market}")
        return "\n".join(lines)

    async def generate(self) -> CopyResult:
        inputs = self.inputs.value
        prompt = self.build_prompt(inputs)
        response = await self.client.generate_text(
            prompt,
            self.with_company_context(self.system_instruction),
            output_language=inputs.language or None,
        )
        return self.results.set(CopyResult(text=response.text))


class MarketingCopyTask(CopywritingTask):
    input_key = StoreKey.MARKETING_INPUTS
    result_key = StoreKey.MARKETING_RESULT
    system_instruction = (
        "You are a social media marketing expert for export products. "
        "Output copy blocks that can be pasted directly; do not use tables."
    )


class OutreachInputs(TaskModel):
    target_market: str = "Germany"
    language: str = "English"
    product_name: str = "Precision Wheel Hub Bearing"
    product_category: str = "Auto Parts / Bearings"
    product_specs: str = "High-carbon chromium steel, G3 precision, zero-noise technology"
    application_scenario: str = "Aftermarket repair, high-end vehicle maintenance"
    selling_points: str = "Direct factory price, CE & IATF16949 certified, 24-hour shipping from stock"


class OutreachEmail(TaskModel):
    title: str = ""
    body: str = ""
    expert_notes: str = Field(default="", alias="expertNotes")
    suggestions: str = ""


_OUTREACH_BLOCKS = {
    "title": re.compile(r"---TITLE---(.*?)---BODY---", re.DOTALL),
    "body": re.compile(r"---BODY---(.*?)---EXPERT NOTES---", re.DOTALL),
    "expert_notes": re.compile(r"---EXPERT NOTES---(.*?)---SUGGESTIONS---", re.DOTALL),
    "suggestions": re.compile(r"---SUGGESTIONS---(.*)$", re.DOTALL),
}


def parse_outreach_email(text: str) -> OutreachEmail:
    """Split a ``---TITLE---`` / ``---BODY---`` / ... response; the body falls back to the whole text."""
    fields = {}
    for name, pattern in _OUTREACH_BLOCKS.items():
        match = pattern.search(text)
        fields[name] = match.group(1).strip() if match else ""
    if not fields["body"]:
        fields["body"] = text
    return OutreachEmail(**fields)


class ColdOutreachTask(Task[OutreachInputs, OutreachEmail]):
    """B2B cold email tuned to the target market, returned as subject, body and expert notes."""

    input_key = StoreKey.OUTREACH_INPUTS
    result_key = StoreKey.OUTREACH_RESULT
    input_model = OutreachInputs
    result_model = OutreachEmail
    system_instruction = "You are a 20-year B2B Export Expert."

    def build_prompt(self, inputs: OutreachInputs) -> str:
        market = require(inputs.target_market, "target_market")
        language = require(inputs.language, "language")
        context = "\n".join(
            [
                "Role: You are a 20-year veteran foreign trade expert (senior export manager).",
                "",
                "Input context:",
                f"- Target market: {market}",
                f"- Email language: {language}",
                f"- Product name: {inputs.product_name}",
                f"- Product category: {inputs.product_category}",
                f"- Core specs: {inputs.product_specs}",
                f"- Application scenarios: {inputs.application_scenario}",
                f"- Key USPs: {inputs.selling_points}",
            ]
        )
        return "\n".join(
            [
                self.with_company_context(context, label="[Company Profile]"),
                "",
                f"Task: generate a high-converting, professional B2B cold outreach email in {language}.",
                "Adapt the tone to the market: Europe/USA direct and certification-focused; Middle East "
                "respectful with emphasis on reputation and long-term partnership; SE Asia pragmatic on cost, "
                "lead times and reliability; Latin America warm and relationship-driven.",
                "Structure: greeting, hook, company and product intro, top 3 selling points, call to action, sign-off.",
                "Output in the following blocks, with no tables:",
                "---TITLE---",
                "[Email subject line]",
                "---BODY---",
                "[Email content]",
                "---EXPERT NOTES---",
                "[1-2 sentences explaining the logic for this market]",
                "---SUGGESTIONS---",
                "[1-2 improvement tips for the user]",
                f"STRICT: use only {language} for the title and body. Use Chinese for expert notes and suggestions.",
            ]
        )

    async def generate(self) -> OutreachEmail:
        prompt = self.build_prompt(self.inputs.value)
        response = await self.client.generate_text(prompt, self.system_instruction)
        return self.results.set(parse_outreach_email(response.text))


class LeadGenInputs(TaskModel):
    industry: str = ""
    keyword: str = ""
    target_market: str = ""
    user_portrait: str = ""
    selling_points: str = ""


class LeadSource(TaskModel):
    uri: str
    title: str = ""


class LeadGenResults(TaskModel):
    analysis: str = ""
    sources: List[LeadSource] = Field(default_factory=list)


class LeadGenTask(Task[LeadGenInputs, LeadGenResults]):
    """Customer discovery backed by live web search; citations are kept with the analysis."""

    input_key = StoreKey.LEADGEN_INPUTS
    result_key = StoreKey.LEADGEN_RESULTS
    input_model = LeadGenInputs
    result_model = LeadGenResults

    def build_prompt(self, inputs: LeadGenInputs) -> str:
        keyword = require(inputs.keyword, "keyword")
        return "\n".join(
            [
                "Find at least 10 verifiable companies that buy the product below. Use web search; "
                "never invent data. Answer as a Markdown table with company details, product lines, "
                "contact approach and a pitch angle, then list the source URLs.",
                f"Industry: {inputs.industry}",
                f"Product keyword: {keyword}",
                f"Target market: {inputs.target_market}",
                f"Customer profile: {inputs.user_portrait}",
                f"Selling points: {inputs.selling_points}",
            ]
        )

    async def generate(self) -> LeadGenResults:
        prompt = self.with_company_context(self.build_prompt(self.inputs.value))
        response: TextResult = await self.client.generate_text(
            prompt,
            "You are a professional export lead generation specialist.",
            use_grounded_search=True,
        )
        results = LeadGenResults(
            analysis=response.text,
            sources=[LeadSource(uri=source.uri, title=source.title) for source in response.sources],
        )
        return self.results.set(results)
