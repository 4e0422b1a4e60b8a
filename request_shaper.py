"""Requests to the Gemini API and decoding of its replies.

Every assumption about the shape of a ``GenerateContentResponse`` lives in
this module. Callers get plain result objects back and decide for
themselves whether a ``ServiceError`` means retry or degrade; nothing here
retries.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import List

from google.genai import types
from google.genai.types import Modality
from pydantic import ValidationError

import config
from image_data import image_part, to_data_uri
from models import (
    ArchitecturalDesign,
    Citation,
    CostBreakdown,
    FloorPlan,
    SiteDiscovery,
    Visualizations,
)
from system_prompt import (
    ARCHITECT_CHAT_PROMPT,
    CONCEPT_REQUEST,
    CONCEPT_SYNTHESIS_PROMPT,
    EXTERIOR_REQUEST,
    GLTF_EXPORT_REQUEST,
    HELP_REQUEST,
    IMAGE_EDIT_REQUEST,
    OBJ_EXPORT_REQUEST,
    PLAN_REQUEST,
    REFINE_REQUEST,
    SITE_ANALYSIS_REQUEST,
    SITE_ANALYST_PROMPT,
)

logger = logging.getLogger(__name__)

THINKING_MODELS = {
    "gemini-3.1-pro-preview",
    "gemini-3-pro-preview",
    "gemini-3-flash-preview",
    "gemini-2.5-pro",
    "gemini-2.5-flash",
}

EXTERIOR_PLACEHOLDER = "https://images.unsplash.com/photo-1600585154340-be6161a56a0c"
INTERIOR_PLACEHOLDER = "https://images.unsplash.com/photo-1600210492486-724fe5c67fb0"
PLAN_PLACEHOLDER = "https://images.unsplash.com/photo-1503387762-592deb58ef4e"

DEFAULT_ANALYSIS = "Site analysis finalized."
DEFAULT_DESIGN_NAME = "Real-World Synthesis Design"
DEFAULT_DESIGN_DESCRIPTION = "Synthesized simulation based on real-world architectural data."
DEFAULT_SOURCE_TITLE = "Architectural Source"
CHAT_FALLBACK = "The lead architect is unavailable right now. Please try again in a moment."
HELP_FALLBACK = "Capture your site to begin."

_STRING = types.Schema(type=types.Type.STRING)
_NUMBER = types.Schema(type=types.Type.NUMBER)

CONCEPT_SCHEMA = types.Schema(
    type=types.Type.OBJECT,
    properties={
        "name": _STRING,
        "description": _STRING,
        "floorPlanJson": types.Schema(
            type=types.Type.OBJECT,
            properties={
                "rooms": types.Schema(
                    type=types.Type.ARRAY,
                    items=types.Schema(
                        type=types.Type.OBJECT,
                        properties={"name": _STRING, "size": _STRING, "description": _STRING},
                    ),
                ),
                "totalArea": _STRING,
            },
        ),
        "costs": types.Schema(
            type=types.Type.OBJECT,
            properties={
                "estimatedTotal": _NUMBER,
                "breakdown": types.Schema(
                    type=types.Type.ARRAY,
                    items=types.Schema(
                        type=types.Type.OBJECT,
                        properties={"item": _STRING, "cost": _NUMBER},
                    ),
                ),
            },
        ),
    },
    required=["name", "description", "floorPlanJson", "costs"],
)


class ServiceError(RuntimeError):
    """The Gemini API call itself failed (network, quota, server error)."""


@dataclass(frozen=True)
class ChatReply:
    text: str
    sources: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ConceptDraft:
    name: str
    description: str
    floor_plan: FloorPlan
    costs: CostBreakdown


# ── Response decoding ──

def extract_text(response):
    if response is None:
        return None
    return response.text


def extract_image(response):
    """Return the first inline image of the first candidate as a data URI."""
    if response is None or not response.candidates:
        return None
    content = response.candidates[0].content
    if content is None or not content.parts:
        return None
    for part in content.parts:
        if part.inline_data and part.inline_data.data:
            mime = part.inline_data.mime_type or "image/png"
            return image_data_uri(part.inline_data.data, mime)
    return None


def image_data_uri(data, mime_type):
    # Live and REST payloads differ: bytes from the SDK, str when already encoded.
    if isinstance(data, str):
        return f"data:{mime_type};base64,{data}"
    return to_data_uri(data, mime_type)


def extract_citations(response):
    if response is None or not response.candidates:
        return []
    metadata = response.candidates[0].grounding_metadata
    if metadata is None or not metadata.grounding_chunks:
        return []
    citations = []
    for chunk in metadata.grounding_chunks:
        if chunk.web is None or not chunk.web.uri:
            continue
        citations.append(Citation(title=chunk.web.title or DEFAULT_SOURCE_TITLE, uri=chunk.web.uri))
    return citations


def _validated(model_cls, value):
    if value is None:
        return model_cls()
    try:
        return model_cls.model_validate(value)
    except ValidationError as e:
        logger.warning("Discarding malformed %s from concept: %s", model_cls.__name__, e)
        return model_cls()


def decode_concept(text):
    """Parse the structured concept reply, substituting defaults field by field."""
    try:
        payload = json.loads(text or "{}")
    except json.JSONDecodeError:
        logger.warning("Concept reply was not valid JSON; using default design")
        payload = {}
    if not isinstance(payload, dict):
        payload = {}

    name = payload.get("name")
    description = payload.get("description")
    return ConceptDraft(
        name=name.strip() if isinstance(name, str) and name.strip() else DEFAULT_DESIGN_NAME,
        description=(
            description.strip()
            if isinstance(description, str) and description.strip()
            else DEFAULT_DESIGN_DESCRIPTION
        ),
        floor_plan=_validated(FloorPlan, payload.get("floorPlanJson")),
        costs=_validated(CostBreakdown, payload.get("costs")),
    )


def build_config(model, system_instruction=None, grounded=False, **kwargs):
    if system_instruction:
        kwargs["system_instruction"] = system_instruction
    if grounded:
        kwargs["tools"] = [types.Tool(google_search=types.GoogleSearch())]
    if model in THINKING_MODELS:
        kwargs["thinking_config"] = types.ThinkingConfig(thinking_level="low")
    return types.GenerateContentConfig(**kwargs)


def image_config(aspect_ratio=None):
    kwargs = {"response_modalities": [Modality.TEXT, Modality.IMAGE]}
    if aspect_ratio:
        kwargs["image_config"] = types.ImageConfig(aspect_ratio=aspect_ratio)
    return types.GenerateContentConfig(**kwargs)


class RequestShaper:
    def __init__(self, client, text_model=None, image_model=None):
        self.client = client
        self.text_model = text_model or config.TEXT_MODEL
        self.image_model = image_model or config.IMAGE_MODEL

    async def _generate(self, model, contents, config=None):
        start = time.time()
        try:
            response = await self.client.aio.models.generate_content(
                model=model, contents=contents, config=config,
            )
        except Exception as e:
            raise ServiceError(str(e)) from e
        logger.debug("%s answered in %.1fs", model, time.time() - start)
        return response

    async def analyze_site(self, image):
        part = image_part(image)
        response = await self._generate(
            self.text_model,
            [types.Content(role="user", parts=[part, types.Part.from_text(text=SITE_ANALYSIS_REQUEST)])],
            build_config(self.text_model, SITE_ANALYST_PROMPT, grounded=True),
        )
        return SiteDiscovery(
            analysis=extract_text(response) or DEFAULT_ANALYSIS,
            references=extract_citations(response),
        )

    async def ask_architect(self, message, history):
        contents = [
            types.Content(
                role="user" if turn.role == "user" else "model",
                parts=[types.Part.from_text(text=turn.content)],
            )
            for turn in history
        ]
        contents.append(types.Content(role="user", parts=[types.Part.from_text(text=message)]))
        response = await self._generate(
            self.text_model,
            contents,
            build_config(self.text_model, ARCHITECT_CHAT_PROMPT, grounded=True),
        )
        return ChatReply(
            text=extract_text(response) or CHAT_FALLBACK,
            sources=[c.uri for c in extract_citations(response)],
        )

    async def edit_image(self, image, instruction):
        """Transform an image with a text instruction; the input comes back if nothing is produced."""
        part = image_part(image)
        prompt = IMAGE_EDIT_REQUEST.format(instruction=instruction)
        try:
            response = await self._generate(
                self.image_model,
                [types.Content(role="user", parts=[part, types.Part.from_text(text=prompt)])],
                image_config(),
            )
        except ServiceError as e:
            logger.warning("Image edit failed, keeping original: %s", e)
            return image
        return extract_image(response) or image

    async def _render(self, part, prompt, aspect_ratio, placeholder):
        try:
            response = await self._generate(
                self.image_model,
                [types.Content(role="user", parts=[part, types.Part.from_text(text=prompt)])],
                image_config(aspect_ratio),
            )
        except ServiceError as e:
            logger.warning("Visualization failed, using placeholder: %s", e)
            return placeholder
        return extract_image(response) or placeholder

    async def generate_design_concept(self, image, preferences, discovery):
        part = image_part(image)
        prompt = CONCEPT_REQUEST.format(
            analysis=discovery.analysis,
            style=preferences.style.value,
            project_type=preferences.type.value,
            floors=preferences.floors,
            budget=preferences.budget_range.value,
            materials=", ".join(preferences.materials),
            references=", ".join(ref.uri for ref in discovery.references),
        )
        try:
            response = await self._generate(
                self.text_model,
                prompt,
                build_config(
                    self.text_model,
                    CONCEPT_SYNTHESIS_PROMPT,
                    response_mime_type="application/json",
                    response_schema=CONCEPT_SCHEMA,
                ),
            )
            draft = decode_concept(extract_text(response))
        except ServiceError as e:
            logger.warning("Concept synthesis failed, using default design: %s", e)
            draft = decode_concept(None)

        materials = ", ".join(preferences.materials)
        exterior, plan = await asyncio.gather(
            self._render(
                part,
                EXTERIOR_REQUEST.format(name=draft.name, style=preferences.style.value, materials=materials),
                "16:9",
                EXTERIOR_PLACEHOLDER,
            ),
            self._render(part, PLAN_REQUEST.format(name=draft.name), "4:3", PLAN_PLACEHOLDER),
        )

        return ArchitecturalDesign(
            name=draft.name,
            description=draft.description,
            site_analysis=discovery.analysis,
            preferences=preferences.model_copy(deep=True),
            floor_plan=draft.floor_plan,
            costs=draft.costs,
            visualizations=Visualizations(exterior=exterior, interior=INTERIOR_PLACEHOLDER, plan=plan),
        )

    async def refine_realism(self, design):
        """Render a fresh exterior from text alone. Returns None when no image comes back."""
        prompt = REFINE_REQUEST.format(
            name=design.name,
            style=design.preferences.style.value,
            materials=", ".join(design.preferences.materials),
        )
        try:
            response = await self._generate(self.image_model, prompt, image_config())
        except ServiceError as e:
            logger.warning("Realism refinement failed: %s", e)
            return None
        return extract_image(response)

    async def generate_obj_model(self, design):
        response = await self._generate(self.text_model, OBJ_EXPORT_REQUEST.format(name=design.name))
        return extract_text(response) or ""

    async def generate_gltf_model(self, design):
        response = await self._generate(self.text_model, GLTF_EXPORT_REQUEST.format(name=design.name))
        return extract_text(response) or "{}"

    async def get_help(self, feature_key, fallback=HELP_FALLBACK):
        try:
            response = await self._generate(self.text_model, HELP_REQUEST.format(feature_key=feature_key))
        except ServiceError as e:
            logger.warning("Help lookup for %r failed: %s", feature_key, e)
            return fallback
        return (extract_text(response) or "").strip() or fallback

