"""Capture -> discovery -> identity -> synthesis -> detail.

``SessionState`` is everything the page renders; ``PipelineOrchestrator``
is the only thing that mutates it. AI calls suspend the flow, so a result
may come back after the user has moved on. Results are checked against
the capture they were requested for. A stale discovery is dropped; a stale
design only lands in the project list.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import List, Optional

from image_data import decode_image
from models import ArchitecturalDesign, ChatMessage, DesignPreferences, SiteDiscovery
from request_shaper import CHAT_FALLBACK, ServiceError

logger = logging.getLogger(__name__)


class Stage(IntEnum):
    DISCOVERY = 0
    IDENTITY = 1
    SYNTHESIS = 2


STEP_LABELS = ["Site Discovery", "Design Identity", "Blueprint Synthesis"]


class ViewMode(str, Enum):
    LANDING = "landing"
    DASHBOARD = "dashboard"
    WIZARD = "wizard"
    DETAIL = "detail"


class PipelineError(RuntimeError):
    pass


@dataclass
class SessionState:
    view_mode: ViewMode = ViewMode.LANDING
    stage: Stage = Stage.DISCOVERY
    image: Optional[str] = None
    discovery: Optional[SiteDiscovery] = None
    preferences: DesignPreferences = field(default_factory=DesignPreferences)
    generating: bool = False
    exporting: bool = False
    design: Optional[ArchitecturalDesign] = None
    projects: List[ArchitecturalDesign] = field(default_factory=list)
    chat_history: List[ChatMessage] = field(default_factory=list)
    last_error: Optional[str] = None

    def find_project(self, design_id):
        for design in self.projects:
            if design.id == design_id:
                return design
        return None


class PipelineOrchestrator:
    def __init__(self, shaper, state=None):
        self.shaper = shaper
        self.state = state or SessionState()

    def set_view(self, view_mode):
        view_mode = ViewMode(view_mode)
        if view_mode is ViewMode.DETAIL and self.state.design is None:
            raise PipelineError("No design to show")
        self.state.view_mode = view_mode

    async def start_discovery(self, image):
        decode_image(image)
        state = self.state
        state.image = image
        state.discovery = None
        state.design = None
        state.view_mode = ViewMode.WIZARD
        state.stage = Stage.DISCOVERY
        state.last_error = None
        state.generating = True
        try:
            discovery = await self.shaper.analyze_site(image)
        except ServiceError as e:
            if state.image == image:
                logger.warning("Site discovery failed: %s", e)
                state.last_error = f"Site discovery failed: {e}"
            return None
        finally:
            if state.image == image:
                state.generating = False

        if state.image != image:
            logger.info("Dropping discovery for a replaced capture")
            return None
        state.discovery = discovery
        state.stage = Stage.IDENTITY
        return discovery

    def update_preferences(self, **changes):
        merged = self.state.preferences.to_json()
        merged.update(changes)
        self.state.preferences = DesignPreferences.model_validate(merged)
        return self.state.preferences

    def return_to(self, stage):
        """Step back in the wizard. Discovery data is kept."""
        stage = Stage(stage)
        if stage > self.state.stage:
            raise PipelineError("Stages only advance through discovery and synthesis")
        self.state.stage = stage
        self.state.view_mode = ViewMode.WIZARD

    async def start_synthesis(self):
        state = self.state
        if state.image is None or state.discovery is None:
            raise PipelineError("Synthesis needs a completed site discovery")
        if state.generating:
            raise PipelineError("A request is already in progress")
        image, discovery = state.image, state.discovery
        state.stage = Stage.SYNTHESIS
        state.generating = True
        state.last_error = None
        try:
            design = await self.shaper.generate_design_concept(image, state.preferences, discovery)
        finally:
            if state.image == image and state.discovery is discovery:
                state.generating = False

        state.projects.append(design)
        if state.image != image or state.discovery is not discovery:
            # a new site was captured meanwhile; stay in its wizard
            logger.info("Synthesis for a replaced capture filed under projects only")
            return design
        state.design = design
        state.view_mode = ViewMode.DETAIL
        return design

    def open_project(self, design_id):
        design = self.state.find_project(design_id)
        if design is None:
            raise KeyError(design_id)
        self.state.design = design
        self.state.view_mode = ViewMode.DETAIL
        return design

    def _current_design(self):
        if self.state.design is None:
            raise PipelineError("No design selected")
        return self.state.design

    async def refine_realism(self):
        design = self._current_design()
        if self.state.generating:
            raise PipelineError("A request is already in progress")
        self.state.generating = True
        try:
            exterior = await self.shaper.refine_realism(design)
        finally:
            self.state.generating = False
        if exterior:
            design.replace_exterior(exterior)
        return design

    async def edit_design_image(self, instruction):
        design = self._current_design()
        if not instruction or not instruction.strip():
            raise PipelineError("An edit instruction is required")
        if self.state.generating:
            raise PipelineError("A request is already in progress")
        # Placeholder exteriors are remote URLs; edit the site photo instead.
        source = design.visualizations.exterior
        if not source.startswith("data:"):
            source = self.state.image
        if source is None:
            raise PipelineError("No image to edit")
        self.state.generating = True
        try:
            edited = await self.shaper.edit_image(source, instruction.strip())
        finally:
            self.state.generating = False
        if edited != source:
            design.replace_exterior(edited)
        return design

    async def export_design(self, fmt, design_id=None):
        design = self.state.find_project(design_id) if design_id else self._current_design()
        if design is None:
            raise KeyError(design_id)
        self.state.exporting = True
        try:
            if fmt == "obj":
                content = await self.shaper.generate_obj_model(design)
            elif fmt == "gltf":
                content = await self.shaper.generate_gltf_model(design)
            else:
                raise PipelineError(f"Unknown export format: {fmt}")
        finally:
            self.state.exporting = False
        return design, content

    async def send_chat(self, text):
        text = (text or "").strip()
        if not text:
            return None
        history = list(self.state.chat_history)
        self.state.chat_history.append(ChatMessage(role="user", content=text))
        try:
            reply = await self.shaper.ask_architect(text, history)
            message = ChatMessage(role="assistant", content=reply.text, sources=reply.sources)
        except ServiceError as e:
            logger.warning("Chat turn failed: %s", e)
            message = ChatMessage(role="assistant", content=CHAT_FALLBACK, sources=[])
        self.state.chat_history.append(message)
        return message
