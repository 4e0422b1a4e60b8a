"""Tests for the page view model."""

import asyncio

from capture import CaptureFlow
from models import CostBreakdown, CostItem
from pipeline import PipelineOrchestrator, SessionState, Stage, ViewMode
from presentation import (
    CHART_COLORS,
    TUTORIAL_TRACKS,
    cost_chart,
    export_filename,
    render_state,
    stepper,
    tutorial_track,
)
from request_shaper import RequestShaper
from tests.fakes import FakeClient, studio_handler


def synthesized(site_image, count=1):
    orch = PipelineOrchestrator(RequestShaper(FakeClient(studio_handler)))

    async def scenario():
        await orch.start_discovery(site_image)
        for _ in range(count):
            await orch.start_synthesis()
            orch.return_to(Stage.IDENTITY)

    asyncio.run(scenario())
    return orch.state


class TestCostChart:
    def test_shares_of_breakdown(self):
        costs = CostBreakdown(estimated_total=500, breakdown=[
            CostItem(item="Structure", cost=300),
            CostItem(item="Glazing", cost=100),
        ])
        chart = cost_chart(costs)
        assert chart["estimatedTotal"] == 500
        assert [s["share"] for s in chart["slices"]] == [75.0, 25.0]
        assert [s["color"] for s in chart["slices"]] == CHART_COLORS[:2]

    def test_zero_total_gives_empty_shares(self):
        chart = cost_chart(CostBreakdown(breakdown=[CostItem(item="Survey", cost=0)]))
        assert chart["slices"][0]["share"] == 0.0

    def test_colors_cycle(self):
        items = [CostItem(item=str(i), cost=1) for i in range(len(CHART_COLORS) + 1)]
        slices = cost_chart(CostBreakdown(breakdown=items))["slices"]
        assert slices[-1]["color"] == CHART_COLORS[0]


class TestNavigationHelpers:
    def test_stepper_statuses(self):
        assert [s["status"] for s in stepper(Stage.IDENTITY)] == ["complete", "current", "upcoming"]
        assert stepper(Stage.DISCOVERY)[0]["label"] == "Site Discovery"

    def test_tutorial_follows_view(self):
        assert tutorial_track("detail")["key"] == "Simulation Forge"
        assert tutorial_track(ViewMode.DASHBOARD) == TUTORIAL_TRACKS[0]

    def test_export_filename(self):
        assert export_filename("Terrace  House\tNorth", "obj") == "Terrace_House_North_model.obj"
        assert export_filename("Cabin", "gltf") == "Cabin_model.gltf"


class TestRenderState:
    def test_empty_session(self):
        payload = render_state(SessionState(), capture=CaptureFlow())
        assert payload["viewMode"] == "landing"
        assert payload["design"] is None
        assert payload["projects"] == []
        assert payload["capture"]["state"] == "idle"
        assert payload["voice"] is None
        assert "Luxury" in payload["options"]["styles"]

    def test_design_payload_uses_camel_case(self, site_image):
        payload = render_state(synthesized(site_image))
        design = payload["design"]
        assert design["name"] == "Terrace House"
        assert design["floorPlanJson"]["totalArea"] == "180 m2"
        assert design["costChart"]["slices"][0]["share"] == 66.7
        assert design["exports"]["obj"] == "Terrace_House_model.obj"
        assert payload["discovery"]["references"][0]["uri"] == "https://example.org/code"

    def test_projects_newest_first(self, site_image):
        state = synthesized(site_image, count=2)
        ids = [p["id"] for p in render_state(state)["projects"]]
        assert ids == [state.projects[1].id, state.projects[0].id]
