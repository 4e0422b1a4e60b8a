"""View model for the page: a pure function of session state."""

import re

from models import ArchitecturalStyle, BudgetRange, ProjectType
from pipeline import STEP_LABELS, ViewMode

CHART_COLORS = ["#4f46e5", "#818cf8", "#a5b4fc", "#c7d2fe", "#e0e7ff"]

ACCENTS = {
    "emerald": "#10b981",
    "indigo": "#6366f1",
    "amber": "#f59e0b",
    "rose": "#f43f5e",
}
DEFAULT_ACCENT = "emerald"

TUTORIAL_TRACKS = [
    {"key": "Real-World Capture", "description": "Snap a site photo to start the process.", "mode": "landing"},
    {"key": "Contextual Discovery", "description": "Wait while we find real-world terrain logic.", "mode": "wizard"},
    {"key": "Simulation Forge", "description": "Review the design or consult the lead architect.", "mode": "detail"},
]

FAQS = [
    "How does this app work?",
    "Can I export 3D models?",
    "What styles are supported?",
    "How is the cost estimate built?",
]

EXPORT_FORMATS = {
    "obj": ("obj", "text/plain"),
    "gltf": ("gltf", "application/json"),
}


def export_filename(design_name, fmt):
    extension, _mime = EXPORT_FORMATS[fmt]
    stem = re.sub(r"\s+", "_", design_name)
    return f"{stem}_model.{extension}"


def tutorial_track(view_mode):
    """Dashboard falls back to the capture track."""
    for track in TUTORIAL_TRACKS:
        if track["mode"] == ViewMode(view_mode).value:
            return track
    return TUTORIAL_TRACKS[0]


def stepper(stage):
    steps = []
    for index, label in enumerate(STEP_LABELS):
        if index < stage:
            status = "complete"
        elif index == stage:
            status = "current"
        else:
            status = "upcoming"
        steps.append({"index": index, "label": label, "status": status})
    return steps


def cost_chart(costs):
    """Share of each breakdown line in the breakdown sum, for the ring chart."""
    total = sum(max(item.cost, 0) for item in costs.breakdown)
    slices = []
    for index, item in enumerate(costs.breakdown):
        share = (max(item.cost, 0) / total * 100) if total else 0.0
        slices.append({
            "item": item.item,
            "cost": item.cost,
            "share": round(share, 1),
            "color": CHART_COLORS[index % len(CHART_COLORS)],
        })
    return {"estimatedTotal": costs.estimated_total, "slices": slices}


def design_view(design):
    payload = design.to_json()
    payload["costChart"] = cost_chart(design.costs)
    payload["exports"] = {fmt: export_filename(design.name, fmt) for fmt in EXPORT_FORMATS}
    return payload


def project_summary(design):
    return {
        "id": design.id,
        "name": design.name,
        "style": design.preferences.style.value,
        "type": design.preferences.type.value,
        "thumbnail": design.visualizations.exterior,
        "estimatedTotal": design.costs.estimated_total,
        "createdAt": design.created_at,
    }


def render_state(state, capture=None, voice=None):
    return {
        "viewMode": state.view_mode.value,
        "stage": int(state.stage),
        "steps": stepper(state.stage),
        "generating": state.generating,
        "exporting": state.exporting,
        "hasImage": state.image is not None,
        "discovery": state.discovery.to_json() if state.discovery else None,
        "preferences": state.preferences.to_json(),
        "design": design_view(state.design) if state.design else None,
        "projects": [project_summary(d) for d in reversed(state.projects)],
        "chat": [m.to_json() for m in state.chat_history],
        "faqs": FAQS,
        "options": {
            "types": [t.value for t in ProjectType],
            "styles": [s.value for s in ArchitecturalStyle],
            "budgets": [b.value for b in BudgetRange],
            "accents": ACCENTS,
            "defaultAccent": DEFAULT_ACCENT,
        },
        "tutorial": tutorial_track(state.view_mode),
        "error": state.last_error,
        "capture": capture.to_json() if capture else None,
        "voice": voice.to_json() if voice else None,
    }
