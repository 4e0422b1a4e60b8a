import logging
import threading
import time
import uuid
from collections import OrderedDict

from flask import Flask, Response, jsonify, request, session
from pydantic import ValidationError

import config
from background import BackgroundLoop
from capture import CaptureError, CaptureFlow
from image_data import InvalidImageError, decode_image
from pipeline import PipelineError, PipelineOrchestrator
from presentation import EXPORT_FORMATS, TUTORIAL_TRACKS, export_filename, render_state
from request_shaper import HELP_FALLBACK, RequestShaper, ServiceError
from voice import VoiceSession

logger = logging.getLogger(__name__)

app = Flask(__name__)
app.secret_key = config.SECRET_KEY

ai_loop = BackgroundLoop()

_workspaces = OrderedDict()
_workspaces_lock = threading.Lock()
_voice_lock = threading.Lock()


class Workspace:
    """Everything one browser session holds in memory."""

    def __init__(self, shaper):
        self.orchestrator = PipelineOrchestrator(shaper)
        self.capture = CaptureFlow()
        self.touched = time.monotonic()


def get_client():
    client = app.config.get("GENAI_CLIENT")
    if client is None:
        client = app.config["GENAI_CLIENT"] = config.create_client()
    return client


def get_shaper():
    shaper = app.config.get("SHAPER")
    if shaper is None:
        shaper = app.config["SHAPER"] = RequestShaper(get_client())
    return shaper


def get_voice():
    with _voice_lock:
        voice = app.config.get("VOICE_SESSION")
        if voice is None:
            voice = app.config["VOICE_SESSION"] = VoiceSession(get_client())
        return voice


def workspace():
    sid = session.get("sid")
    if sid is None:
        sid = session["sid"] = uuid.uuid4().hex
    now = time.monotonic()
    with _workspaces_lock:
        ws = _workspaces.pop(sid, None)
        _prune_workspaces(now)
        if ws is None:
            ws = Workspace(get_shaper())
        ws.touched = now
        _workspaces[sid] = ws
        return ws


def _prune_workspaces(now):
    """Drop idle workspaces, then the least recently used past the cap. Caller holds the lock."""
    # ordered by last use, so idle ones sit at the front
    while _workspaces:
        sid, oldest = next(iter(_workspaces.items()))
        if now - oldest.touched <= config.WORKSPACE_IDLE_SECONDS and len(_workspaces) < config.MAX_WORKSPACES:
            break
        del _workspaces[sid]
        logger.info("Released idle workspace %s", sid[:8])


def state_response(ws, status=200):
    return jsonify(render_state(ws.orchestrator.state, ws.capture, app.config.get("VOICE_SESSION"))), status


def json_object():
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


@app.errorhandler(InvalidImageError)
@app.errorhandler(ValidationError)
def bad_input(e):
    return jsonify({"error": str(e)}), 400


@app.errorhandler(PipelineError)
@app.errorhandler(CaptureError)
def illegal_transition(e):
    return jsonify({"error": str(e)}), 409


@app.errorhandler(ServiceError)
def service_failed(e):
    logger.warning("Gemini request failed: %s", e)
    return jsonify({"error": str(e)}), 502


@app.route("/")
def index():
    return HTML_PAGE


@app.route("/api/state")
def get_state():
    return state_response(workspace())


@app.route("/api/view", methods=["POST"])
def set_view():
    ws = workspace()
    mode = json_object().get("mode", "")
    try:
        ws.orchestrator.set_view(mode)
    except ValueError:
        return jsonify({"error": f"Unknown view: {mode}"}), 400
    return state_response(ws)


# ── Capture ──

@app.route("/api/capture/<action>", methods=["POST"])
def capture_action(action):
    ws = workspace()
    flow = ws.capture
    data = json_object()

    if action == "start":
        flow.start()
    elif action == "tick":
        flow.tick()
    elif action == "confirm":
        flow.confirm()
    elif action == "realign":
        flow.realign()
    elif action == "facing":
        flow.toggle_facing()
    elif action == "error":
        flow.fail(data.get("message"))
    elif action == "close":
        flow.close()
    elif action == "frame":
        image = flow.capture(data.get("image_data", ""))
        ai_loop.run(ws.orchestrator.start_discovery(image))
    else:
        return jsonify({"error": f"Unknown capture action: {action}"}), 404
    return state_response(ws)


@app.route("/api/upload", methods=["POST"])
def upload():
    ws = workspace()
    upload_file = request.files.get("file")
    if upload_file is not None:
        raw = upload_file.read()
    else:
        image_data = json_object().get("image_data", "")
        if not image_data:
            return jsonify({"error": "No image provided"}), 400
        raw = decode_image(image_data)[1]
    image = ws.capture.upload(raw)
    ai_loop.run(ws.orchestrator.start_discovery(image))
    return state_response(ws)


@app.route("/api/discovery/retry", methods=["POST"])
def retry_discovery():
    ws = workspace()
    image = ws.orchestrator.state.image
    if image is None:
        return jsonify({"error": "Capture a site first"}), 409
    ai_loop.run(ws.orchestrator.start_discovery(image))
    return state_response(ws)


# ── Wizard ──

@app.route("/api/preferences", methods=["POST"])
def update_preferences():
    ws = workspace()
    changes = request.get_json(silent=True)
    if not isinstance(changes, dict):
        return jsonify({"error": "Preferences must be a JSON object"}), 400
    ws.orchestrator.update_preferences(**changes)
    return state_response(ws)


@app.route("/api/stage", methods=["POST"])
def return_to_stage():
    ws = workspace()
    stage = json_object().get("stage", 0)
    try:
        ws.orchestrator.return_to(int(stage))
    except ValueError:
        return jsonify({"error": f"Unknown stage: {stage}"}), 400
    return state_response(ws)


@app.route("/api/synthesis", methods=["POST"])
def synthesis():
    ws = workspace()
    ai_loop.run(ws.orchestrator.start_synthesis())
    return state_response(ws)


# ── Design detail ──

@app.route("/api/design/refine", methods=["POST"])
def refine_design():
    ws = workspace()
    ai_loop.run(ws.orchestrator.refine_realism())
    return state_response(ws)


@app.route("/api/design/edit", methods=["POST"])
def edit_design():
    ws = workspace()
    ai_loop.run(ws.orchestrator.edit_design_image(json_object().get("instruction", "")))
    return state_response(ws)


@app.route("/api/design/<design_id>/export/<fmt>")
def export_design(design_id, fmt):
    ws = workspace()
    if fmt not in EXPORT_FORMATS:
        return jsonify({"error": f"Unknown export format: {fmt}"}), 404
    try:
        design, content = ai_loop.run(ws.orchestrator.export_design(fmt, design_id))
    except KeyError:
        return jsonify({"error": "Design not found"}), 404
    _extension, mime = EXPORT_FORMATS[fmt]
    filename = export_filename(design.name, fmt)
    return Response(
        content,
        mimetype=mime,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.route("/api/projects")
def list_projects():
    ws = workspace()
    return jsonify(render_state(ws.orchestrator.state)["projects"])


@app.route("/api/projects/<design_id>/open", methods=["POST"])
def open_project(design_id):
    ws = workspace()
    try:
        ws.orchestrator.open_project(design_id)
    except KeyError:
        return jsonify({"error": "Design not found"}), 404
    return state_response(ws)


# ── Consultation ──

@app.route("/api/chat", methods=["POST"])
def chat():
    ws = workspace()
    message = json_object().get("message", "").strip()
    if not message:
        return jsonify({"error": "Message cannot be empty"}), 400
    ai_loop.run(ws.orchestrator.send_chat(message))
    return state_response(ws)


@app.route("/api/help/<path:feature_key>")
def feature_help(feature_key):
    fallback = next(
        (t["description"] for t in TUTORIAL_TRACKS if t["key"] == feature_key),
        HELP_FALLBACK,
    )
    text = ai_loop.run(get_shaper().get_help(feature_key, fallback))
    return jsonify({"key": feature_key, "text": text})


@app.route("/api/voice")
def voice_status():
    voice = app.config.get("VOICE_SESSION")
    return jsonify(voice.to_json() if voice else {"state": "closed", "error": None, "pending": 0})


@app.route("/api/voice/toggle", methods=["POST"])
def voice_toggle():
    voice = get_voice()
    ai_loop.run(voice.toggle(), timeout=30)
    return jsonify(voice.to_json())


HTML_PAGE = r"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>Imaginebuild</title>
<style>
  *, *::before, *::after { box-sizing: border-box; margin: 0; padding: 0; }

  :root {
    --accent: #10b981;
    --bg: #0f0f0f;
    --panel: #161616;
    --border: #1e1e1e;
    --text: #e0e0e0;
    --muted: #888;
  }
  body.light {
    --bg: #f6f7f9;
    --panel: #ffffff;
    --border: #e2e4e8;
    --text: #1a1a1a;
    --muted: #666;
  }

  body {
    font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
    background: var(--bg);
    color: var(--text);
    min-height: 100vh;
  }

  nav {
    display: flex;
    align-items: center;
    justify-content: space-between;
    padding: 14px 24px;
    border-bottom: 1px solid var(--border);
    position: sticky;
    top: 0;
    background: var(--bg);
    z-index: 10;
  }
  .logo { font-weight: 800; letter-spacing: -0.5px; cursor: pointer; }
  .logo span { color: var(--accent); font-size: 0.65rem; text-transform: uppercase; letter-spacing: 2px; margin-left: 6px; }
  .nav-actions { display: flex; gap: 8px; align-items: center; }

  button {
    background: var(--panel);
    color: var(--text);
    border: 1px solid var(--border);
    border-radius: 8px;
    padding: 8px 14px;
    font-size: 0.82rem;
    cursor: pointer;
  }
  button.primary { background: var(--accent); border-color: var(--accent); color: #fff; font-weight: 600; }
  button:disabled { opacity: 0.45; cursor: not-allowed; }
  .swatch { width: 22px; height: 22px; border-radius: 50%; padding: 0; }

  main { max-width: 1040px; margin: 0 auto; padding: 24px; display: flex; flex-direction: column; gap: 18px; }
  .card { background: var(--panel); border: 1px solid var(--border); border-radius: 12px; padding: 18px; }
  .hidden { display: none !important; }
  .muted { color: var(--muted); font-size: 0.85rem; }
  .error { color: #f87171; }

  .guide { font-style: italic; }

  .stepper { display: flex; gap: 10px; }
  .step { flex: 1; padding: 8px; border-radius: 8px; border: 1px solid var(--border); font-size: 0.75rem; text-align: center; }
  .step.current { border-color: var(--accent); color: var(--accent); }
  .step.complete { background: var(--accent); color: #fff; }

  label { display: block; font-size: 0.75rem; color: var(--muted); margin: 10px 0 4px; }
  select, input[type=text], input[type=number] {
    width: 100%;
    background: var(--bg);
    color: var(--text);
    border: 1px solid var(--border);
    border-radius: 8px;
    padding: 8px 12px;
  }

  .visuals { display: grid; grid-template-columns: repeat(3, 1fr); gap: 10px; }
  .visuals img { width: 100%; border-radius: 8px; aspect-ratio: 4/3; object-fit: cover; }
  .ring { width: 160px; height: 160px; border-radius: 50%; margin: 0 auto; }
  .ring-wrap { display: grid; grid-template-columns: 180px 1fr; gap: 16px; align-items: center; }
  .line-item { display: flex; justify-content: space-between; border-bottom: 1px solid var(--border); padding: 4px 0; font-size: 0.82rem; }
  .projects { display: grid; grid-template-columns: repeat(auto-fill, minmax(220px, 1fr)); gap: 12px; }
  .project { cursor: pointer; }
  .project img { width: 100%; border-radius: 8px; aspect-ratio: 16/9; object-fit: cover; }

  #camera { position: fixed; inset: 0; background: #000; z-index: 50; display: flex; flex-direction: column; align-items: center; justify-content: center; gap: 16px; }
  #camera video { max-width: 100%; max-height: 70vh; }
  #camera video.aligning { filter: grayscale(1) brightness(0.5); }
  .progress { color: #fff; letter-spacing: 4px; }

  #chat { position: fixed; right: 20px; bottom: 20px; width: 340px; max-height: 70vh; display: flex; flex-direction: column; gap: 8px; z-index: 40; }
  #chatLog { overflow-y: auto; display: flex; flex-direction: column; gap: 6px; max-height: 45vh; }
  .msg { padding: 8px 10px; border-radius: 8px; font-size: 0.82rem; white-space: pre-wrap; }
  .msg.user { background: var(--accent); color: #fff; align-self: flex-end; }
  .msg.assistant { background: var(--bg); }
  .msg a { display: block; font-size: 0.7rem; color: var(--accent); }
  .faqs { display: flex; flex-wrap: wrap; gap: 4px; }
  .faqs button { font-size: 0.7rem; padding: 4px 8px; }
</style>
</head>
<body>

<nav>
  <div class="logo" onclick="setView('landing')">Imaginebuild<span>Architectural OS</span></div>
  <div class="nav-actions">
    <button onclick="toggleGuide()">AI Guide</button>
    <button id="voiceBtn" onclick="toggleVoice()">Voice Link</button>
    <button onclick="setView('dashboard')">Studio</button>
    <span id="accents"></span>
    <button id="themeBtn" onclick="toggleTheme()">&#9788;</button>
  </div>
</nav>

<main>
  <div id="guide" class="card guide hidden"></div>
  <div id="errorBox" class="card error hidden"></div>

  <!-- ═══ Landing ═══ -->
  <section id="landing" class="card">
    <h2>Capture your site</h2>
    <p class="muted">Photograph a plot or building, or upload a photo, and we will ground a concept in what is really there.</p>
    <div style="display:flex;gap:10px;margin-top:14px">
      <button class="primary" onclick="openCamera()">Open Camera</button>
      <button onclick="document.getElementById('fileInput').click()">Upload Photo</button>
      <input id="fileInput" type="file" accept="image/*" class="hidden" onchange="uploadFile(this.files[0])">
    </div>
  </section>

  <!-- ═══ Wizard ═══ -->
  <section id="wizard" class="hidden">
    <div id="stepper" class="stepper"></div>
    <div id="stageDiscovery" class="card" style="margin-top:14px">
      <div id="discoveryStatus" class="muted"></div>
      <button id="retryBtn" class="hidden" onclick="retryDiscovery()">Retry analysis</button>
    </div>
    <div id="stageIdentity" class="card hidden" style="margin-top:14px">
      <h3>Site Discovery</h3>
      <p id="analysis" style="white-space:pre-wrap;margin:8px 0"></p>
      <div id="references"></div>
      <h3 style="margin-top:16px">Design Identity</h3>
      <label>Project type</label><select id="prefType"></select>
      <label>Style</label><select id="prefStyle"></select>
      <label>Floors</label><input id="prefFloors" type="number" min="1">
      <label>Budget</label><select id="prefBudget"></select>
      <label>Materials (comma separated)</label><input id="prefMaterials" type="text">
      <div style="margin-top:14px;display:flex;gap:10px">
        <button class="primary" id="synthBtn" onclick="synthesize()">Synthesize Blueprint</button>
      </div>
    </div>
    <div id="stageSynthesis" class="card hidden muted" style="margin-top:14px">Synthesizing concept...</div>
  </section>

  <!-- ═══ Detail ═══ -->
  <section id="detail" class="hidden">
    <div class="card">
      <h2 id="designName"></h2>
      <p id="designDescription" class="muted" style="margin-top:6px"></p>
      <div style="display:flex;gap:8px;margin-top:12px;flex-wrap:wrap">
        <button onclick="refine()">Refine realism</button>
        <input id="editInstruction" type="text" placeholder="e.g. glass pavilion with a green roof" style="flex:1;min-width:200px">
        <button onclick="editImage()">Apply edit</button>
        <a id="exportObj"><button>Export OBJ</button></a>
        <a id="exportGltf"><button>Export GLTF</button></a>
      </div>
    </div>
    <div class="card visuals" style="margin-top:14px">
      <img id="visExterior" alt="Exterior">
      <img id="visInterior" alt="Interior">
      <img id="visPlan" alt="Plan">
    </div>
    <div class="card" style="margin-top:14px">
      <h3>Floor plan <span id="totalArea" class="muted"></span></h3>
      <div id="rooms"></div>
    </div>
    <div class="card ring-wrap" style="margin-top:14px">
      <div><div id="ring" class="ring"></div></div>
      <div>
        <h3 id="costTotal"></h3>
        <div id="costItems"></div>
      </div>
    </div>
  </section>

  <!-- ═══ Dashboard ═══ -->
  <section id="dashboard" class="hidden">
    <h2 style="margin-bottom:12px">Studio</h2>
    <div id="projects" class="projects"></div>
  </section>
</main>

<div id="camera" class="hidden">
  <video id="video" autoplay playsinline muted class="aligning"></video>
  <canvas id="canvas" class="hidden"></canvas>
  <div id="cameraError" class="hidden" style="color:#fff;text-align:center">
    <h3 id="cameraErrorText"></h3>
    <div style="display:flex;gap:10px;margin-top:14px;justify-content:center">
      <button onclick="closeCamera();document.getElementById('fileInput').click()">Upload File</button>
      <button onclick="closeCamera()">Cancel</button>
    </div>
  </div>
  <div id="cameraControls" style="display:flex;gap:10px;align-items:center">
    <span id="progress" class="progress">0%</span>
    <button id="setPointBtn" class="primary" onclick="setPoint()" disabled>Set Point</button>
    <button id="flipBtn" class="hidden" onclick="flipCamera()">Flip</button>
    <button id="shutterBtn" class="primary hidden" onclick="captureFrame()">Capture</button>
    <button id="realignBtn" class="hidden" onclick="realign()">Realign</button>
    <button onclick="closeCamera()">Close</button>
  </div>
</div>

<div id="chat">
  <div id="chatPanel" class="card hidden">
    <div id="chatLog"></div>
    <div id="faqs" class="faqs"></div>
    <div style="display:flex;gap:6px;margin-top:8px">
      <input id="chatInput" type="text" placeholder="Ask the lead architect...">
      <button class="primary" onclick="sendChat()">Send</button>
    </div>
  </div>
  <button style="align-self:flex-end" onclick="toggleChat()">Consult</button>
</div>

<script>
  let state = null;
  let stream = null;
  let tickTimer = null;
  let guideOpen = false;

  // ── Theme (kept on this device only) ──
  function applyTheme() {
    const dark = (localStorage.getItem('theme') || 'dark') === 'dark';
    document.body.classList.toggle('light', !dark);
    document.getElementById('themeBtn').innerHTML = dark ? '&#9788;' : '&#9790;';
    const accents = (state && state.options.accents) || {};
    const accent = localStorage.getItem('accent') || (state && state.options.defaultAccent) || 'emerald';
    if (accents[accent]) document.documentElement.style.setProperty('--accent', accents[accent]);
  }

  function toggleTheme() {
    const dark = (localStorage.getItem('theme') || 'dark') === 'dark';
    localStorage.setItem('theme', dark ? 'light' : 'dark');
    applyTheme();
  }

  function renderAccents() {
    const el = document.getElementById('accents');
    if (el.childElementCount) return;
    Object.entries(state.options.accents).forEach(([name, color]) => {
      const b = document.createElement('button');
      b.className = 'swatch';
      b.style.background = color;
      b.title = name;
      b.onclick = () => { localStorage.setItem('accent', name); applyTheme(); };
      el.appendChild(b);
    });
  }

  // ── API ──
  async function api(path, body, method) {
    const res = await fetch(path, {
      method: method || (body === undefined ? 'GET' : 'POST'),
      headers: body instanceof FormData ? {} : { 'Content-Type': 'application/json' },
      body: body instanceof FormData ? body : (body === undefined ? undefined : JSON.stringify(body)),
    });
    const data = await res.json();
    if (!res.ok || data.error) {
      showError(data.error || 'HTTP ' + res.status);
      if (res.status >= 500 || !data.viewMode) return null;
    }
    if (data.viewMode) { state = data; render(); }
    return data;
  }

  function showError(msg) {
    const box = document.getElementById('errorBox');
    box.textContent = msg;
    box.classList.remove('hidden');
    setTimeout(() => box.classList.add('hidden'), 5000);
  }

  function setView(mode) { api('/api/view', { mode }); }

  function setBusy(msg) {
    const el = document.getElementById('discoveryStatus');
    el.textContent = msg;
  }

  // ── Render ──
  function show(id, visible) { document.getElementById(id).classList.toggle('hidden', !visible); }

  function fillSelect(id, values, current) {
    const el = document.getElementById(id);
    el.innerHTML = '';
    values.forEach(v => {
      const o = document.createElement('option');
      o.value = v; o.textContent = v; o.selected = v === current;
      el.appendChild(o);
    });
  }

  function render() {
    renderAccents();
    applyTheme();
    ['landing', 'wizard', 'detail', 'dashboard'].forEach(v => show(v, state.viewMode === v));

    if (guideOpen) loadGuide();

    // stepper
    const stepper = document.getElementById('stepper');
    stepper.innerHTML = '';
    state.steps.forEach(s => {
      const d = document.createElement('div');
      d.className = 'step ' + s.status;
      d.textContent = (s.index + 1) + '. ' + s.label;
      if (s.status === 'complete') d.onclick = () => api('/api/stage', { stage: s.index });
      stepper.appendChild(d);
    });

    show('stageDiscovery', state.stage === 0);
    show('stageIdentity', state.stage === 1);
    show('stageSynthesis', state.stage === 2 && state.viewMode === 'wizard');
    setBusy(state.generating ? 'Analyzing site...' : (state.error || ''));
    show('retryBtn', state.stage === 0 && !state.generating && !!state.error);

    if (state.discovery) {
      document.getElementById('analysis').textContent = state.discovery.analysis;
      const refs = document.getElementById('references');
      refs.innerHTML = '';
      state.discovery.references.forEach(r => {
        const a = document.createElement('a');
        a.href = r.uri; a.target = '_blank'; a.textContent = r.title;
        a.style.display = 'block';
        refs.appendChild(a);
      });
    }
    const p = state.preferences;
    fillSelect('prefType', state.options.types, p.type);
    fillSelect('prefStyle', state.options.styles, p.style);
    fillSelect('prefBudget', state.options.budgets, p.budgetRange);
    document.getElementById('prefFloors').value = p.floors;
    document.getElementById('prefMaterials').value = p.materials.join(', ');
    document.getElementById('synthBtn').disabled = state.generating;

    if (state.design) renderDesign(state.design);
    renderProjects();
    renderChat();
    renderCamera();
    renderVoice(state.voice, true);
  }

  function renderDesign(d) {
    document.getElementById('designName').textContent = d.name;
    document.getElementById('designDescription').textContent = d.description;
    document.getElementById('visExterior').src = d.visualizations.exterior;
    document.getElementById('visInterior').src = d.visualizations.interior;
    document.getElementById('visPlan').src = d.visualizations.plan;
    document.getElementById('exportObj').href = '/api/design/' + d.id + '/export/obj';
    document.getElementById('exportGltf').href = '/api/design/' + d.id + '/export/gltf';
    document.getElementById('totalArea').textContent = d.floorPlanJson.totalArea;

    const rooms = document.getElementById('rooms');
    rooms.innerHTML = '';
    d.floorPlanJson.rooms.forEach(r => {
      const row = document.createElement('div');
      row.className = 'line-item';
      row.textContent = r.name + ' (' + r.size + ') ' + r.description;
      rooms.appendChild(row);
    });

    const chart = d.costChart;
    document.getElementById('costTotal').textContent = '$' + Number(chart.estimatedTotal).toLocaleString();
    let angle = 0;
    const stops = chart.slices.map(s => {
      const from = angle; angle += s.share * 3.6;
      return s.color + ' ' + from + 'deg ' + angle + 'deg';
    });
    document.getElementById('ring').style.background =
      stops.length ? 'conic-gradient(' + stops.join(',') + ')' : 'var(--border)';
    const items = document.getElementById('costItems');
    items.innerHTML = '';
    chart.slices.forEach(s => {
      const row = document.createElement('div');
      row.className = 'line-item';
      row.innerHTML = '<span></span><span></span>';
      row.children[0].textContent = s.item + ' (' + s.share + '%)';
      row.children[1].textContent = '$' + Number(s.cost).toLocaleString();
      items.appendChild(row);
    });
  }

  function renderProjects() {
    const el = document.getElementById('projects');
    el.innerHTML = '';
    if (!state.projects.length) {
      el.innerHTML = '<p class="muted">No designs yet. Capture a site to begin.</p>';
      return;
    }
    state.projects.forEach(pr => {
      const c = document.createElement('div');
      c.className = 'card project';
      c.innerHTML = '<img><h4></h4><p class="muted"></p>';
      c.querySelector('img').src = pr.thumbnail;
      c.querySelector('h4').textContent = pr.name;
      c.querySelector('p').textContent = pr.style + ' ' + pr.type + ' · $' + Number(pr.estimatedTotal).toLocaleString();
      c.onclick = () => api('/api/projects/' + pr.id + '/open', {});
      el.appendChild(c);
    });
  }

  // ── Guide ──
  async function loadGuide() {
    const el = document.getElementById('guide');
    const track = state.tutorial;
    if (el.dataset.key === track.key) return;
    el.dataset.key = track.key;
    el.textContent = 'Consulting...';
    const res = await fetch('/api/help/' + encodeURIComponent(track.key));
    const data = await res.json();
    el.textContent = data.text || track.description;
  }

  function toggleGuide() {
    guideOpen = !guideOpen;
    show('guide', guideOpen);
    document.getElementById('guide').dataset.key = '';
    if (guideOpen && state) loadGuide();
  }

  // ── Capture ──
  async function openCamera() {
    await api('/api/capture/start', {});
    show('camera', true);
    await startStream();
    clearInterval(tickTimer);
    tickTimer = setInterval(() => {
      if (state.capture.state === 'aligning') api('/api/capture/tick', {});
    }, state.capture.tickMs);
  }

  async function startStream() {
    stopStream();
    if (!navigator.mediaDevices || !navigator.mediaDevices.getUserMedia) {
      await api('/api/capture/error', { message: 'Camera API not supported.' });
      return;
    }
    try {
      stream = await navigator.mediaDevices.getUserMedia({
        video: { facingMode: state.capture.facing, width: { ideal: 1920 }, height: { ideal: 1080 } },
      }).catch(() => navigator.mediaDevices.getUserMedia({ video: true }));
      document.getElementById('video').srcObject = stream;
    } catch (e) {
      await api('/api/capture/error', {});
    }
  }

  function stopStream() {
    if (stream) stream.getTracks().forEach(t => t.stop());
    stream = null;
  }

  function renderCamera() {
    const c = state.capture;
    if (!c) return;
    const failed = c.state === 'error';
    show('cameraError', failed);
    show('cameraControls', !failed);
    document.getElementById('cameraErrorText').textContent = c.error || '';
    document.getElementById('progress').textContent = c.progress + '%';
    document.getElementById('video').classList.toggle('aligning', c.state === 'aligning');
    const aligning = c.state === 'aligning';
    show('setPointBtn', aligning);
    document.getElementById('setPointBtn').disabled = c.progress < 100;
    show('progress', aligning);
    show('flipBtn', c.state === 'ready');
    show('shutterBtn', c.state === 'ready');
    show('realignBtn', c.state === 'ready');
  }

  function setPoint() { api('/api/capture/confirm', {}); }
  function realign() { api('/api/capture/realign', {}); }

  async function flipCamera() {
    await api('/api/capture/facing', {});
    await startStream();
  }

  async function captureFrame() {
    const video = document.getElementById('video');
    const canvas = document.getElementById('canvas');
    canvas.width = video.videoWidth;
    canvas.height = video.videoHeight;
    canvas.getContext('2d').drawImage(video, 0, 0);
    const imageData = canvas.toDataURL('image/jpeg', 0.85);
    clearInterval(tickTimer);
    stopStream();
    show('camera', false);
    setBusy('Analyzing site...');
    await api('/api/capture/frame', { image_data: imageData });
  }

  function closeCamera() {
    clearInterval(tickTimer);
    stopStream();
    show('camera', false);
    api('/api/capture/close', {});
  }

  async function uploadFile(file) {
    if (!file) return;
    const form = new FormData();
    form.append('file', file);
    setBusy('Analyzing site...');
    await api('/api/upload', form);
    document.getElementById('fileInput').value = '';
  }

  function retryDiscovery() { setBusy('Analyzing site...'); api('/api/discovery/retry', {}); }

  // ── Synthesis & detail ──
  async function synthesize() {
    const prefs = {
      type: document.getElementById('prefType').value,
      style: document.getElementById('prefStyle').value,
      floors: parseInt(document.getElementById('prefFloors').value, 10) || 1,
      budgetRange: document.getElementById('prefBudget').value,
      materials: document.getElementById('prefMaterials').value.split(',').map(s => s.trim()).filter(Boolean),
    };
    const saved = await api('/api/preferences', prefs);
    if (!saved || saved.error) return;
    show('stageIdentity', false);
    show('stageSynthesis', true);
    await api('/api/synthesis', {});
  }

  function refine() { api('/api/design/refine', {}); }

  function editImage() {
    const el = document.getElementById('editInstruction');
    if (!el.value.trim()) return;
    api('/api/design/edit', { instruction: el.value }).then(() => { el.value = ''; });
  }

  // ── Chat ──
  function toggleChat() {
    document.getElementById('chatPanel').classList.toggle('hidden');
  }

  function renderChat() {
    const log = document.getElementById('chatLog');
    log.innerHTML = '';
    state.chat.forEach(m => {
      const d = document.createElement('div');
      d.className = 'msg ' + m.role;
      d.textContent = m.content;
      (m.sources || []).forEach(uri => {
        const a = document.createElement('a');
        a.href = uri; a.target = '_blank'; a.textContent = uri;
        d.appendChild(a);
      });
      log.appendChild(d);
    });
    log.scrollTop = log.scrollHeight;
    const faqs = document.getElementById('faqs');
    faqs.innerHTML = '';
    state.faqs.forEach(q => {
      const b = document.createElement('button');
      b.textContent = q;
      b.onclick = () => { document.getElementById('chatInput').value = q; sendChat(); };
      faqs.appendChild(b);
    });
  }

  async function sendChat() {
    const input = document.getElementById('chatInput');
    const message = input.value.trim();
    if (!message) return;
    input.value = '';
    await api('/api/chat', { message });
  }

  document.getElementById('chatInput').addEventListener('keydown', e => {
    if (e.key === 'Enter') { e.preventDefault(); sendChat(); }
  });

  // ── Voice ──
  function renderVoice(v, quiet) {
    const btn = document.getElementById('voiceBtn');
    const s = v ? v.state : 'closed';
    btn.textContent = s === 'connecting' ? 'Linking...' : (s === 'open' ? 'Active Link' : 'Voice Link');
    btn.classList.toggle('primary', s === 'open');
    if (v && v.error && !quiet) showError('Voice: ' + v.error);
  }

  async function toggleVoice() {
    const res = await fetch('/api/voice/toggle', { method: 'POST' });
    const data = await res.json();
    if (data.error) { showError(data.error); return; }
    renderVoice(data);
  }

  setInterval(async () => {
    const res = await fetch('/api/voice');
    renderVoice(await res.json(), true);
  }, 2000);

  api('/api/state');
</script>
</body>
</html>
"""


if __name__ == "__main__":
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app.run(debug=True, port=config.PORT, threaded=True)
