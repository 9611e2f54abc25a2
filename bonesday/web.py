"""Flask web application."""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from flask import Flask, Response, abort, jsonify, redirect, render_template_string, request, url_for

from . import rules
from .ingest import IngesterState, StreamIngester
from .rules import Vibe
from .service import VibeService

TEMPLATE = """
<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8" />
  <meta name="viewport" content="width=device-width,initial-scale=1" />
  <title>{{ title }}</title>
  <script src="https://cdn.tailwindcss.com"></script>
  <style>
    :root {
      --bg-primary: #0a0a0a;
      --bg-card: linear-gradient(135deg, #1a1a1a 0%, #0f0f0f 100%);
      --border-primary: #2a2a2a;
      --text-primary: #f8fafc;
      --text-secondary: #cbd5e1;
      --text-muted: #94a3b8;
      --accent-blue: #3b82f6;
      --accent-green: #10b981;
      --accent-red: #ef4444;
      --accent-orange: #f59e0b;
    }
    body { background: var(--bg-primary); color: var(--text-primary); }
    .modern-card { background: var(--bg-card); border: 1px solid var(--border-primary); border-radius: 1rem; }
    .vibe-bones { color: var(--accent-green); }
    .vibe-no_bones { color: var(--accent-red); }
    .vibe-skipped, .vibe-ended { color: var(--accent-orange); }
    .vibe-indeterminate, .vibe-stale { color: var(--text-muted); }
  </style>
</head>
<body class="min-h-screen">
  <div class="max-w-2xl mx-auto px-4 py-12 space-y-6">
    <h1 class="text-sm uppercase tracking-widest text-[var(--text-muted)]">{{ title }}</h1>

    <div class="modern-card p-8 text-center">
      <div class="text-5xl font-bold vibe-{{ view.vibe.value if view.vibe else 'stale' }}">{{ view.label }}</div>
      {% if view.detail %}
        <p class="mt-4 text-[var(--text-secondary)]">{{ view.detail }}</p>
      {% endif %}
      {% if view.observed_at_local %}
        <p class="mt-6 text-xs font-mono text-[var(--text-muted)]">Read {{ view.observed_at_local }}</p>
      {% endif %}
    </div>

    <div class="modern-card p-6 text-sm text-[var(--text-muted)]">
      {% if stream %}
        Stream: <span class="font-mono">{{ stream.state }}</span>
        {% if stream.last_activity_utc %} &bull; last activity {{ stream.last_activity_utc }}{% endif %}
        {% if stream.last_error %}<div class="text-[var(--accent-red)] mt-1">{{ stream.last_error }}</div>{% endif %}
      {% else %}
        Stream: <span class="font-mono">disabled</span>
      {% endif %}
    </div>
  </div>
</body>
</html>
"""


def create_app(app_title: str, service: VibeService, ingester: Optional[StreamIngester] = None) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)

    def stream_status() -> Optional[Dict[str, Any]]:
        return ingester.get_status() if ingester is not None else None

    @app.route("/")
    def index() -> str:
        return render_template_string(
            TEMPLATE,
            title=app_title,
            view=service.get_current_view(),
            stream=stream_status(),
        )

    @app.route("/api/vibe")
    def api_vibe() -> Response:
        return jsonify(service.get_current_view().to_dict())

    @app.route("/set/<name>", methods=["POST"])
    def set_vibe(name: str) -> Response:
        try:
            vibe = rules.parse_vibe(name)
        except ValueError:
            abort(404)
        service.set_vibe(vibe)
        return redirect(url_for("index"))

    @app.route("/classify", methods=["POST"])
    def classify() -> Response:
        payload = request.get_json(silent=True) or {}
        text = (payload.get("text") if isinstance(payload, dict) else None) or request.form.get("text") or ""
        if not isinstance(text, str) or not text.strip():
            return Response("Missing or invalid 'text'", status=400, mimetype="text/plain")
        label = service.classify_and_set(text)
        return jsonify({"label": label, "view": service.get_current_view().to_dict()})

    @app.route("/healthz")
    def healthz() -> Response:
        """Health check. 200 while the ingester is streaming or disabled, else 503."""
        status = stream_status()
        if status is None:
            return Response("OK (stream disabled)", status=200, mimetype="text/plain")

        if status["state"] == IngesterState.STREAMING.value:
            return Response("OK", status=200, mimetype="text/plain")

        reason = status["last_error"] or "not connected"
        return Response(
            f"Unhealthy: stream {status['state']}: {reason}",
            status=503,
            mimetype="text/plain"
        )

    @app.route("/debug/rules")
    def debug_rules() -> Response:
        """Active keyword rules in priority order, or a breakdown for ?text=."""
        text = request.args.get("text")
        if text is not None:
            body: Any = rules.explain(text)
        else:
            body = {
                "priority": [vibe.value for vibe, _ in rules.VIBE_RULES],
                "rules": {vibe.value: keywords for vibe, keywords in rules.VIBE_RULES},
                "labels": {vibe.value: rules.VIBE_LABELS[vibe] for vibe in Vibe},
            }
        return Response(json.dumps(body, indent=2), status=200, mimetype="application/json")

    return app
