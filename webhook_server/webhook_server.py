from __future__ import annotations

import hmac
import logging
import sys
import threading
from collections import deque
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Deque, Dict

from flask import Flask, request
from flask.json import jsonify

from uplink_alerts.bootstrap import AppWiring, build_app_system
from uplink_alerts.domain.errors import (
    AddressInvalid,
    MalformedPayload,
    ProtectedRecipient,
    RecipientNotFound,
    Unauthorized,
)
from uplink_alerts.logging_setup import configure_logging

log = logging.getLogger(__name__)

TEST_MESSAGE = "Mensaje de prueba ✅"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def _field(name: str) -> str:
    """Read a field from a JSON or form body."""
    data = request.get_json(silent=True)
    if isinstance(data, dict) and data.get(name) is not None:
        return str(data[name])
    return str(request.form.get(name, ""))


def create_app(wiring: AppWiring) -> Flask:
    """
    Build the Flask app around a wired pipeline.

    Parameters
    ----------
    wiring
        Output of `build_app_system`.
    """
    app = Flask(__name__)

    admin_token = wiring.config.server.admin_token
    events: Deque[Dict[str, Any]] = deque(maxlen=max(1, wiring.config.server.recent_events))
    events_lock = threading.Lock()

    def require_admin(fn):
        """Admin endpoints: open when no ADMIN_TOKEN is set, token-gated otherwise."""
        @wraps(fn)
        def wrapper(*args, **kwargs):
            if not admin_token:
                return fn(*args, **kwargs)

            token = request.args.get("token") or request.headers.get("x-admin-token") or _field("token")
            auth = request.headers.get("Authorization", "")
            if not token and auth.startswith("Bearer "):
                token = auth.removeprefix("Bearer ").strip()

            if token and hmac.compare_digest(token.encode("utf-8"), admin_token.encode("utf-8")):
                return fn(*args, **kwargs)
            return jsonify({"ok": False, "error": "unauthorized"}), 401
        return wrapper

    @app.get("/health")
    def health():
        return "ok", 200

    @app.post("/uplink")
    def uplink():
        event_tag = request.args.get("event") or request.headers.get("x-event")
        try:
            ack = wiring.pipeline.handle_raw(
                request.get_data(cache=False),
                secret=request.headers.get("x-secret"),
                event_tag=event_tag,
            )
        except Unauthorized:
            return jsonify({"ok": False, "error": "unauthorized"}), 401
        except MalformedPayload as e:
            log.warning("[UPLINK] malformed body: %s", e)
            return jsonify({"ok": False, "error": str(e)}), 400
        except Exception as e:
            log.exception("[UPLINK] webhook error")
            return jsonify({"ok": False, "error": str(e)}), 500

        body = ack.to_dict()
        if ack.event is not None:
            with events_lock:
                events.append(
                    {
                        "received_at": _now_iso(),
                        "dev_eui": ack.event.dev_eui,
                        "dev_name": ack.event.dev_name,
                        "f_cnt": ack.event.frame_count,
                        "kind": ack.kind.value if ack.kind else None,
                        "result": body,
                    }
                )
        return jsonify(body), 200

    @app.get("/api/uplink/recent")
    @require_admin
    def api_recent():
        with events_lock:
            recent = list(reversed(events))
        return jsonify({"count": len(recent), "events": recent}), 200

    @app.get("/api/recipients")
    @require_admin
    def api_recipients():
        reg = wiring.registry
        return jsonify(
            {"recipients": [{"address": a, "fixed": reg.is_fixed(a)} for a in reg.effective()]}
        ), 200

    @app.post("/api/recipients/add")
    @require_admin
    def api_recipients_add():
        try:
            addr = wiring.registry.add(_field("to"))
        except AddressInvalid as e:
            return jsonify({"ok": False, "error": str(e)}), 400
        return jsonify({"ok": True, "address": addr}), 200

    @app.post("/api/recipients/remove")
    @require_admin
    def api_recipients_remove():
        try:
            addr = wiring.registry.remove(_field("to"))
        except (AddressInvalid, ProtectedRecipient) as e:
            return jsonify({"ok": False, "error": str(e)}), 400
        except RecipientNotFound as e:
            return jsonify({"ok": False, "error": str(e)}), 404
        return jsonify({"ok": True, "address": addr}), 200

    @app.post("/test/whatsapp")
    @require_admin
    def test_whatsapp():
        dispatcher = wiring.dispatcher
        if dispatcher.sender is None or not dispatcher.sender.is_configured:
            return jsonify({"ok": False, "error": "Twilio not configured (TWILIO_SID/TWILIO_TOKEN)"}), 500

        recipients = wiring.registry.effective()
        to = (_field("to") or (recipients[0] if recipients else "")).strip()
        body = _field("body") or TEST_MESSAGE

        if not to.startswith("whatsapp:"):
            return jsonify({"ok": False, "error": "missing 'to' (format whatsapp:+57...)"}), 400
        if not dispatcher.from_address:
            return jsonify({"ok": False, "error": "missing WHATSAPP_FROM"}), 400

        outcome = dispatcher.deliver(body, [to])[0]
        if not outcome.ok:
            return jsonify({"ok": False, "error": outcome.error}), 500
        return jsonify({"ok": True, "sid": outcome.message_id}), 200

    @app.errorhandler(404)
    def not_found(_e):
        return "Not Found", 404

    return app


def main() -> None:
    """
    Start the HTTP server.

    Notes
    -----
    - Loads configuration from `config.yaml` (if any) and the environment.
    - Optional CLI usage:
        python -m webhook_server.webhook_server --config path/to/config.yaml
    """
    config_path = None
    if "--config" in sys.argv:
        i = sys.argv.index("--config")
        if i + 1 < len(sys.argv):
            config_path = sys.argv[i + 1]

    wiring = build_app_system(config_path=config_path)
    configure_logging(tz_name=wiring.config.format.timezone)
    app = create_app(wiring)
    log.info("listening on %s", wiring.config.server.port)
    # IMPORTANT: do NOT use debug=True in production
    app.run(host="0.0.0.0", port=wiring.config.server.port, debug=False, threaded=True)


if __name__ == "__main__":
    main()
