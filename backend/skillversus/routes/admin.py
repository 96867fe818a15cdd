from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

bp = Blueprint("admin", __name__)


def _authorized() -> bool:
    token = current_app.config.get("ADMIN_TOKEN", "")
    if not token:
        return False
    return request.headers.get("X-Admin-Token", "") == token


@bp.get("/admin/duels")
def admin_duels():
    if not _authorized():
        return jsonify({"error": "unauthorized"}), 401

    engine = current_app.extensions["duel_engine"]
    return jsonify({"duels": engine.list_snapshots(include_violations=True)})


@bp.post("/admin/duels/<code>/destroy")
def admin_destroy(code: str):
    if not _authorized():
        return jsonify({"error": "unauthorized"}), 401

    engine = current_app.extensions["duel_engine"]
    if not engine.destroy_session(code, reason="admin"):
        return jsonify({"error": "session_not_found"}), 404
    return jsonify({"ok": True})
