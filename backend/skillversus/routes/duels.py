from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from ..duel.errors import SessionNotFound
from ..duel.models import STATUS_ORDER

bp = Blueprint("duels", __name__)


def _engine():
    return current_app.extensions["duel_engine"]


@bp.get("/duels")
def list_duels():
    status = request.args.get("status", "waiting")
    if status not in STATUS_ORDER:
        return jsonify({"error": "invalid_status"}), 400
    return jsonify({"duels": _engine().list_snapshots(status=status)})


@bp.get("/duels/<code>")
def get_duel(code: str):
    try:
        return jsonify(_engine().get_snapshot(code))
    except SessionNotFound:
        return jsonify({"error": "session_not_found"}), 404


@bp.get("/duels/history/<user_id>")
def duel_history(user_id: str):
    try:
        limit = int(request.args.get("limit", "20"))
    except ValueError:
        limit = 20
    limit = max(1, min(limit, 100))

    history = _engine().history
    return jsonify({"duels": history.for_user(user_id, limit=limit), "stats": history.totals(user_id)})
