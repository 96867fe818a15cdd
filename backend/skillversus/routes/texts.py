from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from ..duel.texts import DIFFICULTIES, pick_text

bp = Blueprint("texts", __name__)


@bp.get("/typing-texts/random")
def random_text():
    difficulty = request.args.get("difficulty") or None
    if difficulty is not None and difficulty not in DIFFICULTIES:
        return jsonify({"error": "invalid_difficulty"}), 400

    content = pick_text(difficulty)
    return jsonify(
        {
            "text": content.text,
            "words": list(content.words),
            "totalWords": content.total_words,
            "category": content.category,
            "difficulty": content.difficulty,
        }
    )


@bp.get("/realtime/config")
def realtime_config():
    cfg = current_app.config
    return jsonify(
        {
            "leaderboardIntervalMs": cfg.get("LEADERBOARD_POLL_MS", 30000),
            "submissionsIntervalMs": cfg.get("SUBMISSIONS_POLL_MS", 2000),
            "statusIntervalMs": cfg.get("STATUS_POLL_MS", 60000),
            "readyDelayMs": int(float(cfg.get("READY_DELAY_SEC", 2)) * 1000),
            "focusGraceMs": cfg.get("FOCUS_GRACE_MS", 3000),
        }
    )
