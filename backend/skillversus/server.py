from __future__ import annotations

import os
import sys
from typing import Any

from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO
from werkzeug.middleware.proxy_fix import ProxyFix

from .config import Config
from .duel.engine import DuelEngine, EngineConfig
from .duel.scheduler import Scheduler, SocketIOScheduler
from .realtime.handlers import register_socketio_handlers
from .routes.admin import bp as admin_bp
from .routes.duels import bp as duels_bp
from .routes.health import bp as health_bp
from .routes.texts import bp as texts_bp


def create_app(
    config_overrides: dict[str, Any] | None = None,
    scheduler: Scheduler | None = None,
) -> tuple[Flask, SocketIO]:
    app = Flask(__name__)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    if app.config.get("TRUST_PROXY_HEADERS", False):
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)

    cors_origins = app.config.get("CORS_ORIGINS", "*")
    CORS(app, resources={r"/api/*": {"origins": cors_origins}})

    env_async_mode = os.environ.get("SOCKETIO_ASYNC_MODE", "").strip()
    if env_async_mode:
        async_mode = env_async_mode
    else:
        # Default choice:
        # - Windows: threading (eventlet has known compatibility issues on newer Python)
        # - Python >= 3.13: threading (safer default)
        # - Otherwise: eventlet
        if sys.platform.startswith("win") or sys.version_info >= (3, 13):
            async_mode = "threading"
        else:
            async_mode = "eventlet"

    socketio = SocketIO(
        app,
        cors_allowed_origins=cors_origins,
        async_mode=async_mode,
    )

    def _notify(event: str, room_code: str, payload: dict) -> None:
        socketio.emit(event, payload, to=room_code)

    engine = DuelEngine(
        config=EngineConfig.from_mapping(app.config),
        scheduler=scheduler or SocketIOScheduler(socketio),
        notify=_notify,
    )
    app.extensions["duel_engine"] = engine

    app.register_blueprint(health_bp, url_prefix="/api")
    app.register_blueprint(duels_bp, url_prefix="/api")
    app.register_blueprint(texts_bp, url_prefix="/api")
    app.register_blueprint(admin_bp, url_prefix="/api")

    register_socketio_handlers(socketio, engine)

    return app, socketio
