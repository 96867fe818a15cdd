try:
    from backend.skillversus.server import create_app
except ImportError:  # pragma: no cover
    from skillversus.server import create_app

app, socketio = create_app()
