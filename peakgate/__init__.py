from pathlib import Path

from flask import Flask

from . import settings


def create_app():
    """Create and configure the Flask application.

    The app is a thin JSON surface over the engine helpers for the job
    orchestrator.  Every file path a request names is resolved inside
    ``WORK_DIR``; a relative ``WORK_DIR`` is taken relative to the project
    root.  ``ENGINE_RUNNER`` may be set to substitute the process runner.
    """

    app = Flask(__name__)
    work = Path(settings.WORK_DIR)
    if not work.is_absolute():
        work = Path(__file__).resolve().parent.parent / work
    work.mkdir(parents=True, exist_ok=True)
    app.config["WORK_DIR"] = work
    app.config["SCRATCH_DIR"] = settings.SCRATCH_DIR
    app.config["ENGINE_RUNNER"] = None
    app.config["DEFAULT_CEILING_DB"] = settings.DEFAULT_CEILING_DB
    app.config["MAX_ATTEMPTS"] = settings.MAX_ATTEMPTS
    app.config["DEBUG"] = settings.DEBUG

    from .routes import bp
    app.register_blueprint(bp)

    return app


__all__ = ["create_app"]
