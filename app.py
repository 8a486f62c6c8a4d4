import logging
from pathlib import Path

from dotenv import load_dotenv
from flask import Flask, jsonify
from flask_login import LoginManager
from sqlalchemy import text
from werkzeug.exceptions import HTTPException

import config
import models
from errors import ServiceError
from models import User, db

load_dotenv()

login_manager = LoginManager()


@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, int(user_id))


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({"ok": False, "error": "Not authenticated"}), 401


def _database_url(db_url: str) -> str:
    # Render/Railway sometimes prefix with postgres:// – SQLAlchemy accepts postgresql://
    if db_url.startswith("postgres://"):
        return db_url.replace("postgres://", "postgresql+psycopg://", 1)
    if db_url.startswith("postgresql://") and "+psycopg" not in db_url:
        return db_url.replace("postgresql://", "postgresql+psycopg://", 1)
    return db_url


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ServiceError)
    def service_error(exc: ServiceError):
        return jsonify({"ok": False, "error": exc.message}), exc.status_code

    @app.errorhandler(HTTPException)
    def http_error(exc: HTTPException):
        # 404/405/413 from routing and uploads, same shape as service errors
        return jsonify({"ok": False, "error": exc.description}), exc.code


def _register_blueprints(app: Flask) -> None:
    from routes.auth import auth_bp
    from routes.bands import bands_bp
    from routes.billing import billing_bp
    from routes.gigs import gigs_bp
    from routes.member_access import member_bp
    from routes.members import members_bp
    from routes.setlists import setlists_bp
    from routes.songs import songs_bp
    from routes.storage import storage_bp
    from routes.templates import templates_bp

    for bp in (auth_bp, bands_bp, songs_bp, setlists_bp, templates_bp,
               members_bp, gigs_bp, member_bp, storage_bp, billing_bp):
        app.register_blueprint(bp)


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config)
    if test_config:
        app.config.update(test_config)
    app.config["SQLALCHEMY_DATABASE_URI"] = _database_url(app.config["SQLALCHEMY_DATABASE_URI"])

    logging.basicConfig(
        level=app.config["LOG_LEVEL"],
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    upload_dir = Path(app.config["UPLOAD_DIR"] or Path(app.instance_path) / "uploads")
    upload_dir.mkdir(parents=True, exist_ok=True)
    app.config["UPLOAD_DIR"] = upload_dir
    # Share UPLOAD_DIR with models (StoredFile.path)
    models.UPLOAD_DIR = upload_dir

    db.init_app(app)
    login_manager.init_app(app)
    _register_error_handlers(app)
    _register_blueprints(app)

    @app.get("/healthz")
    def healthz():
        # quick DB ping; never crash health
        try:
            db.session.execute(text("SELECT 1"))
            db_ok = True
        except Exception:
            app.logger.exception("Health check could not reach the database")
            db_ok = False
        return jsonify({"ok": db_ok, "db": "up" if db_ok else "down"}), 200

    with app.app_context():
        db.create_all()
    app.logger.info("App ready (db=%s)", app.config["SQLALCHEMY_DATABASE_URI"].split(":", 1)[0])
    return app


if __name__ == "__main__":
    create_app().run(debug=True, port=5055)
