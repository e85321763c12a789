import os
import logging

from flask import Flask, jsonify, request
from flask_cors import CORS
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from .circulation import CirculationManager
from .config import Config
from .database import Database
from .errors import LibraryError
from .inventory import LostDamagedLedger
from .notifications import Notifier
from .security import jwt
from .routes import auth, books, dashboard, issue_records, lost_damaged_books, payments, users

logger = logging.getLogger(__name__)

BLUEPRINTS = (
    auth.bp,
    books.bp,
    users.bp,
    issue_records.bp,
    payments.bp,
    lost_damaged_books.bp,
    dashboard.bp,
)


def create_app(config_object=Config):
    app = Flask(__name__, static_folder=None)
    app.config.from_object(config_object)

    logging.basicConfig(level=app.config["LOG_LEVEL"])
    CORS(app, origins=app.config["FRONTEND_URL"], supports_credentials=True)
    jwt.init_app(app)

    # ---------------- DB + services ----------------
    db = Database(app.config["SQLALCHEMY_DATABASE_URI"], echo=app.config["SQLALCHEMY_ECHO"])
    db.create_all()

    notifier = Notifier(
        base_url=app.config["NOTIFICATION_BASE_URL"],
        api_key=app.config["SERVICE_API_KEY"],
        timeout=app.config["NOTIFICATION_TIMEOUT"],
    )

    app.extensions["db"] = db
    app.extensions["notifier"] = notifier
    app.extensions["circulation"] = CirculationManager(
        db,
        loan_period_days=app.config["LOAN_PERIOD_DAYS"],
        late_return_fine=app.config["LATE_RETURN_FINE"],
        restock_on_return=app.config["RESTOCK_ON_RETURN"],
        post_commit_hooks=[notifier],
    )
    app.extensions["inventory"] = LostDamagedLedger(db)

    for bp in BLUEPRINTS:
        app.register_blueprint(bp)

    # ---------------- errors ----------------

    @app.errorhandler(LibraryError)
    def handle_library_error(err):
        return jsonify(err.to_dict()), err.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(err):
        code = err.name.lower().replace(" ", "_")
        return jsonify({"error": err.description, "code": code}), err.code

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(err):
        logger.exception("Database error on %s %s", request.method, request.path)
        return jsonify({"error": "Database error", "code": "database_error"}), 500

    # ---------------- health ----------------

    @app.get("/api/health")
    def health():
        return jsonify({"status": "ok"})

    return app


if __name__ == "__main__":
    port = int(os.getenv("PORT", "3000"))
    create_app().run(host="0.0.0.0", port=port, debug=True)
