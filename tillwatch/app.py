import logging
import os
import traceback
import uuid
from datetime import date, datetime
from decimal import Decimal

from flask import Blueprint, Flask, current_app, jsonify, request, send_file
from flask.json.provider import DefaultJSONProvider
from flask_cors import CORS
from werkzeug.exceptions import HTTPException
from werkzeug.utils import secure_filename

from . import auth
from .cameras import CameraRegistry
from .config import Config
from .errors import NotFoundError, TillWatchError, ValidationError
from .export import MIMETYPES, TransactionExporter
from .ingest.extract import get_extension
from .ingest.normalize import FieldNormalizer
from .ingest.pipeline import IngestPipeline
from .review import ReviewStateMachine, parse_status
from .risk import RiskAnalyzer
from .schemas import schema_script
from .store import MemoryStore

RECENT_CONTEXT_SIZE = 50
BULK_ANALYZE_LIMIT = 100

api = Blueprint("api", __name__, url_prefix="/api")


class TillWatchJSONProvider(DefaultJSONProvider):
    """ISO-8601 timestamps and numeric amounts in responses."""

    @staticmethod
    def default(o):
        if isinstance(o, (datetime, date)):
            return o.isoformat()
        if isinstance(o, Decimal):
            return float(o)
        return DefaultJSONProvider.default(o)


def configure_logging(config) -> None:
    level = getattr(logging, str(config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    log_file = config.get("LOG_FILE")
    logging.basicConfig(
        filename=log_file or None,
        level=level,
        format='%(asctime)s %(levelname)s: %(message)s'
    )


def build_store(config):
    if config.get("SUPABASE_URL") and config.get("SUPABASE_SERVICE_ROLE_KEY"):
        from .supabase_client import SupabaseStore
        return SupabaseStore(config["SUPABASE_URL"], config["SUPABASE_SERVICE_ROLE_KEY"])
    logging.warning("Supabase credentials not set; using in-memory store")
    return MemoryStore()


def create_app(overrides: dict = None, store=None) -> Flask:
    app = Flask(__name__)
    app.json = TillWatchJSONProvider(app)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    configure_logging(app.config)
    logging.info("Server starting up...")

    CORS(app, resources={r"/api/*": {"origins": app.config["CORS_ORIGINS"]}}, supports_credentials=True)
    os.makedirs(app.config["UPLOAD_FOLDER"], exist_ok=True)

    store = store or build_store(app.config)
    app.extensions["tillwatch"] = {
        "store": store,
        "pipeline": IngestPipeline(
            store,
            normalizer=FieldNormalizer(default_store_id=app.config["DEFAULT_STORE_ID"]),
            retention_days=app.config["DUPLICATE_RETENTION_DAYS"],
        ),
        "review": ReviewStateMachine(store),
        "risk": RiskAnalyzer(
            api_key=app.config["OPENAI_API_KEY"],
            base_url=app.config["OPENAI_BASE_URL"],
            model=app.config["OPENAI_MODEL"],
            timeout=app.config["RISK_TIMEOUT"],
        ),
        "cameras": CameraRegistry(known_host=app.config["KNOWN_DVR_HOST"]),
        "exporter": TransactionExporter(),
    }

    app.register_blueprint(api)
    register_error_handlers(app)

    @app.cli.command("init-db")
    def init_db():
        """Print the Postgres DDL for the Supabase SQL editor."""
        print(schema_script())

    return app


def register_error_handlers(app: Flask) -> None:

    @app.errorhandler(TillWatchError)
    def handle_tillwatch_error(e):
        if e.status_code >= 500:
            logging.error(f"{type(e).__name__}: {e}")
        return jsonify({"error": str(e)}), e.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return jsonify({"error": e.description}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        logging.error(f"Unhandled error: {traceback.format_exc()}")
        return jsonify({"error": "Internal server error"}), 500


def _services():
    return current_app.extensions["tillwatch"]


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _int_arg(value, name: str, minimum: int = None):
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer")
    if minimum is not None and number < minimum:
        raise ValidationError(f"{name} must be at least {minimum}")
    return number


def _get_transaction_or_404(row_id: int):
    transaction = _services()["store"].get_transaction(row_id)
    if not transaction:
        raise NotFoundError(f"Transaction {row_id} not found")
    return transaction


def _filters():
    status = request.args.get("status") or None
    return {
        "search": request.args.get("search") or None,
        "transaction_type": request.args.get("transactionType") or None,
        "status": parse_status(status).value if status else None,
    }


# ─── Auth ───

@api.route('/login', methods=['POST'])
def login():
    data = _json_body()
    if not auth.check_password(data.get("password")):
        logging.warning(f"Failed login from {request.remote_addr}")
        return jsonify({"error": "Invalid password"}), 401
    return jsonify(auth.login(data.get("name")))


@api.route('/logout', methods=['POST'])
@auth.login_required
def logout():
    auth.logout()
    return jsonify({"status": "success"})


@api.route('/auth/user', methods=['GET'])
@auth.login_required
def get_user():
    return jsonify(auth.current_user())


# ─── Dashboard ───

@api.route('/stats', methods=['GET'])
@auth.login_required
def get_stats():
    return jsonify(_services()["store"].get_stats())


@api.route('/transactions', methods=['GET'])
@auth.login_required
def list_transactions():
    limit = request.args.get("limit")
    offset = 0
    if limit is not None:
        limit = _int_arg(limit, "limit", minimum=1)
        page = _int_arg(request.args.get("page", 1), "page", minimum=1)
        offset = (page - 1) * limit

    rows, total = _services()["store"].list_transactions(limit=limit, offset=offset, **_filters())
    return jsonify({"transactions": rows, "total": total})


@api.route('/transactions/export', methods=['GET'])
@auth.login_required
def export_transactions():
    target_format = request.args.get("format", "csv").lower()
    if target_format not in MIMETYPES:
        raise ValidationError(f"Unsupported export format: {target_format}")

    rows, _ = _services()["store"].list_transactions(**_filters())
    output = _services()["exporter"].generate(rows, target_format)
    filename = f"transactions_{datetime.now().strftime('%Y%m%d_%H%M%S')}.{target_format}"
    return send_file(output, mimetype=MIMETYPES[target_format], as_attachment=True, download_name=filename)


@api.route('/transactions/<int:row_id>', methods=['GET'])
@auth.login_required
def get_transaction(row_id):
    store = _services()["store"]
    transaction = _get_transaction_or_404(row_id)
    return jsonify({
        "transaction": transaction,
        "video_clip": store.get_video_clip(row_id),
        "notes": store.get_notes(row_id),
        "audit_log": store.get_audit_log(row_id),
    })


@api.route('/transactions/<int:row_id>/status', methods=['PATCH'])
@auth.login_required
def update_transaction_status(row_id):
    status = _json_body().get("status")
    if not status:
        raise ValidationError("status is required")
    actor_id, actor_name = auth.actor()
    return jsonify(_services()["review"].transition(row_id, status, actor_id, actor_name))


@api.route('/transactions/<int:row_id>/notes', methods=['POST'])
@auth.login_required
def create_note(row_id):
    content = str(_json_body().get("content") or "").strip()
    if not content:
        raise ValidationError("content is required")
    _get_transaction_or_404(row_id)

    actor_id, actor_name = auth.actor()
    note = _services()["store"].create_note({
        "transaction_id": row_id,
        "content": content,
        "author_id": actor_id,
        "author_name": actor_name,
    })
    return jsonify(note), 201


# ─── Uploads ───

@api.route('/upload/pos', methods=['POST'])
@auth.login_required
def upload_pos():
    if 'posFile' not in request.files:
        raise ValidationError("No file uploaded")
    file = request.files['posFile']
    if file.filename == '':
        raise ValidationError("No selected file")

    ext = get_extension(file.filename)
    if ext not in current_app.config["ALLOWED_POS_EXTENSIONS"]:
        raise ValidationError(f"Unsupported file type: .{ext}")

    actor_id, _ = auth.actor()
    result = _services()["pipeline"].process(file.read(), file.filename, uploaded_by=actor_id)
    return jsonify({
        "message": f"Successfully processed {result['processed']} transactions",
        **result,
    })


@api.route('/upload/video', methods=['POST'])
@auth.login_required
def upload_video():
    if 'videoFile' not in request.files:
        raise ValidationError("No file uploaded")
    file = request.files['videoFile']
    if file.filename == '':
        raise ValidationError("No selected file")

    transaction_id = request.form.get("transactionId") or None
    if transaction_id is not None:
        transaction_id = _int_arg(transaction_id, "transactionId")
        _get_transaction_or_404(transaction_id)
    duration = request.form.get("duration") or None
    if duration is not None:
        duration = _int_arg(duration, "duration", minimum=0)

    _, ext = os.path.splitext(secure_filename(file.filename))
    filename = f"videoFile-{uuid.uuid4().hex}{ext.lower()}"
    path = os.path.join(current_app.config["UPLOAD_FOLDER"], filename)
    file.save(path)

    actor_id, _ = auth.actor()
    clip = _services()["store"].create_video_clip({
        "transaction_id": transaction_id,
        "filename": filename,
        "original_name": file.filename,
        "file_path": path,
        "file_size": os.path.getsize(path),
        "duration": duration,
        "uploaded_by": actor_id,
    })
    logging.info(f"Video {file.filename} stored as {filename} for transaction {transaction_id}")
    return jsonify(clip), 201


@api.route('/video/<int:row_id>', methods=['GET'])
@auth.login_required
def stream_video(row_id):
    clip = _services()["store"].get_video_clip(row_id)
    if not clip or not os.path.isfile(clip["file_path"]):
        raise NotFoundError("Video not found")
    return send_file(clip["file_path"], mimetype='video/mp4', conditional=True)


# ─── Risk scoring ───

@api.route('/ai/analyze-transaction', methods=['POST'])
@auth.login_required
def analyze_transaction():
    row_id = _json_body().get("transactionId")
    if row_id is None:
        raise ValidationError("transactionId is required")
    transaction = _get_transaction_or_404(_int_arg(row_id, "transactionId"))
    recent, _ = _services()["store"].list_transactions(limit=RECENT_CONTEXT_SIZE)
    return jsonify(_services()["risk"].analyze(transaction, recent))


@api.route('/ai/bulk-analyze', methods=['POST'])
@auth.login_required
def bulk_analyze():
    """Score the given transaction ids, or every pending transaction when none are given."""
    ids = _json_body().get("transactionIds")
    if ids:
        if not isinstance(ids, list):
            raise ValidationError("transactionIds must be a list")
        transactions = [_get_transaction_or_404(_int_arg(i, "transactionIds")) for i in ids[:BULK_ANALYZE_LIMIT]]
    else:
        transactions, _ = _services()["store"].list_transactions(status="pending", limit=BULK_ANALYZE_LIMIT)
    return jsonify(_services()["risk"].analyze_bulk(transactions))


# ─── Cameras ───

@api.route('/cameras', methods=['GET'])
@auth.login_required
def list_cameras():
    return jsonify(_services()["cameras"].list())


@api.route('/cameras', methods=['POST'])
@auth.login_required
def add_camera():
    return jsonify(_services()["cameras"].add(_json_body())), 201


@api.route('/cameras/test-feed', methods=['POST'])
@auth.login_required
def test_camera_feed():
    return jsonify(_services()["cameras"].test_feed(_json_body()))


@api.route('/cameras/<camera_id>', methods=['PATCH'])
@auth.login_required
def update_camera(camera_id):
    return jsonify(_services()["cameras"].update(camera_id, _json_body()))


@api.route('/cameras/<camera_id>', methods=['DELETE'])
@auth.login_required
def delete_camera(camera_id):
    _services()["cameras"].remove(camera_id)
    return jsonify({"status": "success"})


@api.route('/cameras/<camera_id>/test', methods=['POST'])
@auth.login_required
def test_camera(camera_id):
    return jsonify(_services()["cameras"].test(camera_id))


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    create_app().run(host='0.0.0.0', port=port, debug=os.environ.get('FLASK_DEBUG', 'False') == 'True')
