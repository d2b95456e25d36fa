from flask import Flask, request, jsonify, send_file, Response, stream_with_context
from flask_cors import CORS
import os
import json
import traceback
from datetime import datetime
import logging

from backend.etl.config import Config

# Setup Logging
logging.basicConfig(
    filename=Config.LOG_FILE,
    level=logging.DEBUG,
    format='%(asctime)s %(levelname)s: %(message)s'
)
logging.info("Server starting up...")

from backend.etl.pipeline import ETLPipeline
from backend.etl.errors import FileReadError, QuarantineFallbackError, StoreWriteError
from backend.etl.report import QuarantineReport
from backend.supabase_client import WarehouseStore


app = Flask(__name__)
CORS(app, resources={r"/*": {"origins": os.environ.get("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")}})

# Folders
UPLOAD_FOLDER = os.path.join(os.getcwd(), Config.UPLOAD_FOLDER)
os.makedirs(UPLOAD_FOLDER, exist_ok=True)

# Initialize Store & Pipeline
store = WarehouseStore.from_env(Config.SUPABASE_URL, Config.SUPABASE_KEY)
etl_pipeline = ETLPipeline(store=store)


def allowed_file(filename):
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in Config.ALLOWED_EXTENSIONS


def is_eligible_for_insurance(delay_minutes, threshold=None):
    """Delay strictly above the threshold qualifies."""
    threshold = Config.INSURANCE_DELAY_THRESHOLD_MINUTES if threshold is None else threshold
    return delay_minutes > threshold


def _save_upload(file, index=0):
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    safe_filename = f"{timestamp}_{index}_{os.path.basename(file.filename).replace(' ', '_')}"
    temp_path = os.path.join(UPLOAD_FOLDER, safe_filename)
    file.save(temp_path)
    return temp_path


def _remove(paths):
    for path in paths:
        if os.path.exists(path):
            os.remove(path)


def _collect_uploads():
    """Validate and save every file in the `files` field. Returns (saved, error_response)."""
    files = [f for f in request.files.getlist('files') if f and f.filename]
    if not files and 'file' in request.files and request.files['file'].filename:
        files = [request.files['file']]
    if not files:
        return None, (jsonify({"error": "No files uploaded"}), 400)

    rejected = [f.filename for f in files if not allowed_file(f.filename)]
    if rejected:
        return None, (jsonify({"error": f"Only CSV files are accepted: {', '.join(rejected)}"}), 400)

    return [(_save_upload(f, i), f.filename) for i, f in enumerate(files)], None


# ─────────────────────────────────────────────────────────────
# Upload & Load
# ─────────────────────────────────────────────────────────────

@app.route('/upload', methods=['POST'])
def upload_files():
    saved, error = _collect_uploads()
    if error:
        return error

    try:
        results = etl_pipeline.run_files(saved)
    except FileReadError as e:
        logging.error(f"Upload aborted: {e}")
        return jsonify({"status": "failed", "error": str(e)}), 422
    except QuarantineFallbackError as e:
        logging.critical(f"Upload aborted, quarantine lost: {e}")
        return jsonify({"status": "failed", "error": str(e)}), 500
    finally:
        _remove(path for path, _ in saved)

    return jsonify({
        "status": "success",
        "files": results,
        "total_clean": sum(r["clean_rows"] for r in results),
        "total_quarantined": sum(r["quarantined_rows"] for r in results),
    })


@app.route('/upload/stream', methods=['POST'])
def upload_stream():
    if 'file' not in request.files:
        return jsonify({"error": "No file part"}), 400

    file = request.files['file']
    if file.filename == '':
        return jsonify({"error": "No selected file"}), 400
    if not allowed_file(file.filename):
        return jsonify({"error": "Only CSV files are accepted"}), 400

    original_name = file.filename
    temp_path = _save_upload(file)

    def generate():
        # Only plain values from here on; the request is gone once streaming starts
        try:
            final_result = None
            for p, msg, res in etl_pipeline.process(temp_path, original_name):
                if res:
                    final_result = res
                else:
                    yield json.dumps({"p": p, "status": msg}) + "\n"

            if not final_result or not final_result["success"]:
                error_msg = final_result.get("error", "Unknown ETL error") if final_result else "Pipeline failed"
                yield json.dumps({"status": "failed", "error": error_msg}) + "\n"
                return

            yield json.dumps({"status": "success", "result": final_result}) + "\n"

        except Exception as e:
            logging.error(f"Streaming Error: {traceback.format_exc()}")
            yield json.dumps({"status": "failed", "error": str(e)}) + "\n"
        finally:
            _remove([temp_path])

    return Response(stream_with_context(generate()), mimetype='application/x-ndjson')


@app.route('/upload-sales', methods=['POST'])
def upload_sales():
    saved, error = _collect_uploads()
    if error:
        return error

    try:
        outcome = etl_pipeline.run_sales_files(saved)
    except FileReadError as e:
        logging.error(f"Sales upload aborted: {e}")
        return jsonify({"status": "failed", "error": str(e)}), 422
    except QuarantineFallbackError as e:
        logging.critical(f"Sales upload aborted, quarantine lost: {e}")
        return jsonify({"status": "failed", "error": str(e)}), 500
    finally:
        _remove(path for path, _ in saved)

    return jsonify({"status": "success", **outcome})


@app.route('/detect', methods=['POST'])
def detect_file_type():
    """Detection only: nothing is standardized or written."""
    if 'file' not in request.files or request.files['file'].filename == '':
        return jsonify({"error": "No file uploaded"}), 400

    file = request.files['file']
    if not allowed_file(file.filename):
        return jsonify({"error": "Only CSV files are accepted"}), 400

    temp_path = _save_upload(file)
    try:
        detection = etl_pipeline.detect(temp_path)
        parsed = etl_pipeline.reader.parse(temp_path)
    except FileReadError as e:
        return jsonify({"error": str(e)}), 422
    finally:
        _remove([temp_path])

    file_type = detection["file_type"]
    suggestion = (
        "Check the header row; no known file signature matched"
        if file_type == "unknown" else f"Upload as {file_type}"
    )
    return jsonify({
        "filename": file.filename,
        "file_type": file_type,
        "matched_by": detection["matched_by"],
        "headers": detection["headers"],
        "sample_rows": parsed["rows"][:3],
        "row_count": len(parsed["rows"]),
        "suggested_action": suggestion,
    })


# ─────────────────────────────────────────────────────────────
# Quarantine Review
# ─────────────────────────────────────────────────────────────

@app.route('/dirty-data', methods=['GET'])
def dirty_data():
    try:
        rows = store.recent_rows(Config.QUARANTINE_TABLE, order_by="created_at", limit=100)
    except StoreWriteError as e:
        logging.error(f"Could not read quarantine table: {e.message}")
        return jsonify({"error": e.message}), 503

    if request.args.get('format') == 'xlsx':
        buffer = QuarantineReport().generate(rows)
        return send_file(
            buffer,
            mimetype='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
            as_attachment=True,
            download_name='quarantine_report.xlsx',
        )
    return jsonify({"count": len(rows), "rows": rows})


# ─────────────────────────────────────────────────────────────
# Flight Status & Insurance
# ─────────────────────────────────────────────────────────────

def _check_insurance(flight_key):
    status = store.latest_flight_status(flight_key)
    if not status:
        return None
    delay = int(status.get("delay_minutes") or 0)
    eligible = is_eligible_for_insurance(delay)
    if eligible:
        store.mark_insurance_eligible(flight_key)
        logging.info(f"Flight {flight_key} delayed {delay} min: sales marked eligible for insurance")
    return {
        "flight_key": flight_key,
        "delay_minutes": delay,
        "threshold_minutes": Config.INSURANCE_DELAY_THRESHOLD_MINUTES,
        "eligible": eligible,
    }


@app.route('/check-insurance', methods=['POST'])
def check_insurance():
    data = request.get_json(silent=True) or {}
    flight_key = str(data.get('flight_key') or '').strip()
    if not flight_key:
        return jsonify({"error": "flight_key required"}), 400

    try:
        outcome = _check_insurance(flight_key)
    except StoreWriteError as e:
        logging.error(f"Insurance check failed for {flight_key}: {e.message}")
        return jsonify({"error": e.message}), 502

    if outcome is None:
        return jsonify({"flight_key": flight_key, "eligible": False, "error": "No status updates for flight"}), 404
    return jsonify(outcome)


@app.route('/flight-status', methods=['POST'])
def record_flight_status():
    data = request.get_json(silent=True) or {}
    flight_key = str(data.get('flight_key') or '').strip()
    if not flight_key:
        return jsonify({"error": "flight_key required"}), 400
    try:
        delay = int(data.get('delay_minutes') or 0)
    except (TypeError, ValueError):
        return jsonify({"error": "delay_minutes must be an integer"}), 400

    update = {
        "flight_key": flight_key,
        "status": data.get('status') or ("DELAYED" if delay > 0 else "ON_TIME"),
        "delay_minutes": delay,
        "update_timestamp": datetime.now().isoformat(),
    }
    try:
        store.insert("flight_status_updates", [update])
        outcome = _check_insurance(flight_key)
    except StoreWriteError as e:
        logging.error(f"Flight status update failed for {flight_key}: {e.message}")
        return jsonify({"error": e.message}), 502

    return jsonify({"status": "success", "update": update, "insurance": outcome})


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    app.run(host='0.0.0.0', port=port, debug=os.environ.get('FLASK_DEBUG', 'False') == 'True')
