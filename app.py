"""HTTP entrypoint for the seat assignment backend."""

from flask import Flask, request, jsonify
from flask_cors import CORS
import logging
import os
from dotenv import load_dotenv

load_dotenv()
from assignment_logger import AssignmentLogger
from database_manager import DatabaseManager
from errors import SeatingError
from registration_gateway import RegistrationGateway

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = Flask(__name__)
CORS(app)

# Instantiate the database layer once so all request handlers reuse the same pool
DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///seating.db')
db = DatabaseManager(DATABASE_URL)
assignment_log = AssignmentLogger(db)
gateway = RegistrationGateway(db, assignment_log)

DEMO_SESSION_ID = "demo-session-2026"


def seed_demo_enabled() -> bool:
    return os.getenv('SEED_DEMO_SESSION', '1').lower() not in ('0', 'false', 'no')


def initialize_demo_session():
    """Create an example session so local demos have rows and pre-registered attendees."""
    demo_rows = [(row, 20) for row in "ABCDE"]
    demo_attendees = [
        {"phone": f"0101234{n:04d}", "name": f"Guest {n:03d}", "attendee_count": 1 + n % 3}
        for n in range(1, 41)
    ]

    try:
        success, message = db.seed_session(DEMO_SESSION_ID, "Demo session", demo_rows, demo_attendees)
        if success:
            logger.info(f"Pre-initialized demo session: {DEMO_SESSION_ID} ({message})")
        else:
            logger.info(f"Demo session not seeded: {message}")
    except SeatingError as e:
        logger.error(f"Failed to initialize demo session: {e}")


# Seed on module load (works with Gunicorn)
if seed_demo_enabled():
    initialize_demo_session()


# API Endpoints

@app.route('/assign-seat', methods=['POST'])
def assign_seat():
    """Assign seats to a pre-registered attendee, or return the seats already assigned."""
    payload = request.get_json(silent=True)
    body, status = gateway.register(payload)
    return jsonify(body), status


@app.route('/sessions/<session_id>/attendees/lookup', methods=['GET'])
def lookup_attendee(session_id):
    """Read-only seat check by phone and name."""
    body, status = gateway.lookup(session_id, request.args.get('phone'), request.args.get('name'))
    return jsonify(body), status


@app.route('/sessions/<session_id>/seats', methods=['GET'])
def get_seat_status(session_id):
    """Return the live seat summary for a session."""
    try:
        status = db.get_session_occupancy(session_id)
    except SeatingError as e:
        return jsonify(e.to_payload()), e.status_code

    if status is None:
        return jsonify({"error": "session has no active seat layout"}), 404
    return jsonify(status)


@app.route('/sessions/<session_id>/assignment-logs', methods=['GET'])
def list_assignment_logs(session_id):
    """Newest-first audit entries, filterable by event_type."""
    try:
        entries = assignment_log.list_entries(
            session_id,
            event_type=request.args.get('event_type'),
            limit=request.args.get('limit', 100),
        )
    except SeatingError as e:
        return jsonify(e.to_payload()), e.status_code

    return jsonify({"logs": entries, "count": len(entries)})


@app.route('/sessions/<session_id>/assignment-logs/summary', methods=['GET'])
def summarize_assignment_logs(session_id):
    """Counts per outcome, mean latency, and seats committed to more than one attendee."""
    try:
        summary = assignment_log.summarize(session_id)
    except SeatingError as e:
        return jsonify(e.to_payload()), e.status_code

    return jsonify(summary)


@app.route('/health', methods=['GET'])
def health_check():
    """Expose the database connectivity and session count."""
    return jsonify(db.health_check())


if __name__ == '__main__':
    logger.info("""
    ================================
    SEAT ASSIGNMENT SERVICE
    ================================
    Demo session: demo-session-2026 (rows A-E, 100 seats)
    Concurrency: optimistic locking on attendees.version
    ================================
    """)

    port = int(os.environ.get("PORT", 5000))
    app.run(host="0.0.0.0", port=port, debug=False, threaded=True)
