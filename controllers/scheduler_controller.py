from flask import Blueprint, jsonify, current_app

from services.scheduler_service import run_lifecycle_pass, scheduler_info
from utils.common import require_admin, error_response, server_error
from utils.errors import BookingError

scheduler_blueprint = Blueprint('scheduler', __name__)


@scheduler_blueprint.route('/scheduler/lifecycle/run', methods=['POST'])
def run_lifecycle_now():
    """Admin "run now". Same pass the periodic job runs."""
    try:
        require_admin()
        summary = run_lifecycle_pass()
        current_app.logger.info(f"Manual lifecycle pass: {summary.to_dict()}")
        return jsonify(summary.to_dict()), 200
    except BookingError as e:
        return error_response(e)
    except Exception as e:
        return server_error(e, "Lifecycle pass failed")


@scheduler_blueprint.route('/scheduler/lifecycle', methods=['GET'])
def get_lifecycle_schedule():
    try:
        require_admin()
        return jsonify(scheduler_info()), 200
    except BookingError as e:
        return error_response(e)
    except Exception as e:
        return server_error(e, "Failed to read scheduler info")
