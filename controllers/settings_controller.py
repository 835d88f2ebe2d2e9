from flask import Blueprint, jsonify

from services import pricing_service
from utils.common import require_admin, json_body, error_response, server_error
from utils.errors import BookingError, ValidationError

settings_blueprint = Blueprint('settings', __name__)


@settings_blueprint.route('/settings/additional-resource-discount', methods=['GET'])
def get_additional_resource_discount():
    percent = pricing_service.get_additional_discount_percent()
    return jsonify({"additional_resource_discount_percent": float(percent)})


@settings_blueprint.route('/settings/additional-resource-discount', methods=['PUT'])
def set_additional_resource_discount():
    try:
        require_admin()
        data = json_body()
        if 'percent' not in data:
            raise ValidationError("percent is required")
        percent = pricing_service.set_additional_discount_percent(data['percent'])
        return jsonify({"additional_resource_discount_percent": float(percent)}), 200
    except BookingError as e:
        return error_response(e)
    except Exception as e:
        return server_error(e, "Failed to update discount setting")
