from flask import Blueprint, request, jsonify

from services import subscription_service
from services.lifecycle_service import OWNER
from utils.common import actor_from_request, json_body, error_response, server_error
from utils.errors import BookingError, ValidationError
from utils.timeutils import parse_date

subscription_blueprint = Blueprint('subscriptions', __name__)


def _owner_scope(actor):
    return actor.id if actor.kind == OWNER else None


@subscription_blueprint.route('/subscriptions', methods=['GET'])
def list_subscriptions():
    try:
        actor = actor_from_request()
        owner_id = actor.id if actor.kind == OWNER else request.args.get('owner_id', type=int)
        if owner_id is None:
            raise ValidationError("owner_id is required")
        subscriptions = subscription_service.list_subscriptions(owner_id)
        return jsonify([s.to_dict() for s in subscriptions]), 200
    except BookingError as e:
        return error_response(e)
    except Exception as e:
        return server_error(e, "Failed to list subscriptions")


@subscription_blueprint.route('/subscriptions', methods=['POST'])
def create_subscription():
    try:
        actor = actor_from_request()
        data = json_body()
        owner_id = actor.id if actor.kind == OWNER else data.get('owner_id')
        if owner_id is None:
            raise ValidationError("owner_id is required")
        end_date = parse_date(data['end_date'], 'end_date') if data.get('end_date') else None
        subscription = subscription_service.create_subscription(
            owner_id,
            parse_date(data.get('start_date'), 'start_date'),
            end_date,
            auto_renewal=data.get('auto_renewal', False),
            booking_ids=data.get('booking_ids') or [],
        )
        return jsonify(subscription.to_dict()), 201
    except BookingError as e:
        return error_response(e)
    except Exception as e:
        return server_error(e, "Failed to create subscription")


_ACTIONS = {
    "cancel": subscription_service.cancel_subscription,
    "pause": subscription_service.pause_subscription,
    "resume": subscription_service.resume_subscription,
}


@subscription_blueprint.route('/subscriptions/<int:subscription_id>/<action>', methods=['POST'])
def change_subscription(subscription_id, action):
    handler = _ACTIONS.get(action)
    if handler is None:
        return jsonify({"message": f"Unknown action '{action}'"}), 404
    try:
        subscription = handler(subscription_id, _owner_scope(actor_from_request()))
        return jsonify(subscription.to_dict()), 200
    except BookingError as e:
        return error_response(e)
    except Exception as e:
        return server_error(e, f"Failed to {action} subscription")
