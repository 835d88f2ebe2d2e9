from flask import Blueprint, request, jsonify, current_app

from services import booking_service
from services.booking_service import BookingRequest
from services.lifecycle_service import OWNER, status_history
from services.payment_service import PaymentConfirmation
from utils.common import actor_from_request, json_body, error_response, server_error
from utils.errors import BookingError, PermissionDeniedError

booking_blueprint = Blueprint('bookings', __name__)


def _booking_request(data, actor):
    # owners always book for themselves
    owner_id = actor.id if actor.kind == OWNER else None
    return BookingRequest.from_payload(data, owner_id=owner_id)


@booking_blueprint.route('/bookings/quote', methods=['POST'])
def quote_booking():
    try:
        actor = actor_from_request()
        checkout = booking_service.prepare_checkout(_booking_request(json_body(), actor))
        return jsonify(checkout.to_dict()), 200
    except BookingError as e:
        return error_response(e)
    except Exception as e:
        return server_error(e, "Failed to quote booking")


@booking_blueprint.route('/bookings/checkout', methods=['POST'])
def checkout_booking():
    """Quote plus a payment order for the amount due. Persists nothing."""
    try:
        actor = actor_from_request()
        order = booking_service.create_checkout_order(_booking_request(json_body(), actor))
        return jsonify(order), 200
    except BookingError as e:
        return error_response(e)
    except Exception as e:
        return server_error(e, "Failed to create checkout")


@booking_blueprint.route('/bookings', methods=['POST'])
def create_booking():
    try:
        actor = actor_from_request()
        data = json_body()
        confirmation = PaymentConfirmation.from_payload(data.get("payment") or data)
        booking = booking_service.submit_booking(_booking_request(data, actor), confirmation)
        current_app.logger.info(f"Booking {booking.id} submitted for owner {booking.owner_id}")
        return jsonify({"message": "Booking submitted", "booking": booking.to_dict()}), 201
    except BookingError as e:
        return error_response(e)
    except Exception as e:
        return server_error(e, "Failed to submit booking")


@booking_blueprint.route('/bookings/draft', methods=['POST'])
def create_draft():
    try:
        actor = actor_from_request()
        booking = booking_service.create_draft(_booking_request(json_body(), actor))
        return jsonify({"message": "Draft saved", "booking": booking.to_dict()}), 201
    except BookingError as e:
        return error_response(e)
    except Exception as e:
        return server_error(e, "Failed to save draft")


@booking_blueprint.route('/bookings/<int:booking_id>', methods=['GET'])
def get_booking(booking_id):
    try:
        booking = booking_service.get_booking(booking_id, actor_from_request())
        data = booking.to_dict()
        data["history"] = [log.to_dict() for log in status_history(booking_id)]
        return jsonify(data), 200
    except BookingError as e:
        return error_response(e)
    except Exception as e:
        return server_error(e, "Failed to fetch booking")


@booking_blueprint.route('/bookings/<int:booking_id>', methods=['PATCH'])
def update_booking(booking_id):
    try:
        booking = booking_service.update_booking(booking_id, json_body(), actor_from_request())
        return jsonify({"message": "Booking updated", "booking": booking.to_dict()}), 200
    except BookingError as e:
        return error_response(e)
    except Exception as e:
        return server_error(e, "Failed to update booking")


@booking_blueprint.route('/bookings/<int:booking_id>', methods=['DELETE'])
def delete_booking(booking_id):
    try:
        booking_service.delete_booking(booking_id, actor_from_request())
        return jsonify({"message": "Booking deleted", "booking_id": booking_id}), 200
    except BookingError as e:
        return error_response(e)
    except Exception as e:
        return server_error(e, "Failed to delete booking")


@booking_blueprint.route('/bookings/<int:booking_id>/submit', methods=['POST'])
def submit_draft(booking_id):
    try:
        data = json_body()
        booking = booking_service.submit_draft(
            booking_id,
            actor_from_request(),
            confirmation=PaymentConfirmation.from_payload(data.get("payment") or data),
            coupon_code=data.get("coupon_code"),
            context={
                "user_role": data.get("user_role"),
                "product_type": data.get("product_type"),
                "subscription_tier": data.get("subscription_tier"),
            },
        )
        return jsonify({"message": "Booking submitted", "booking": booking.to_dict()}), 200
    except BookingError as e:
        return error_response(e)
    except Exception as e:
        return server_error(e, "Failed to submit draft")


_ACTIONS = {
    "pause": booking_service.pause_booking,
    "resume": booking_service.resume_booking,
    "cancel": booking_service.cancel_booking,
    "reject": booking_service.reject_booking,
}


@booking_blueprint.route('/bookings/<int:booking_id>/<action>', methods=['POST'])
def change_status(booking_id, action):
    handler = _ACTIONS.get(action)
    if handler is None:
        return jsonify({"message": f"Unknown action '{action}'"}), 404
    try:
        booking = handler(booking_id, actor_from_request())
        return jsonify({"message": f"Booking {booking.status}", "booking": booking.to_dict()}), 200
    except BookingError as e:
        return error_response(e)
    except Exception as e:
        return server_error(e, f"Failed to {action} booking")


@booking_blueprint.route('/bookings/user/<int:owner_id>', methods=['GET'])
def list_user_bookings(owner_id):
    try:
        actor = actor_from_request()
        if actor.kind == OWNER and actor.id != owner_id:
            raise PermissionDeniedError("You can only list your own bookings")
        bookings = booking_service.list_bookings(owner_id, request.args.get('status'))
        return jsonify([b.to_dict() for b in bookings]), 200
    except BookingError as e:
        return error_response(e)
    except Exception as e:
        return server_error(e, "Failed to list bookings")
