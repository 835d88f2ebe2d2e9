from flask import Blueprint, jsonify

from services import coupon_service
from services.coupon_service import CouponContext
from utils.common import actor_from_request, require_admin, json_body, error_response, server_error
from utils.errors import BookingError, ValidationError

coupon_blueprint = Blueprint('coupons', __name__)


@coupon_blueprint.route('/coupons/validate', methods=['POST'])
def validate_coupon():
    """
    Body: { code, amount, resource_ids?, user_role?, product_type?, subscription_tier? }
    Coupon failures come back as 200 with valid=false and a reason.
    """
    try:
        actor = actor_from_request()
        data = json_body()
        if not data.get('code'):
            raise ValidationError("code is required")
        if data.get('amount') is None:
            raise ValidationError("amount is required")

        context = CouponContext(
            user_id=actor.id if actor.id is not None else data.get('user_id'),
            amount=data.get('amount'),
            user_role=data.get('user_role'),
            resource_ids=data.get('resource_ids'),
            product_type=data.get('product_type'),
            subscription_tier=data.get('subscription_tier'),
        )
        result = coupon_service.validate_coupon(data['code'], context)
        return jsonify(result.to_dict()), 200
    except BookingError as e:
        return error_response(e)
    except Exception as e:
        return server_error(e, "Failed to validate coupon")


@coupon_blueprint.route('/coupons', methods=['POST'])
def create_coupon():
    try:
        require_admin()
        coupon = coupon_service.create_coupon(json_body())
        return jsonify(coupon.to_dict()), 201
    except BookingError as e:
        return error_response(e)
    except Exception as e:
        return server_error(e, "Failed to create coupon")


@coupon_blueprint.route('/coupons/<int:coupon_id>/deactivate', methods=['POST'])
def deactivate_coupon(coupon_id):
    try:
        require_admin()
        coupon = coupon_service.deactivate_coupon(coupon_id)
        return jsonify(coupon.to_dict()), 200
    except BookingError as e:
        return error_response(e)
    except Exception as e:
        return server_error(e, "Failed to deactivate coupon")
