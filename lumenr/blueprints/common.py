"""Request/response helpers shared by the JSON blueprints."""
from flask import current_app, jsonify, request

from lumenr.exceptions import ValidationError


def ok(data, status_code=200):
    return jsonify({'status': 'ok', 'data': data}), status_code


def json_body():
    """Request body as a dict; anything else is a 400."""
    payload = request.get_json(silent=True)
    if payload is None and not request.get_data():
        return {}
    if not isinstance(payload, dict):
        raise ValidationError('Request body must be a JSON object')
    return payload


def page_args():
    """``limit``/``offset`` query args (services cap the limit)."""
    limit = request.args.get('limit', type=int)
    offset = request.args.get('offset', 0, type=int)
    return limit, offset


def business_info():
    config = current_app.config
    return {
        'name': config.get('BUSINESS_NAME', ''),
        'address': config.get('BUSINESS_ADDRESS', ''),
        'phone': config.get('BUSINESS_PHONE', ''),
        'email': config.get('BUSINESS_EMAIL', ''),
        'currency': config.get('CURRENCY', 'USD'),
        'valid_days': config.get('QUOTE_VALID_DAYS', 30),
    }
