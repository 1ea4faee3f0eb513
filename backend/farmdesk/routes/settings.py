# Overview: Flask API routes for account settings; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify, request

from ..decorators import handle_service_errors, require_auth
from ..services import settings_service

settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("")
@require_auth
@handle_service_errors("get settings")
def get_settings():
    settings = settings_service.get_settings(g.account_id)
    return jsonify({"settings": settings.to_dict()}), 200


@settings_bp.put("")
@require_auth
@handle_service_errors("update settings")
def update_settings():
    settings = settings_service.update_settings(g.account_id, request.get_json(silent=True))
    return jsonify({"settings": settings.to_dict()}), 200
