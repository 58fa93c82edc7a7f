from flask import Blueprint, jsonify
from flask_login import current_user
from services.generation_service import generation_service
from utils import login_required_api

generation_api_bp = Blueprint('generation_api', __name__)


@generation_api_bp.route('/stats', methods=['GET'])
@login_required_api
def get_generation_stats():
    """Today's AI generation usage for the current tutor"""
    return jsonify(generation_service.get_stats(current_user))
