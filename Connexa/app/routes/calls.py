from flask import Blueprint, jsonify

from Connexa.app.services import get_store
from Connexa.app.utils import require_session

calls_bp = Blueprint('calls', __name__)


@calls_bp.route('/<phone>', methods=['GET'])
@require_session
def call_history(phone, sock):
    return jsonify({"success": True, "calls": get_store().call_history(phone)})


@calls_bp.route('/make', methods=['POST'])
@require_session
def make_call(phone, sock):
    # The WhatsApp Web protocol only receives call offers
    return jsonify({
        "success": False,
        "message": "Making calls is not supported via WhatsApp Web API. "
                   "Calls can only be initiated from official WhatsApp clients.",
    })
