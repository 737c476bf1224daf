from flask import Blueprint, request, jsonify
from flask_login import login_required, current_user

from flashbattle.schemas import CredentialsRequest, RegisterRequest, parse_payload
from flashbattle.services import accounts, scoring

auth = Blueprint('auth', __name__)

@auth.route('/register', methods=['POST'])
def register():
    body = parse_payload(RegisterRequest, request.get_json(silent=True))
    user = accounts.register(body.user_id, body.password, body.name)
    return jsonify({'ok': True, 'token': accounts.issue_token(user), 'user': user.to_dict()}), 201

@auth.route('/login', methods=['POST'])
def login():
    body = parse_payload(CredentialsRequest, request.get_json(silent=True))
    user = accounts.authenticate(body.user_id, body.password)
    return jsonify({'ok': True, 'token': accounts.issue_token(user), 'user': user.to_dict()})

@auth.route('/me', methods=['GET'])
@login_required
def me():
    return jsonify({'ok': True, 'user': current_user.to_dict(), 'stats': scoring.get_stats(current_user.id)})
