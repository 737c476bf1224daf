from flask import Blueprint, jsonify, request
from flask_login import login_required, current_user

from flashbattle.schemas import ExamResultRequest, LeaderboardQuery, parse_payload
from flashbattle.services import leaderboard, scoring

api = Blueprint('api', __name__)


@api.route('/leaderboard', methods=['GET'])
def get_leaderboard():
    query = parse_payload(LeaderboardQuery, request.args.to_dict())
    result = leaderboard.query(query.mode, query.page, query.page_size)
    return jsonify({'ok': True, **result})


@api.route('/history/me', methods=['GET'])
@login_required
def get_my_history():
    return jsonify({'ok': True, 'history': scoring.get_history(current_user.id)})


@api.route('/wrongbook/me', methods=['GET'])
@login_required
def get_my_wrongbook():
    wrong = scoring.get_wrong_questions(
        current_user.id, topic=request.args.get('topic'), tag=request.args.get('tag')
    )
    return jsonify({'ok': True, 'wrongQuestions': wrong})


@api.route('/exam_result', methods=['POST'])
def post_exam_result():
    body = parse_payload(ExamResultRequest, request.get_json(silent=True))
    scoring.submit_result(
        body.player_id,
        name=body.name,
        mode=body.mode,
        room_id=body.room_id,
        bank_id=body.bank_id,
        score=body.score,
        total=body.total,
        correct_count=body.correct_count,
        wrong_questions=body.wrong_questions,
    )
    return jsonify({'ok': True})
