from flask import request, jsonify, abort, current_app
from flask_login import login_required, login_user, current_user
from . import api_bp
from .auth import authenticate
from extensions import csrf
from services import habit_service
from services.habit_service import ValidationError
from services.streaks import with_streaks

csrf.exempt(api_bp)


@api_bp.errorhandler(ValidationError)
def handle_validation_error(error):
    return jsonify({'error': str(error)}), 400


@api_bp.errorhandler(400)
def handle_bad_request(error):
    return jsonify({'error': 'BAD_REQUEST'}), 400


@api_bp.errorhandler(403)
def handle_forbidden(error):
    return jsonify({'error': 'FORBIDDEN'}), 403


@api_bp.errorhandler(404)
def handle_not_found(error):
    return jsonify({'error': 'NOT_FOUND'}), 404


def owned_habit_or_abort(habit_id):
    habit = habit_service.get_habit(habit_id)
    if not habit:
        abort(404)
    if habit.user_id != current_user.id:
        abort(403)
    return habit


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        abort(400)
    return data


@api_bp.route('/login', methods=['POST'])
def api_login():
    data = request.get_json(silent=True) or {}
    user = authenticate(data.get('username'), data.get('password'))
    if not user:
        return jsonify({'error': 'Invalid username or password'}), 401
    login_user(user)
    return jsonify({'status': 'success', 'user': user.to_dict()})


@api_bp.route('/habits', methods=['GET'])
@login_required
def list_habits():
    return jsonify([
        dict(habit.to_dict(), completions=habit_service.completion_map(completions))
        for habit, completions in habit_service.get_habits_with_completions(current_user.id)
    ])


@api_bp.route('/habits', methods=['POST'])
@login_required
def create_habit():
    data = _json_body()
    habit = habit_service.create_habit(
        current_user.id,
        data.get('title'),
        description=data.get('description'),
        is_good=data.get('isGood', True),
        start_date=data.get('startDate'),
    )
    return jsonify(habit.to_dict()), 201


@api_bp.route('/habits/<habit_id>', methods=['PATCH'])
@login_required
def update_habit(habit_id):
    owned_habit_or_abort(habit_id)
    data = _json_body()
    habit = habit_service.update_habit(habit_id, title=data.get('title'), description=data.get('description'))
    return jsonify(habit.to_dict())


@api_bp.route('/habits/<habit_id>', methods=['DELETE'])
@login_required
def delete_habit(habit_id):
    owned_habit_or_abort(habit_id)
    habit_service.delete_habit(habit_id)
    return jsonify({'status': 'success', 'id': habit_id})


@api_bp.route('/habits/<habit_id>/completions', methods=['GET'])
@login_required
def habit_completions(habit_id):
    owned_habit_or_abort(habit_id)
    return jsonify([c.to_dict() for c in habit_service.get_habit_completions(habit_id)])


@api_bp.route('/habits/<habit_id>/completions/<date_key>', methods=['PUT'])
@login_required
def set_completion(habit_id, date_key):
    owned_habit_or_abort(habit_id)
    completed = _json_body().get('completed')
    if not isinstance(completed, bool):
        raise ValidationError('completed must be true or false.')
    completion = habit_service.set_completion(habit_id, date_key, completed)
    return jsonify(completion.to_dict())


@api_bp.route('/habits/<habit_id>/completions/<date_key>', methods=['DELETE'])
@login_required
def delete_completion(habit_id, date_key):
    owned_habit_or_abort(habit_id)
    deleted = habit_service.delete_completion(habit_id, date_key)
    return jsonify({'status': 'success', 'deleted': deleted})


@api_bp.route('/completions', methods=['GET'])
@login_required
def user_completions():
    date_key = request.args.get('date')
    if date_key:
        return jsonify(habit_service.get_user_completions_for_date(current_user.id, date_key))
    return jsonify([c.to_dict() for c in habit_service.get_user_completions(current_user.id)])


@api_bp.route('/streaks', methods=['GET'])
@login_required
def streaks():
    strict = current_app.config.get('STREAKS_STRICT_DATES', True)
    return jsonify([
        with_streaks(habit, completions, strict=strict)
        for habit, completions in habit_service.get_habits_with_completions(current_user.id)
    ])
