from flask import render_template, request, redirect, url_for, abort, flash, current_app
from flask_login import login_required, current_user
from . import main_bp
from models import db, Habit
from services import habit_service
from services.habit_service import ValidationError
from services.streaks import is_success, toggled_value, with_streaks
from utils import local_today, parse_date_arg, format_date_key, day_navigation


def _owned_habit(habit_id):
    habit = db.session.get(Habit, habit_id)
    if not habit:
        abort(404)
    if habit.user_id != current_user.id:
        abort(403)
    return habit


@main_bp.route('/')
@login_required
def index():
    today = local_today()
    selected = parse_date_arg(request.args.get('date'), default=today)
    # Future days cannot be marked
    selected = min(selected, today)
    date_key = format_date_key(selected)

    habits_data = []
    earliest = None
    for habit, completions in habit_service.get_habits_with_completions(current_user.id):
        if earliest is None or habit.start_date < earliest:
            earliest = habit.start_date
        if habit.start_date > selected:
            continue
        value = habit_service.completion_map(completions).get(date_key)
        habits_data.append({
            'habit': habit,
            'is_done': is_success(value, habit.is_good),
        })

    return render_template('index.html',
                           habits=habits_data,
                           selected=selected,
                           date_key=date_key,
                           confirm_delete=request.args.get('confirm_delete'),
                           nav=day_navigation(selected, earliest, today))


@main_bp.route('/habits/add', methods=['POST'])
@login_required
def add_habit():
    try:
        habit_service.create_habit(
            current_user.id,
            request.form.get('title'),
            description=request.form.get('description'),
            is_good=request.form.get('polarity', 'good') != 'bad',
            start_date=request.form.get('start_date') or None,
        )
    except ValidationError as e:
        flash(str(e), 'error')
    return redirect(url_for('main.index', date=request.form.get('return_date')))


@main_bp.route('/habits/<habit_id>/toggle', methods=['POST'])
@login_required
def toggle_habit(habit_id):
    habit = _owned_habit(habit_id)
    target = parse_date_arg(request.args.get('date'), default=local_today())
    date_key = format_date_key(target)

    existing = habit_service.completion_map(
        c for c in habit.completions if c.date == date_key
    ).get(date_key)
    try:
        habit_service.set_completion(habit.id, date_key, toggled_value(existing, habit.is_good))
    except ValidationError as e:
        flash(str(e), 'error')
    return redirect(url_for('main.index', date=date_key))


@main_bp.route('/habits/<habit_id>/delete', methods=['POST'])
@login_required
def delete_habit(habit_id):
    habit = _owned_habit(habit_id)
    return_date = request.form.get('return_date') or None
    if request.form.get('confirm') != 'yes':
        # First click only asks for confirmation
        return redirect(url_for('main.index', date=return_date, confirm_delete=habit.id))
    title = habit.title
    habit_service.delete_habit(habit.id)
    flash(f"Deleted '{title}'.", 'info')
    return redirect(url_for('main.index', date=return_date))


@main_bp.route('/streaks')
@login_required
def streaks():
    strict = current_app.config.get('STREAKS_STRICT_DATES', True)
    habits = [
        with_streaks(habit, completions, strict=strict)
        for habit, completions in habit_service.get_habits_with_completions(current_user.id)
    ]
    return render_template('streaks.html', habits=habits)
