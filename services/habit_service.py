from collections import defaultdict
from datetime import date, datetime

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from logging_config import get_logger
from models import db, Habit, HabitCompletion
from utils import format_date_key, local_today, parse_date_key

logger = get_logger(__name__)

MAX_TITLE_LENGTH = 200


class ValidationError(ValueError):
    pass


def clean_title(title):
    title = (title or '').strip()
    if not title:
        raise ValidationError('Title is required.')
    if len(title) > MAX_TITLE_LENGTH:
        raise ValidationError(f'Title must be at most {MAX_TITLE_LENGTH} characters.')
    return title


def clean_date_key(value):
    if isinstance(value, (date, datetime)):
        return format_date_key(value)
    try:
        return format_date_key(parse_date_key(value))
    except ValueError:
        raise ValidationError('Date must be formatted as YYYY-MM-DD.')


def clean_polarity(is_good):
    if not isinstance(is_good, bool):
        raise ValidationError('isGood must be true or false.')
    return is_good


def _clean_description(description):
    description = (description or '').strip()
    return description or None


def create_habit(user_id, title, description=None, is_good=True, start_date=None, habit_id=None):
    start = parse_date_key(clean_date_key(start_date)) if start_date else local_today()
    habit = Habit(
        user_id=user_id,
        title=clean_title(title),
        description=_clean_description(description),
        is_good=clean_polarity(is_good),
        start_date=start,
    )
    if habit_id:
        habit.id = habit_id
    db.session.add(habit)
    db.session.commit()
    logger.info("Habit created", extra={'habit_id': habit.id, 'user_id': user_id})
    return habit


def get_habit(habit_id):
    return db.session.get(Habit, habit_id)


def get_user_habits(user_id):
    return Habit.query.filter_by(user_id=user_id).order_by(Habit.created_at).all()


def update_habit(habit_id, title=None, description=None):
    # start_date is fixed at creation
    habit = get_habit(habit_id)
    if habit is None:
        return None
    if title is not None:
        habit.title = clean_title(title)
    if description is not None:
        habit.description = _clean_description(description)
    db.session.commit()
    return habit


def delete_habit(habit_id):
    habit = get_habit(habit_id)
    if habit is None:
        return False
    db.session.delete(habit)
    db.session.commit()
    logger.info("Habit deleted", extra={'habit_id': habit_id})
    return True


def _find_completion(habit_id, date_key):
    return HabitCompletion.query.filter_by(habit_id=habit_id, date=date_key).first()


def _check_tracked_day(habit_id, date_key):
    habit = get_habit(habit_id)
    if habit is None:
        raise ValidationError('Unknown habit.')
    day = parse_date_key(date_key)
    if day < habit.start_date:
        raise ValidationError(f'{date_key} is before the habit\'s start date.')
    if day > local_today():
        raise ValidationError('Future days cannot be marked.')


def set_completion(habit_id, date_value, completed):
    """Insert or update the single completion row for (habit, date)."""
    date_key = clean_date_key(date_value)
    completed = bool(completed)
    _check_tracked_day(habit_id, date_key)

    existing = _find_completion(habit_id, date_key)
    if existing:
        existing.completed = completed
        db.session.commit()
        return existing

    completion = HabitCompletion(habit_id=habit_id, date=date_key, completed=completed)
    db.session.add(completion)
    try:
        db.session.commit()
    except IntegrityError:
        # Lost a race with a concurrent insert for the same key
        db.session.rollback()
        completion = _find_completion(habit_id, date_key)
        completion.completed = completed
        db.session.commit()
    return completion


def get_habit_completions(habit_id):
    return HabitCompletion.query.filter_by(habit_id=habit_id).order_by(HabitCompletion.date).all()


def get_user_completions(user_id):
    return (HabitCompletion.query.join(Habit)
            .filter(Habit.user_id == user_id)
            .order_by(HabitCompletion.date).all())


def get_user_completions_for_date(user_id, date_value):
    date_key = clean_date_key(date_value)
    rows = (db.session.query(HabitCompletion, Habit.title)
            .join(Habit, Habit.id == HabitCompletion.habit_id)
            .filter(Habit.user_id == user_id, HabitCompletion.date == date_key)
            .all())
    return [dict(c.to_dict(), habitTitle=title) for c, title in rows]


def delete_completion(habit_id, date_value):
    date_key = clean_date_key(date_value)
    deleted = HabitCompletion.query.filter_by(habit_id=habit_id, date=date_key).delete()
    db.session.commit()
    return deleted > 0


def get_habits_with_completions(user_id):
    habits = get_user_habits(user_id)
    if not habits:
        return []

    completions = HabitCompletion.query.filter(
        HabitCompletion.habit_id.in_([h.id for h in habits])
    ).all()
    by_habit = defaultdict(list)
    for c in completions:
        by_habit[c.habit_id].append(c)

    return [(h, by_habit[h.id]) for h in habits]


def completion_map(completions):
    return {c.date: c.completed for c in completions}


def to_local_format(habits_with_completions):
    return [{
        'id': habit.id,
        'title': habit.title,
        'description': habit.description or '',
        'isGood': habit.is_good,
        'startDate': habit.start_date.isoformat(),
        'completions': completion_map(completions),
    } for habit, completions in habits_with_completions]


def import_local_habits(user_id, local_habits):
    """Copy habits exported from a device cache into the database.

    Habit ids are kept so devices holding the old cache keep pointing at the
    same habits. A habit that fails to import is logged and skipped, and so
    is a completion dated outside the habit's tracked days.
    """
    imported = 0
    for local in local_habits:
        title = local.get('title')
        try:
            habit = create_habit(
                user_id,
                title,
                description=local.get('description'),
                is_good=local.get('isGood', True),
                start_date=(local.get('startDate') or '')[:10] or None,
                habit_id=local.get('id'),
            )
            _import_completions(habit, local.get('completions') or {})
        except (ValidationError, SQLAlchemyError):
            db.session.rollback()
            logger.exception("Failed to import habit", extra={'title': title})
            continue
        imported += 1
        logger.info("Imported habit", extra={'title': title, 'completions': len(local.get('completions') or {})})
    return imported


def _import_completions(habit, completions):
    for date_key, completed in completions.items():
        try:
            set_completion(habit.id, date_key, completed)
        except ValidationError as e:
            logger.warning("Skipping imported completion", extra={'habit_id': habit.id, 'date': date_key, 'error': str(e)})
