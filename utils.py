from datetime import date, datetime, timedelta

DATE_FORMAT = '%Y-%m-%d'


def local_today():
    return date.today()


def format_date_key(value):
    if isinstance(value, datetime):
        value = value.date()
    return value.strftime(DATE_FORMAT)


def parse_date_key(value):
    # Strict YYYY-MM-DD; raises ValueError for anything else
    if not isinstance(value, str) or len(value) != 10:
        raise ValueError(f"Invalid date key: {value!r}")
    return datetime.strptime(value, DATE_FORMAT).date()


def parse_date_arg(value, default=None):
    if not value:
        return default
    try:
        return parse_date_key(value)
    except ValueError:
        return default


def day_navigation(selected, earliest_start=None, today=None):
    today = today or local_today()
    return {
        'previous': selected - timedelta(days=1),
        'next': selected + timedelta(days=1),
        'can_go_previous': earliest_start is None or selected > earliest_start,
        'can_go_next': selected < today,
        'is_today': selected == today,
    }


def format_streak(days):
    if not days:
        return "0 days"
    return f"{days} day" if days == 1 else f"{days} days"
