import json
import time
from pathlib import Path

from logging_config import get_logger

logger = get_logger(__name__)

CACHE_DURATION = 60 * 60 * 24  # seconds


class HabitsCache:
    """Last known habits for one user, kept on disk between sessions.

    Used to show something immediately while the server list loads. Entries
    older than ``max_age`` or written for another user are ignored.
    """

    def __init__(self, path, max_age=CACHE_DURATION, clock=time.time):
        self.path = Path(path)
        self.max_age = max_age
        self._clock = clock

    def load(self, user_id):
        if not user_id or not self.path.exists():
            return []
        try:
            with self.path.open(encoding='utf-8') as f:
                cached = json.load(f)
            habits = cached['habits']
            timestamp = float(cached['timestamp'])
            owner = cached.get('userId')
        except (OSError, ValueError, KeyError, TypeError):
            logger.warning("Ignoring unreadable habits cache", extra={'cache_path': str(self.path)})
            return []

        if self._clock() - timestamp > self.max_age or owner != user_id:
            return []
        return habits

    def save(self, user_id, habits):
        if not user_id or not habits:
            return False
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {'habits': habits, 'timestamp': self._clock(), 'userId': user_id}
        tmp = self.path.with_suffix(self.path.suffix + '.tmp')
        with tmp.open('w', encoding='utf-8') as f:
            json.dump(data, f)
        tmp.replace(self.path)
        return True

    def clear(self):
        self.path.unlink(missing_ok=True)
