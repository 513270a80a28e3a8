import asyncio
import os
from abc import ABC, abstractmethod

import requests

from logging_config import get_logger
from utils import format_date_key

logger = get_logger(__name__)

DEFAULT_TIMEOUT = float(os.environ.get('TRACKR_REQUEST_TIMEOUT', 10))


class PersistenceError(Exception):
    """The server rejected a request or could not be reached."""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class HabitGateway(ABC):
    """Asynchronous persistence collaborator used by the sync coordinator.

    Every method returns the server's representation as plain dicts using
    the JSON API field names (``id``, ``isGood``, ``startDate`` ...).
    """

    @abstractmethod
    async def create_habit(self, title, description, is_good, start_date):
        ...

    @abstractmethod
    async def update_habit(self, habit_id, title=None, description=None):
        ...

    @abstractmethod
    async def set_completion(self, habit_id, date_key, completed):
        ...

    @abstractmethod
    async def delete_habit(self, habit_id):
        ...

    @abstractmethod
    async def get_habits_with_completions(self):
        ...


class HttpHabitGateway(HabitGateway):
    """Talks to the JSON API with a cookie-holding ``requests.Session``.

    ``requests`` is blocking, so each call runs in a worker thread and the
    event loop stays free for further user actions.
    """

    def __init__(self, base_url, session=None, timeout=DEFAULT_TIMEOUT):
        self.base_url = base_url.rstrip('/')
        self.session = session or requests.Session()
        self.timeout = timeout

    def _request(self, method, path, payload=None):
        url = f"{self.base_url}/api{path}"
        try:
            response = self.session.request(method, url, json=payload, timeout=self.timeout)
        except requests.Timeout as e:
            raise PersistenceError(f"Request timed out: {method} {path}") from e
        except requests.RequestException as e:
            raise PersistenceError(f"Could not reach server: {e}") from e

        if not response.ok:
            try:
                detail = response.json().get('error', response.reason)
            except ValueError:
                detail = response.reason
            logger.warning("Request failed", extra={'method': method, 'path': path, 'status': response.status_code})
            raise PersistenceError(f"{method} {path} failed: {detail}", status_code=response.status_code)
        try:
            return response.json()
        except ValueError as e:
            raise PersistenceError(f"{method} {path} returned an unreadable body",
                                   status_code=response.status_code) from e

    async def _call(self, method, path, payload=None):
        return await asyncio.to_thread(self._request, method, path, payload)

    async def login(self, username, password):
        data = await self._call('POST', '/login', {'username': username, 'password': password})
        return data['user']

    async def create_habit(self, title, description, is_good, start_date):
        return await self._call('POST', '/habits', {
            'title': title,
            'description': description,
            'isGood': is_good,
            'startDate': format_date_key(start_date),
        })

    async def update_habit(self, habit_id, title=None, description=None):
        payload = {k: v for k, v in (('title', title), ('description', description)) if v is not None}
        return await self._call('PATCH', f'/habits/{habit_id}', payload)

    async def set_completion(self, habit_id, date_key, completed):
        return await self._call('PUT', f'/habits/{habit_id}/completions/{date_key}', {'completed': completed})

    async def delete_habit(self, habit_id):
        return await self._call('DELETE', f'/habits/{habit_id}')

    async def get_habits_with_completions(self):
        return await self._call('GET', '/habits')

    async def get_streaks(self):
        return await self._call('GET', '/streaks')
