import pytest

from client.cache import HabitsCache

HABITS = [{'id': 'h1', 'title': 'Read', 'isGood': True, 'startDate': '2026-10-01', 'completions': {}}]


class Clock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def cache(tmp_path, clock):
    return HabitsCache(tmp_path / 'cache' / 'habits.json', max_age=3600, clock=clock)


def test_missing_file(cache):
    assert cache.load('u1') == []


def test_save_and_load(cache):
    assert cache.save('u1', HABITS) is True
    assert cache.load('u1') == HABITS


def test_other_user_gets_nothing(cache):
    cache.save('u1', HABITS)
    assert cache.load('u2') == []
    assert cache.load(None) == []


def test_expired_entries_are_ignored(cache, clock):
    cache.save('u1', HABITS)
    clock.now += 3599
    assert cache.load('u1') == HABITS
    clock.now += 2
    assert cache.load('u1') == []


def test_corrupt_file_is_ignored(cache):
    cache.path.parent.mkdir(parents=True)
    cache.path.write_text('{not json', encoding='utf-8')
    assert cache.load('u1') == []


def test_nothing_saved_without_user_or_habits(cache):
    assert cache.save(None, HABITS) is False
    assert cache.save('u1', []) is False
    assert not cache.path.exists()


def test_clear(cache):
    cache.save('u1', HABITS)
    cache.clear()
    assert not cache.path.exists()
    cache.clear()
