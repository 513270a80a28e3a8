import os
from dotenv import load_dotenv

load_dotenv()

DEFAULT_SECRET = 'dev_key_change_in_prod'


def _env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {'1', 'true', 'yes', 'on'}


class Config:
    def __init__(self):
        self.SECRET_KEY = os.environ.get('SECRET_KEY', DEFAULT_SECRET)
        self.SQLALCHEMY_DATABASE_URI = os.environ.get('SQLALCHEMY_DATABASE_URI', 'sqlite:///db.sqlite3')
        self.SQLALCHEMY_TRACK_MODIFICATIONS = False
        self.DEV_MODE = _env_bool('DEV_MODE', default=True)
        # Malformed completion dates raise in development and are skipped in production
        self.STREAKS_STRICT_DATES = _env_bool('STREAKS_STRICT_DATES', default=self.DEV_MODE)
        self.LOG_DIR = os.environ.get('LOG_DIR')
        self.LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

        if not self.DEV_MODE and self.SECRET_KEY == DEFAULT_SECRET:
            raise ValueError('SECRET_KEY must be set when DEV_MODE is off.')

    def as_dict(self):
        return {key: value for key, value in vars(self).items() if key.isupper()}
