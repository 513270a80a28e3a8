import uuid
from datetime import datetime, timezone
from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin

db = SQLAlchemy()


def _new_id():
    return uuid.uuid4().hex


def _utcnow():
    return datetime.now(timezone.utc)


class User(UserMixin, db.Model):
    __tablename__ = 'users'

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    username = db.Column(db.String(150), unique=True, nullable=False)
    password_hash = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=True)
    name = db.Column(db.String(150), nullable=False, default='User')
    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    habits = db.relationship('Habit', backref='user', lazy=True, cascade="all, delete-orphan")

    def to_dict(self):
        return {'id': self.id, 'username': self.username, 'name': self.name, 'email': self.email}


class Habit(db.Model):
    __tablename__ = 'habits'

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    user_id = db.Column(db.String(36), db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    is_good = db.Column(db.Boolean, nullable=False)
    start_date = db.Column(db.Date, nullable=False)  # habit is hidden on days before this
    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    completions = db.relationship('HabitCompletion', backref='habit', lazy=True, cascade="all, delete-orphan")

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'title': self.title,
            'description': self.description,
            'isGood': self.is_good,
            'startDate': self.start_date.isoformat(),
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
        }


class HabitCompletion(db.Model):
    __tablename__ = 'habit_completions'

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    habit_id = db.Column(db.String(36), db.ForeignKey('habits.id', ondelete='CASCADE'), nullable=False)
    date = db.Column(db.String(10), nullable=False, index=True)  # YYYY-MM-DD
    completed = db.Column(db.Boolean, nullable=False)
    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    __table_args__ = (db.UniqueConstraint('habit_id', 'date', name='_habit_date_uc'),)

    def to_dict(self):
        return {'habitId': self.habit_id, 'date': self.date, 'completed': self.completed}
