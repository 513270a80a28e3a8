from flask import render_template, redirect, url_for, request, flash
from werkzeug.security import generate_password_hash, check_password_hash
from flask_login import login_user, logout_user, login_required
from . import auth_bp
from logging_config import get_logger
from models import db, User

logger = get_logger(__name__)


def authenticate(username, password):
    user = User.query.filter_by(username=username).first()
    if user and password and check_password_hash(user.password_hash, password):
        return user
    return None


@auth_bp.route('/login', methods=['GET', 'POST'])
def login():
    if request.method == 'POST':
        user = authenticate(request.form.get('username'), request.form.get('password'))
        if user:
            login_user(user)
            return redirect(url_for('main.index'))
        flash('Invalid username or password', 'error')
    return render_template('login.html')


@auth_bp.route('/signup', methods=['GET', 'POST'])
def signup():
    if request.method == 'POST':
        username = (request.form.get('username') or '').strip()
        password = request.form.get('password')
        if not username or not password:
            flash('Username and password are required', 'error')
        elif User.query.filter_by(username=username).first():
            flash('Username already exists', 'error')
        else:
            new_user = User(
                username=username,
                name=request.form.get('name') or username,
                password_hash=generate_password_hash(password, method='scrypt'),
            )
            db.session.add(new_user)
            db.session.commit()
            logger.info("User signed up", extra={'user_id': new_user.id})
            login_user(new_user)
            return redirect(url_for('main.index'))
    return render_template('signup.html')


@auth_bp.route('/logout')
@login_required
def logout():
    logout_user()
    return redirect(url_for('auth.login'))
