import json

import click
from flask import Flask, request, jsonify, redirect, url_for
from flask.cli import with_appcontext
from config import Config
from extensions import csrf, login_manager, migrate
from logging_config import setup_logging, get_logger
from models import db, User
from routes import main_bp, api_bp, auth_bp
from services import habit_service
from utils import format_streak

logger = get_logger(__name__)


@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, user_id)


@login_manager.unauthorized_handler
def unauthorized():
    if request.blueprint == 'api':
        return jsonify({'error': 'UNAUTHORIZED'}), 401
    return redirect(url_for('auth.login', next=request.path))


@click.command('init-db')
@with_appcontext
def init_db_command():
    """Create all tables without running migrations."""
    db.create_all()
    click.echo('Database initialized.')


@click.command('import-habits')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.option('--user', 'username', required=True, help='Owner of the imported habits.')
@with_appcontext
def import_habits_command(path, username):
    """Import habits exported from a device cache (JSON list)."""
    user = User.query.filter_by(username=username).first()
    if not user:
        raise click.ClickException(f"Unknown user '{username}'")

    with open(path, encoding='utf-8') as f:
        payload = json.load(f)
    local_habits = payload.get('habits', []) if isinstance(payload, dict) else payload

    imported = habit_service.import_local_habits(user.id, local_habits)
    click.echo(f'Imported {imported} of {len(local_habits)} habits.')


def create_app(overrides=None):
    app = Flask(__name__)
    app.config.from_mapping(Config().as_dict())
    if overrides:
        app.config.from_mapping(overrides)

    setup_logging(app.config)

    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)
    login_manager.init_app(app)

    app.register_blueprint(auth_bp)
    app.register_blueprint(main_bp)
    app.register_blueprint(api_bp, url_prefix='/api')

    app.add_template_filter(format_streak, 'format_streak')
    app.cli.add_command(init_db_command)
    app.cli.add_command(import_habits_command)

    logger.info("App created", extra={'dev_mode': app.config['DEV_MODE']})
    return app


app = create_app()

if __name__ == '__main__':
    app.run(debug=True)
