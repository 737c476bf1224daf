from flask import Flask, jsonify, g, request
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
from sqlalchemy.exc import SQLAlchemyError
import click
from flask.cli import with_appcontext
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
socketio = SocketIO(async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    allowed_origins = flask_app.config.get('CORS_ORIGINS') or []

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from flashbattle.auth import auth
    flask_app.register_blueprint(auth, url_prefix='/auth')

    from flashbattle.api import api
    flask_app.register_blueprint(api, url_prefix='/api')

    from flashbattle.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    from flashbattle.errors import ServiceError

    @flask_app.errorhandler(ServiceError)
    def handle_service_error(err):
        db.session.rollback()
        return jsonify(err.to_dict()), err.status

    @flask_app.errorhandler(SQLAlchemyError)
    def handle_db_error(err):
        db.session.rollback()
        flask_app.logger.exception(f"[http] path={request.path} persistence failure")
        return jsonify({'ok': False, 'error': 'server_error'}), 500

    @flask_app.errorhandler(500)
    def handle_internal_error(err):
        db.session.rollback()
        return jsonify({'ok': False, 'error': 'server_error'}), 500

    # Bearer tokens only; there are no cookie sessions
    from flashbattle.models import User
    from flashbattle.services import accounts

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, user_id)

    @login_manager.request_loader
    def load_user_from_request(req):
        header = req.headers.get('Authorization', '')
        if not header.startswith('Bearer ') or not header[7:].strip():
            g.auth_error = 'no_token'
            return None
        user = accounts.user_from_token(header[7:].strip())
        if user is None:
            g.auth_error = 'invalid_token'
        return user

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'ok': False, 'error': g.get('auth_error', 'no_token')}), 401

    @click.command('db-reset')
    @with_appcontext
    def db_reset_command():
        """Drops and recreates every table."""
        db.drop_all()
        db.create_all()
        click.echo('Database has been reset.')

    @click.command('list-rooms')
    @with_appcontext
    def list_rooms_command():
        """Lists every room with its host and bank count."""
        from flashbattle.services import rooms
        listed = rooms.list_rooms()
        if not listed:
            click.echo('No rooms.')
            return
        for idx, room in enumerate(listed, start=1):
            exam = room['activeExam']
            active = f" exam={exam['bankId']}x{exam['questionCount']}" if exam else ''
            click.echo(f"{idx}. {room['roomId']} host={room['hostId']} banks={room['bankCount']}{active}")

    @click.command('delete-room')
    @with_appcontext
    @click.argument('room_id')
    @click.option('--yes', is_flag=True, help='Skip the confirmation prompt.')
    def delete_room_command(room_id, yes):
        """Deletes a room together with its banks and active exam."""
        from flashbattle.services import rooms
        if not yes:
            click.confirm(f"Delete room {room_id} and all of its banks?", abort=True)
        deleted = rooms.purge_room(room_id)
        if not deleted:
            click.echo('Nothing to delete.')
            return
        click.echo(f"Deleted {deleted} rows.")

    @click.command('grant-root')
    @with_appcontext
    @click.argument('user_id')
    def grant_root_command(user_id):
        """Gives an existing account the root role."""
        try:
            accounts.set_role(user_id, 'root')
        except ServiceError as err:
            raise click.ClickException(err.code)
        click.echo(f"{user_id} is now root.")

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(list_rooms_command)
    flask_app.cli.add_command(delete_room_command)
    flask_app.cli.add_command(grant_root_command)

    return flask_app
