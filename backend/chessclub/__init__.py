from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
socketio = SocketIO(async_mode=None)


def create_app(config_class=Config, notifier=None):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    origins = flask_app.config.get('CORS_ORIGINS') or []
    CORS(flask_app, supports_credentials=True, origins=origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=origins)

    # Domain services, one instance per app, sharing a single notifier
    from chessclub.services import ClubServices
    from chessclub.services.ledger import GameLedger
    from chessclub.services.notifier import SocketIONotifier
    from chessclub.services.players import PlayerStore

    if notifier is None:
        notifier = SocketIONotifier(socketio)
    ledger = GameLedger(notifier, k_factor=flask_app.config.get('ELO_K_FACTOR', 20))
    players = PlayerStore(notifier, ledger, default_rating=flask_app.config.get('DEFAULT_INITIAL_RATING', 1200))
    flask_app.extensions['chessclub'] = ClubServices(notifier, ledger, players)

    # Import and register blueprints here
    from chessclub.main import main
    flask_app.register_blueprint(main)

    from chessclub.api.auth import auth
    flask_app.register_blueprint(auth, url_prefix='/api/auth')

    from chessclub.api.players import players_api
    flask_app.register_blueprint(players_api, url_prefix='/api/players')

    from chessclub.api.games import games
    flask_app.register_blueprint(games, url_prefix='/api/games')

    from chessclub.errors import ClubError

    @flask_app.errorhandler(ClubError)
    def handle_club_error(exc):
        return jsonify(exc.to_dict()), exc.status_code

    from chessclub.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    # Flask-Login user loader
    from chessclub.models import Player

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(Player, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'success': False, 'error': 'unauthorized', 'message': 'Unauthorized access'}), 401

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database with an admin player."""
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            admin = players.create(
                flask_app.config['ADMIN_NAME'],
                flask_app.config['ADMIN_PIN'],
                is_admin=True,
            )
            print(f"Database has been reset and seeded! Admin player: {admin.name}")

    @click.command('reconcile-ratings')
    @click.option('--dry-run', is_flag=True, help='Report drift without fixing it.')
    def reconcile_ratings_command(dry_run):
        """Recompute every rating from initial rating plus verified games."""
        with flask_app.app_context():
            drifted = ledger.reconcile_ratings(dry_run=dry_run)
            if not drifted:
                print('All ratings match their verified games.')
            for row in drifted:
                verb = 'would change' if dry_run else 'changed'
                print(f"{row['name']} (#{row['player_id']}): {verb} {row['current_rating']} -> {row['expected_rating']}")

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(reconcile_ratings_command)

    return flask_app
