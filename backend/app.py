import os
import logging

import click
from flask import Flask, request, jsonify, send_from_directory
from sqlalchemy import text

# Import configuration with proper instantiation
from config import config, get_config_name, validate_config

# Import database and models
from models import db, User, Project
from middleware.auth import init_auth
from middleware.cors import setup_cors
from middleware.errors import register_error_handlers
from routes import register_blueprints
from services.realtime import socketio
# Handlers must be registered before init_app so every new server gets them
import routes.socket_events  # noqa: F401
from services.permit_alerts import check_expiring_permits, start_permit_checks

logger = logging.getLogger(__name__)

APP_NAME = 'Blueprint Marketplace API'


def configure_logging(app, config_name):
    """Timestamped stream logging in production, DEBUG in debug, LOG_LEVEL otherwise"""
    if not app.debug and config_name == 'production':
        logging.basicConfig(level=logging.INFO)
        app.logger.setLevel(logging.INFO)
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
        ))
        app.logger.addHandler(handler)
        app.logger.info("Production logging configured")
    elif app.debug:
        logging.basicConfig(level=logging.DEBUG)
        app.logger.setLevel(logging.DEBUG)
        app.logger.info("Debug logging enabled")
    else:
        level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
        logging.basicConfig(level=level)
        app.logger.setLevel(level)


def seed_demo_data():
    """Demo contractor with one project open for bidding. Safe to run twice."""
    contractor = User.query.filter_by(email='contractor@example.com').first()
    if contractor is None:
        contractor = User(
            email='contractor@example.com',
            role='contractor',
            first_name='Demo',
            last_name='Contractor',
            language='en'
        )
        contractor.set_password('Contractor123')
        db.session.add(contractor)
        db.session.flush()

    if contractor.contracted_projects.count() == 0:
        db.session.add(Project(
            title='Kitchen renovation',
            description='Full kitchen remodel including cabinets, counters and plumbing.',
            budget=45000,
            location='Montreal, QC',
            status='bidding',
            milestones=[{'name': 'Demolition'}, {'name': 'Rough-in'}, {'name': 'Finishing'}],
            contractor_id=contractor.id
        ))

    db.session.commit()
    return contractor


def register_cli(app):
    @app.cli.command('init-db')
    @click.option('--seed', is_flag=True, help='Insert a demo contractor and project.')
    def init_db_command(seed):
        """Create all tables (and optionally seed demo data)."""
        db.create_all()
        click.echo('Database tables created.')
        if seed:
            contractor = seed_demo_data()
            click.echo(f'Seeded demo data (contractor: {contractor.email}).')

    @app.cli.command('check-permits')
    def check_permits_command():
        """Send license_expiry_alert for permits expiring soon."""
        projects = check_expiring_permits()
        click.echo(f'Sent {len(projects)} permit expiry alert(s).')


def create_app(config_name=None, config_overrides=None):
    """
    Application factory.

    Args:
        config_name: 'development', 'production' or 'testing' (auto-detected when None)
        config_overrides: dict applied on top of the configuration class
    """
    if config_name is None:
        config_name = get_config_name()

    app = Flask(__name__)

    try:
        config_class = config[config_name]
        config_instance = config_class()  # Create instance to resolve database URL
        app.config.from_object(config_instance)
        if config_overrides:
            app.config.update(config_overrides)
    except Exception as config_error:
        app.logger.error(f"Configuration loading failed: {config_error}")
        raise

    configure_logging(app, config_name)
    app.logger.info(f"Configuration loaded for {config_name} environment")

    config_valid, config_message = validate_config()
    if not config_valid:
        app.logger.warning(config_message)

    db_uri = app.config.get('SQLALCHEMY_DATABASE_URI', '')
    app.logger.info(f"Using database: {db_uri.split('://')[0] if '://' in db_uri else 'unknown'}")

    try:
        os.makedirs(app.instance_path, exist_ok=True)
        os.makedirs(app.config['UPLOAD_FOLDER'], exist_ok=True)
    except OSError as e:
        app.logger.warning(f"Could not create directories: {e}")

    db.init_app(app)
    setup_cors(app)
    init_auth(app)

    cors_origins = app.config.get('CORS_ORIGINS', [])
    socketio.init_app(
        app,
        cors_allowed_origins='*' if '*' in cors_origins else cors_origins,
        async_mode=app.config.get('SOCKETIO_ASYNC_MODE')
    )

    registered_blueprints = register_blueprints(app)
    register_error_handlers(app)
    register_cli(app)

    @app.route('/uploads/<path:filename>')
    def uploaded_file(filename):
        return send_from_directory(app.config['UPLOAD_FOLDER'], filename)

    @app.route('/')
    def index():
        """API information"""
        return jsonify({
            'message': APP_NAME,
            'status': 'running',
            'version': '1.0.0',
            'environment': config_name,
            'endpoints': {
                'health': '/api/health',
                'auth': '/api/auth',
                'projects': '/api/projects',
                'bids': '/api/bids',
                'tasks': '/api/tasks',
                'materials': '/api/materials',
                'messages': '/api/messages',
                'disputes': '/api/disputes',
                'erp': '/api/erp'
            },
            'blueprints': registered_blueprints,
            'documentation': {
                'health_check': f"{request.host_url}api/health"
            }
        })

    with app.app_context():
        try:
            db.session.execute(text('SELECT 1'))
            db.create_all()
            app.logger.info("Database tables created/verified successfully")
        except Exception as db_error:
            app.logger.error(f"Database initialization error: {db_error}")
            if config_name == 'production':
                app.logger.error("Production database error - app will start but may not function properly")
            else:
                raise

    total_routes = len(list(app.url_map.iter_rules()))
    app.logger.info(f"{APP_NAME} created: {config_name}, {total_routes} routes, "
                    f"{len(registered_blueprints)} blueprints")

    return app


if __name__ == '__main__':
    local_app = create_app()
    start_permit_checks(local_app)
    port = int(os.environ.get('PORT', 5000))
    socketio.run(
        local_app,
        host='0.0.0.0',
        port=port,
        debug=local_app.config.get('DEBUG', False),
        allow_unsafe_werkzeug=local_app.config.get('DEBUG', False)
    )
