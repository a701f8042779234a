from flask import Blueprint, jsonify, current_app
from sqlalchemy import text
from datetime import datetime
from models import db
import os

health_bp = Blueprint('health', __name__)

APP_NAME = 'Blueprint Marketplace API'
CRITICAL_BLUEPRINTS = ['auth', 'projects', 'bids', 'tasks']


@health_bp.route('/health', methods=['GET'])
def health_check():
    """
    Health check endpoint: database connectivity, configuration and
    application state (registered blueprints, routes).
    """
    health_status = {
        'status': 'healthy',
        'app': APP_NAME,
        'version': '1.0.0',
        'timestamp': datetime.utcnow().isoformat() + 'Z',
        'checks': {}
    }

    overall_healthy = True
    status_code = 200

    # Database connection
    try:
        db.session.execute(text('SELECT 1'))
        db.session.commit()

        db_url = current_app.config.get('SQLALCHEMY_DATABASE_URI', '')
        if 'sqlite' in db_url.lower():
            db_type = 'SQLite'
        elif 'postgresql' in db_url.lower():
            db_type = 'PostgreSQL'
        else:
            db_type = db_url.split('://')[0] if '://' in db_url else 'Unknown'

        health_status['checks']['database'] = {
            'status': 'healthy',
            'type': db_type,
            'connected': True
        }

    except Exception as db_error:
        db.session.rollback()
        current_app.logger.error(f"Database health check failed: {db_error}")
        health_status['checks']['database'] = {
            'status': 'unhealthy',
            'connected': False,
            'error': str(db_error)
        }
        overall_healthy = False

    # Environment configuration
    config_issues = []
    environment = current_app.config.get('ENVIRONMENT', 'development')
    if environment == 'production':
        for var in ['SECRET_KEY', 'DATABASE_URL']:
            if not os.environ.get(var):
                config_issues.append(f'Missing {var}')
    if not current_app.config.get('ERP_API_KEYS'):
        config_issues.append('No ERP API keys configured')

    upload_folder = current_app.config.get('UPLOAD_FOLDER')
    if not upload_folder or not os.path.isdir(upload_folder):
        config_issues.append('Upload folder missing')

    health_status['checks']['configuration'] = {
        'status': 'healthy' if not config_issues else 'warning',
        'environment': environment,
        'issues': config_issues,
        'cors_configured': bool(current_app.config.get('CORS_ORIGINS')),
        'permit_check_interval_hours': current_app.config.get('PERMIT_CHECK_INTERVAL_HOURS')
    }
    if config_issues:
        current_app.logger.warning(f"Configuration issues detected: {config_issues}")

    # Application state
    registered_blueprints = [bp.name for bp in current_app.blueprints.values()]
    missing_blueprints = [bp for bp in CRITICAL_BLUEPRINTS if bp not in registered_blueprints]

    total_routes = len(list(current_app.url_map.iter_rules()))
    api_routes = len([rule for rule in current_app.url_map.iter_rules()
                      if rule.rule.startswith('/api/')])

    health_status['checks']['application'] = {
        'status': 'healthy' if not missing_blueprints else 'unhealthy',
        'blueprints': {
            'registered': registered_blueprints,
            'missing_critical': missing_blueprints,
            'total_count': len(registered_blueprints)
        },
        'routes': {
            'total': total_routes,
            'api_routes': api_routes
        }
    }
    if missing_blueprints:
        current_app.logger.error(f"Missing critical blueprints: {missing_blueprints}")
        overall_healthy = False

    if not overall_healthy:
        health_status['status'] = 'unhealthy'
        status_code = 503
    elif any(check.get('status') == 'warning' for check in health_status['checks'].values()):
        health_status['status'] = 'degraded'

    health_status['summary'] = {
        'healthy_checks': sum(1 for check in health_status['checks'].values()
                              if check.get('status') == 'healthy'),
        'warning_checks': sum(1 for check in health_status['checks'].values()
                              if check.get('status') == 'warning'),
        'unhealthy_checks': sum(1 for check in health_status['checks'].values()
                                if check.get('status') == 'unhealthy'),
        'total_checks': len(health_status['checks'])
    }

    current_app.logger.info(f"Health check completed: {health_status['status']}")
    return jsonify(health_status), status_code


@health_bp.route('/health/simple', methods=['GET'])
def simple_health_check():
    """Minimal check for load balancers"""
    try:
        db.session.execute(text('SELECT 1'))
        db.session.commit()

        return jsonify({
            'status': 'healthy',
            'message': 'Service is running'
        }), 200

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Simple health check failed: {e}")
        return jsonify({
            'status': 'unhealthy',
            'message': 'Database connection failed'
        }), 503
