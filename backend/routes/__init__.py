"""
Routes package for the Blueprint Marketplace API.

Each module defines one Flask blueprint. ``BLUEPRINTS`` lists them with the
URL prefix they are mounted at; ``create_app`` registers them in order.
Socket.IO handlers live in ``routes.socket_events``.
"""

import logging

logger = logging.getLogger(__name__)

# (module, blueprint variable, url prefix)
BLUEPRINTS = [
    ('routes.auth', 'auth_bp', '/api/auth'),
    ('routes.projects', 'projects_bp', '/api/projects'),
    ('routes.bids', 'bids_bp', '/api/bids'),
    ('routes.tasks', 'tasks_bp', '/api/tasks'),
    ('routes.materials', 'materials_bp', '/api/materials'),
    ('routes.messages', 'messages_bp', '/api/messages'),
    ('routes.disputes', 'disputes_bp', '/api/disputes'),
    ('routes.erp', 'erp_bp', '/api/erp'),
    ('routes.health', 'health_bp', '/api'),
]


def load_blueprint(module_name, blueprint_name):
    """Import a blueprint object by module and variable name"""
    module = __import__(module_name, fromlist=[blueprint_name])
    blueprint = getattr(module, blueprint_name)
    if not hasattr(blueprint, 'name') or not hasattr(blueprint, 'url_prefix'):
        raise AttributeError(f"{blueprint_name} is not a valid Flask Blueprint")
    return blueprint


def register_blueprints(app):
    """
    Register every blueprint in BLUEPRINTS on the app.

    Returns:
        list: names of the registered blueprints
    """
    registered = []
    for module_name, blueprint_name, url_prefix in BLUEPRINTS:
        try:
            blueprint = load_blueprint(module_name, blueprint_name)
        except (ImportError, AttributeError) as e:
            logger.error(f"Failed to import {blueprint_name} from {module_name}: {e}")
            raise

        app.register_blueprint(blueprint, url_prefix=url_prefix)
        registered.append(blueprint.name)

        blueprint_routes = [rule.rule for rule in app.url_map.iter_rules()
                            if rule.rule.startswith(url_prefix)]
        app.logger.debug(f"Registered {blueprint_name} at {url_prefix}: {len(blueprint_routes)} routes")

    app.logger.info(f"Blueprint registration complete: {len(registered)} registered")
    return registered
