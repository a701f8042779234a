from flask_cors import CORS
import logging

logger = logging.getLogger(__name__)


def setup_cors(app):
    """
    CORS for the API and uploaded files, restricted to the configured frontend origins
    """
    allowed_origins = app.config.get('CORS_ORIGINS', [])

    CORS(app,
         resources={r"/api/*": {}, r"/uploads/*": {}},
         origins=allowed_origins,
         supports_credentials=app.config.get('CORS_SUPPORTS_CREDENTIALS', True),
         methods=['GET', 'POST', 'PUT', 'PATCH', 'DELETE', 'OPTIONS'],
         allow_headers=[
             "Accept",
             "Accept-Language",
             "Authorization",
             "Cache-Control",
             "Content-Type",
             "Origin",
             "X-API-Key",
             "X-Requested-With",
         ],
         expose_headers=['Content-Type', 'Content-Disposition'],
         max_age=86400  # Cache preflight for 24 hours
    )

    logger.info(f"CORS configured with {len(allowed_origins)} allowed origins")
    return allowed_origins
