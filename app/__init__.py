from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flasgger import Swagger
from flask_mail import Mail

db = SQLAlchemy()
migrate = Migrate()
swagger = Swagger()
mail = Mail()

BLUEPRINTS = (
    ('users', '/api/users'),
    ('submissions', '/api/submissions'),
    ('invoices', '/api/invoices'),
    ('contractors', '/api/contractors'),
    ('projects', '/api/projects'),
    ('calendar', '/api/calendar'),
    ('notifications', '/api/notifications'),
    ('dashboard', '/api/dashboard'),
)

def create_app(config_class=None):
    """Application factory pattern"""
    if config_class is None:
        from config import Config
        config_class = Config

    app = Flask(__name__)
    app.config.from_object(config_class)

    db.init_app(app)
    migrate.init_app(app, db)
    swagger.init_app(app)  # reads app.config['SWAGGER']
    mail.init_app(app)

    # '*' in CORS_ALLOWED_ORIGINS opens the API to any origin (development)
    cors_origins = app.config.get('CORS_ALLOWED_ORIGINS', ['*'])
    CORS(app, resources={r"/api/*": {
        "origins": "*" if '*' in cors_origins else cors_origins,
        "methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        "allow_headers": ["Content-Type", "Authorization"],
        "expose_headers": ["Content-Type", "Content-Disposition"],
        "supports_credentials": True
    }})

    from app.errors import register_error_handlers
    register_error_handlers(app)

    # One repository/cache per app so each test app starts cold
    from app.services.submissions import SubmissionRepository
    from app.services.invoices import InvoiceService
    from app.services.mailer import NotificationMailer
    from app.utils.cache import RequestCoalescingCache

    repository = SubmissionRepository(
        db,
        cache=RequestCoalescingCache(ttl_seconds=app.config['SUBMISSIONS_CACHE_TTL_SECONDS']),
    )
    app.extensions['submission_repository'] = repository
    app.extensions['invoice_service'] = InvoiceService.from_config(app.config, cache=repository.cache)
    app.extensions['notification_mailer'] = NotificationMailer.from_config(app.config, mail)

    import importlib
    for name, url_prefix in BLUEPRINTS:
        module = importlib.import_module(f'app.routes.{name}')
        app.register_blueprint(module.bp, url_prefix=url_prefix)

    return app
