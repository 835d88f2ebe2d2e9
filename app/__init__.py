from flask import Flask
from flask_cors import CORS
from db.extensions import db, migrate, mail, socketio, configure_socketio
from .config import Config
from .cli import register_cli
from events.socketio_events import register_socketio_events
from redis import Redis
from rq import Queue
from rq_scheduler import Scheduler

import logging


def create_app(config_object=None):
    app = Flask(__name__)
    app.config.from_object(config_object or Config)

    # Configure logging
    log_level = logging.DEBUG if app.config.get("DEBUG_MODE") else logging.WARNING
    logging.basicConfig(level=log_level, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    mail.init_app(app)
    CORS(app)

    # Models must be imported before create_all / migrations see the metadata
    from models import resource, booking, bookingStatusLog, coupon, couponUsage, subscription, systemSetting  # noqa: F401

    # Blueprints
    from controllers.booking_controller import booking_blueprint
    from controllers.coupon_controller import coupon_blueprint
    from controllers.resource_controller import resource_blueprint
    from controllers.scheduler_controller import scheduler_blueprint
    from controllers.settings_controller import settings_blueprint
    from controllers.subscription_controller import subscription_blueprint

    app.register_blueprint(booking_blueprint, url_prefix="/api")
    app.register_blueprint(coupon_blueprint, url_prefix="/api")
    app.register_blueprint(resource_blueprint, url_prefix="/api")
    app.register_blueprint(scheduler_blueprint, url_prefix="/api")
    app.register_blueprint(settings_blueprint, url_prefix="/api")
    app.register_blueprint(subscription_blueprint, url_prefix="/api")

    # Redis + RQ
    if app.config.get("REDIS_URL"):
        redis_conn = Redis.from_url(app.config["REDIS_URL"])
        lifecycle_queue = Queue(app.config["LIFECYCLE_QUEUE"], connection=redis_conn)
        app.extensions["redis"] = redis_conn
        app.extensions["notification_queue"] = Queue(app.config["NOTIFICATION_QUEUE"], connection=redis_conn)
        app.extensions["rq_scheduler"] = Scheduler(queue=lifecycle_queue, connection=redis_conn)

    # SocketIO
    configure_socketio(app)
    register_socketio_events(socketio)

    register_cli(app)

    return app, socketio
