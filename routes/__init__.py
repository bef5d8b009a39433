# routes
from routes.admin import admin_bp
from routes.auth import auth_bp
from routes.billing import billing_bp
from routes.clients import clients_bp
from routes.complements import complements_bp
from routes.drivers import drivers_bp
from routes.freights import freights_bp
from routes.public import public_bp
from routes.users import users_bp
from routes.vehicles import vehicles_bp

BLUEPRINTS = (
    auth_bp, users_bp, drivers_bp, vehicles_bp, clients_bp, freights_bp,
    complements_bp, public_bp, billing_bp, admin_bp,
)


def register_blueprints(app):
    for blueprint in BLUEPRINTS:
        app.register_blueprint(blueprint)
