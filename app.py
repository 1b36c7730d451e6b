import os
import logging
from flask import Flask, jsonify
from models import db, User
from routes.auth import auth_bp
from routes.offers import offers_bp
from routes.leases import leases_bp
from routes.move_in_issues import issues_bp
from routes.conversations import conversations_bp
from services.clock import SystemClock
from flask_login import LoginManager

def create_app(config=None):
    app = Flask(__name__)
    app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-prod')
    app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get('DATABASE_URL', 'sqlite:///rental.db')
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['STRIPE_SECRET_KEY'] = os.environ.get('STRIPE_SECRET_KEY')
    app.config['RENEWAL_WINDOW_DAYS'] = int(os.environ.get('RENEWAL_WINDOW_DAYS', 60))
    app.config['LOG_LEVEL'] = os.environ.get('LOG_LEVEL', 'INFO')
    app.config['SEED_ADMIN'] = True
    if config:
        app.config.update(config)

    logging.basicConfig(
        level=app.config['LOG_LEVEL'],
        format="[%(asctime)s] %(levelname)s in %(module)s: %(message)s",
    )
    if not app.config['STRIPE_SECRET_KEY']:
        app.logger.warning("STRIPE_SECRET_KEY is not set. Stripe refunds will fail and need manual retry.")

    # Lifecycle code reads time from here, never from a patched datetime
    app.extensions['lifecycle_clock'] = app.config.get('LIFECYCLE_CLOCK') or SystemClock()

    db.init_app(app)

    login_manager = LoginManager()
    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'status': 'error', 'message': 'Authentication required'}), 401

    # Register Blueprints
    app.register_blueprint(auth_bp)
    app.register_blueprint(offers_bp, url_prefix='/offers')
    app.register_blueprint(leases_bp, url_prefix='/leases')
    app.register_blueprint(issues_bp, url_prefix='/move-in-issues')
    app.register_blueprint(conversations_bp)

    @app.route('/health')
    def health():
        return jsonify({'status': 'success'})

    with app.app_context():
        db.create_all()
        # Seed Admin User
        if app.config['SEED_ADMIN']:
            from werkzeug.security import generate_password_hash
            if not User.query.filter_by(role='admin').first():
                admin = User(
                    email=os.environ.get('ADMIN_EMAIL', 'admin@example.com'),
                    name='Administrator',
                    password_hash=generate_password_hash(os.environ.get('ADMIN_PASSWORD', 'admin123')),
                    role='admin'
                )
                db.session.add(admin)
                db.session.commit()
                app.logger.info("Created default admin user.")

    return app

if __name__ == '__main__':
    app = create_app()
    app.run(debug=True)
