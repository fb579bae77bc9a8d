from datetime import timedelta

from flask import Flask, jsonify, request

from config import Config
from logging_config import logger


def create_app():
    """Build the Flask app, register the blueprints and create the schema."""
    app = Flask(__name__)
    app.secret_key = Config.FLASK_SECRET_KEY
    app.config['PERMANENT_SESSION_LIFETIME'] = timedelta(hours=Config.SESSION_HOURS)

    from routes import farm_bp
    from feature_routes import features_bp, init_all_feature_tables
    app.register_blueprint(farm_bp)
    app.register_blueprint(features_bp)

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({'error': 'Not found', 'path': request.path}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({'error': 'Method not allowed'}), 405

    init_all_feature_tables()
    logger.info(f"Happy Harvests app created (demo mode: {Config.DEMO_MODE})")
    return app


app = create_app()

if __name__ == '__main__':
    app.run(debug=Config.DEBUG, port=Config.PORT)
