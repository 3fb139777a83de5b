import os
import logging
import click
from logging.handlers import RotatingFileHandler
from flask import Flask, jsonify
from config import config
from extensions import db, migrate, limiter


def configure_logging(app):
    """Configure application logging"""
    if not app.debug and not app.testing:
        # Create logs directory if it doesn't exist
        if not os.path.exists('logs'):
            os.mkdir('logs')

        # File handler for errors
        file_handler = RotatingFileHandler(
            'logs/masjid_finance.log',
            maxBytes=10240000,  # 10MB
            backupCount=10
        )
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s: %(message)s '
            '[in %(pathname)s:%(lineno)d]'
        ))
        file_handler.setLevel(logging.INFO)
        app.logger.addHandler(file_handler)
        # Service modules log through logging.getLogger(__name__)
        logging.getLogger('services').addHandler(file_handler)
        logging.getLogger('services').setLevel(logging.INFO)

        app.logger.setLevel(logging.INFO)
        app.logger.info('Masjid Finance startup')
    else:
        # Development logging to console
        app.logger.setLevel(logging.DEBUG)
        logging.getLogger('services').setLevel(logging.DEBUG)
        app.logger.info('Masjid Finance startup (DEBUG mode)')


def create_app(config_name=None):
    """Application factory pattern"""

    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'development')

    app = Flask(__name__)
    app.config.from_object(config[config_name])
    config[config_name].init_app(app)

    # Configure logging
    configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)

    # Point-in-time balance cache, one per app instance
    from services.balance_service import init_balance_cache
    init_balance_cache(app)

    # Add security headers
    @app.after_request
    def add_security_headers(response):
        """Add security headers to all responses"""
        headers = app.config.get('SECURITY_HEADERS', {})
        for header, value in headers.items():
            response.headers[header] = value
        return response

    # Import models to ensure they're registered with SQLAlchemy
    with app.app_context():
        import models

    # Register blueprints
    from blueprints.finance import finance_bp

    app.register_blueprint(finance_bp, url_prefix='/finance')

    # Create database tables
    os.makedirs(app.instance_path, exist_ok=True)
    with app.app_context():
        db.create_all()

    # Register error handlers
    register_error_handlers(app)

    # Register CLI commands
    register_commands(app)

    return app


def register_error_handlers(app):
    """Register global error handlers"""

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'message': 'Not found'}), 404

    @app.errorhandler(429)
    def ratelimit_error(error):
        return jsonify({'message': f'Rate limit exceeded: {error.description}'}), 429

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        app.logger.error(f'Internal Server Error: {error}')
        return jsonify({'message': 'Internal server error'}), 500


def register_commands(app):
    """Register Flask CLI commands."""

    @app.cli.group()
    def balance():
        """Inspect and repair the cached ledger balance."""
        pass

    @balance.command('check')
    def check_balance():
        """Compare the stored balance with the ledger."""
        from services.balance_service import BalanceService
        report = BalanceService.health_check()
        consistency = report['consistency']
        click.echo(f'Status:          {report["status"]}')
        click.echo(f'Stored balance:  {consistency["balance_in_db"]:,.2f}')
        click.echo(f'Ledger balance:  {consistency["actual_balance"]:,.2f}')
        click.echo(f'Difference:      {consistency["difference"]:,.2f}')
        click.echo(f'Incomes:         {report["total_incomes"]}')
        click.echo(f'Expenses:        {report["total_expenses"]}')
        click.echo(f'Cached periods:  {report["cached_periods"]}')

    @balance.command('sync')
    @click.option('--keep-cache', is_flag=True, help='Keep the in-process point-in-time cache.')
    def sync_balance(keep_cache):
        """Recompute the stored balance from the ledger."""
        from services.balance_service import BalanceService
        amount = BalanceService.sync_balance(clear_cache=not keep_cache)
        click.echo(f'SUCCESS: balance synced to {amount:,.2f}')

    @balance.command('repair')
    def repair_balance():
        """Drop every cached period and recompute the balance."""
        from services.balance_service import BalanceService
        amount = BalanceService.repair_balance()
        click.echo(f'SUCCESS: caches cleared, balance repaired to {amount:,.2f}')


if __name__ == '__main__':
    app = create_app()
    # SECURITY: Only bind to localhost in development
    app.run(host='127.0.0.1', port=5000, debug=True)
