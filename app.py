"""
LTI 1.0 Tool Provider
Main application entry point.
"""

import os

import click
from flask import Flask, redirect, url_for, request
from flask.cli import AppGroup

from config import Config
from models.database import db  # Single shared SQLAlchemy instance


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    # Initialise extensions (uses the db created in models/database.py)
    db.init_app(app)

    # ------------------------------------------------------------------
    # Register blueprints
    # ------------------------------------------------------------------
    from routes.lti_routes import lti_bp

    app.register_blueprint(lti_bp)
    app.cli.add_command(lti_cli)

    # ------------------------------------------------------------------
    # Root redirect
    # ------------------------------------------------------------------
    @app.route("/", methods=["GET", "POST"])
    def index():
        """Explain what this is, or forward a launch posted to '/'.

        Some consumers send the LTI POST to '/' instead of '/lti/launch'.
        """
        if request.method == "POST":
            # Forward LTI launch to the real endpoint
            return redirect(url_for("lti.launch"), code=307)  # 307 preserves POST

        return (
            "<h3>LTI Tool Provider</h3>"
            "<p>This application is an LTI tool. "
            "Please launch it from your LMS course.</p>"
        ), 200

    # ------------------------------------------------------------------
    # Create database tables (if they don't exist) and seed the consumer
    # ------------------------------------------------------------------
    with app.app_context():
        # Import models so SQLAlchemy knows about them
        from models.database import LtiConsumer, LtiResourceLink, LtiUser, LtiNonce, LtiShareKey  # noqa: F401
        db.create_all()
        _seed_consumer(app)

    return app


def _seed_consumer(app):
    """Register LTI_KEY/LTI_SECRET as an enabled consumer."""
    from lti.tool_consumer import ToolConsumer
    from models.connector import SQLAlchemyDataConnector

    key = app.config.get('LTI_KEY')
    secret = app.config.get('LTI_SECRET')
    if not key or not secret:
        return

    connector = SQLAlchemyDataConnector()
    consumer = ToolConsumer(key, connector)
    if consumer.created is not None and consumer.secret == secret and consumer.enabled:
        return
    consumer.name = consumer.name or key
    consumer.secret = secret
    consumer.enabled = True
    consumer.save()
    connector.commit()
    app.logger.info('Registered tool consumer %s', key)


# ---------------------------------------------------------------------------
# CLI: flask lti ...
# ---------------------------------------------------------------------------


lti_cli = AppGroup('lti', help='Manage tool consumers and share keys.')


@lti_cli.command('add-consumer')
@click.argument('key')
@click.option('--secret', default=None, help='Shared secret (generated if omitted).')
@click.option('--name', default=None, help='Display name.')
@click.option('--protected', is_flag=True, help='Pin launches to the first GUID seen.')
@click.option('--disabled', is_flag=True, help='Register without enabling.')
def add_consumer(key, secret, name, protected, disabled):
    from lti.tool_consumer import ToolConsumer
    from models.connector import SQLAlchemyDataConnector

    connector = SQLAlchemyDataConnector()
    consumer = ToolConsumer(key, connector)
    consumer.name = name or consumer.name or key
    consumer.secret = secret or consumer.secret or connector.get_random_string(32)
    consumer.protected = protected
    consumer.enabled = not disabled
    consumer.save()
    connector.commit()
    click.echo(f'{consumer.get_key()} {consumer.secret}')


@lti_cli.command('delete-consumer')
@click.argument('key')
def delete_consumer(key):
    from lti.tool_consumer import ToolConsumer
    from models.connector import SQLAlchemyDataConnector

    connector = SQLAlchemyDataConnector()
    consumer = ToolConsumer(key, connector)
    if consumer.created is None:
        raise click.ClickException(f'No tool consumer with key {key}')
    consumer.delete()
    connector.commit()
    click.echo(f'Deleted {key}')


@lti_cli.command('list-consumers')
def list_consumers():
    from lti.tool_provider import ToolProvider
    from models.connector import SQLAlchemyDataConnector

    for consumer in ToolProvider(SQLAlchemyDataConnector()).get_consumers():
        state = 'enabled' if consumer.enabled else 'disabled'
        last = consumer.last_access.isoformat() if consumer.last_access else 'never'
        click.echo(f'{consumer.get_key()}\t{consumer.name}\t{state}\t'
                   f'{consumer.consumer_version or "-"}\tlast access {last}')


@lti_cli.command('share-key')
@click.argument('consumer_key')
@click.argument('resource_link_id')
@click.option('--life', type=int, default=None, help='Hours until the key expires.')
@click.option('--length', type=int, default=None, help='Key length (5-32).')
@click.option('--auto-approve', is_flag=True, help='Approve the share on redemption.')
def share_key(consumer_key, resource_link_id, life, length, auto_approve):
    """Issue a key for sharing an existing resource link."""
    from lti.resource_link import ResourceLink
    from lti.share_key import ResourceLinkShareKey
    from lti.tool_consumer import ToolConsumer
    from models.connector import SQLAlchemyDataConnector

    connector = SQLAlchemyDataConnector()
    link = ResourceLink(ToolConsumer(consumer_key, connector), resource_link_id)
    if link.created is None:
        raise click.ClickException(
            f'No resource link {resource_link_id} for consumer {consumer_key}')

    key = ResourceLinkShareKey(link)
    key.life = life
    key.length = length
    key.auto_approve = auto_approve
    key.save()
    connector.commit()
    click.echo(f'{key.get_id()} (expires {key.expires.isoformat()})')


# ---------------------------------------------------------------------------
# When running directly or via gunicorn (gunicorn "app:create_app()")
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    app = create_app()
    port = int(os.environ.get("PORT", 5000))
    app.run(host="0.0.0.0", port=port, debug=True)
