"""
Flask CLI commands.

Commands:
- flask init-db: Create all tables
- flask expire-quotes: Expire draft/sent quotes older than N days
"""
from datetime import datetime, timedelta, timezone

import click

from lumenr.database import create_all, get_session
from lumenr.exceptions import PersistenceError


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create the database tables."""
        create_all()
        click.echo(click.style('Database tables created.', fg='green'))

    @app.cli.command('expire-quotes')
    @click.option('--days', type=click.IntRange(min=0), default=None,
                  help='Age in days after which open quotes expire (default: QUOTE_VALID_DAYS)')
    def expire_quotes_command(days):
        """Move stale draft and sent quotes to expired."""
        from lumenr.services.quote_service import expire_stale_quotes

        if days is None:
            days = app.config.get('QUOTE_VALID_DAYS', 30)
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)

        try:
            expired = expire_stale_quotes(get_session(), cutoff)
        except PersistenceError as e:
            click.echo(click.style(f'Error expiring quotes: {e.message}', fg='red'), err=True)
            raise SystemExit(1)

        click.echo(f'Expired {len(expired)} quote(s) older than {days} day(s).')
        for quote_id in expired:
            click.echo(f'   Quote #{quote_id}')
