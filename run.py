from dotenv import load_dotenv
load_dotenv()  # Load .env file

import os
import logging
import click
from app import create_app, db
from app.models import Profile, Submission, UserInvitation
from app.utils.db_init import ensure_bootstrap_admin, initialize_database
from config import config

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = create_app(config.get(os.environ.get('FLASK_ENV', 'development')))

@app.shell_context_processor
def make_shell_context():
    return {'db': db, 'Profile': Profile, 'Submission': Submission, 'UserInvitation': UserInvitation}

@app.cli.command('init-db')
def init_db_command():
    """Create tables and the bootstrap admin invitation."""
    if not initialize_database():
        raise click.ClickException('Database initialization failed, see the log for details')
    click.echo('Database ready')

@app.cli.command('invite-admin')
@click.argument('email')
def invite_admin_command(email):
    """Pre-register EMAIL as the first portal admin."""
    invitation = ensure_bootstrap_admin(email)
    if invitation is None:
        click.echo('An admin or invitation already exists; nothing to do')
    else:
        click.echo(f'Invited {invitation.email} as admin')

@app.cli.command('send-notification-emails')
@click.option('--limit', type=int, default=None, help='Maximum notifications to process (default: batch size)')
def send_notification_emails_command(limit):
    """Email pending notifications and record SENT, FAILED or SKIPPED."""
    counts = app.extensions['notification_mailer'].send_pending(limit=limit)
    click.echo(', '.join(f'{status.lower()}: {count}' for status, count in counts.items()))

if __name__ == '__main__':
    with app.app_context():
        if not initialize_database():
            logger.warning("Database setup incomplete - run `flask --app run init-db` after fixing the connection")

    port = int(os.environ.get('PORT', 5000))
    logger.info(f"Timesheet portal API listening on 0.0.0.0:{port}")
    app.run(debug=app.config.get('DEBUG', False), host='0.0.0.0', port=port)
