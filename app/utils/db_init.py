"""
Database setup for the timesheet portal

Creates the role ENUM (PostgreSQL only) and the portal tables, then makes
sure someone can sign in as admin on a fresh install. Safe to re-run.
"""

import logging
from flask import current_app
from sqlalchemy import text
from app import db
from app.models.user import USER_ROLES

logger = logging.getLogger(__name__)


def create_role_enum():
    """user_role_enum backs profiles.role on PostgreSQL"""
    dialect = db.engine.dialect.name
    if dialect != 'postgresql':
        logger.info(f"Skipping user_role_enum on {dialect}")
        return

    values = "', '".join(USER_ROLES)
    try:
        db.session.execute(text(f"""
            DO $$ BEGIN
                CREATE TYPE user_role_enum AS ENUM ('{values}');
            EXCEPTION
                WHEN duplicate_object THEN null;
            END $$;
        """))
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.warning(f"Could not verify user_role_enum: {e}")


def create_all_tables():
    import app.models  # noqa: F401  registers every table on db.metadata

    db.create_all()
    logger.info(f"Verified {len(db.metadata.tables)} portal tables")


def ensure_bootstrap_admin(email=None):
    """
    Pre-register the first admin so a new deployment can be signed into.

    Does nothing when an admin profile already exists or the email is
    already invited. Returns the invitation that was created, if any.
    """
    from app.models import Profile, UserInvitation

    email = (email or current_app.config.get('BOOTSTRAP_ADMIN_EMAIL') or '').strip().lower()
    if not email:
        return None
    if Profile.query.filter_by(role='admin').first() is not None:
        return None
    if UserInvitation.query.filter_by(email=email).first() is not None:
        return None

    invitation = UserInvitation(email=email, first_name='Portal', last_name='Admin', role='admin')
    db.session.add(invitation)
    db.session.commit()
    logger.info(f"Pre-registered bootstrap admin {email}")
    return invitation


def initialize_database():
    """Run every setup step; returns False instead of raising"""
    try:
        create_role_enum()
        create_all_tables()
        ensure_bootstrap_admin()
        return True
    except Exception as e:
        db.session.rollback()
        logger.error(f"Database initialization failed: {e}")
        return False
