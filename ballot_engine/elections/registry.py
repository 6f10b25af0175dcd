# ballot_engine/elections/registry.py

# Election window predicates and the small amount of election administration
# the CLI and staff routes need.

import logging

from sqlalchemy.exc import IntegrityError

from ballot_engine import db
from ballot_engine.database.models import Election, utcnow
from ballot_engine.exceptions import ElectionClosed, ValidationFailed

logger = logging.getLogger(__name__)


def is_active(election, now=None):
    """Enabled and either open-ended or ending in the future."""
    now = now or utcnow()
    return bool(election.enabled) and (election.end_time is None or election.end_time > now)


def has_ended(election, now=None):
    now = now or utcnow()
    return election.end_time is not None and election.end_time <= now


def election_status(election, now=None):
    now = now or utcnow()
    if has_ended(election, now):
        return 'ended'
    return 'active' if is_active(election, now) else 'inactive'


def ensure_open(election, now=None):
    # The two predicates are independent: a disabled election with no end
    # time is neither active nor ended.
    now = now or utcnow()
    if not is_active(election, now) or has_ended(election, now):
        raise ElectionClosed(f'election {election.id} is not open')


def active_elections(now=None):
    now = now or utcnow()
    return (
        Election.query
        .filter(Election.enabled.is_(True))
        .filter(db.or_(Election.end_time.is_(None), Election.end_time > now))
        .order_by(Election.id)
        .all()
    )


def latest_election():
    return Election.query.order_by(Election.created_at.desc(), Election.id.desc()).first()


def create_election(name, election_code, enabled=False, end_time=None):
    election = Election(name=name, election_code=election_code, enabled=enabled, end_time=end_time)
    db.session.add(election)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ValidationFailed({'election_code': 'Election code already exists.'})
    logger.info('Created election %s (%s)', election.id, election_code)
    return election


def toggle_status(election):
    election.enabled = not election.enabled
    db.session.commit()
    logger.info('Election %s enabled=%s', election.id, election.enabled)
    return election
