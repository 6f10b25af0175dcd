# ballot_engine/audit/activity_log.py

# Voter activity trail. Every voter-facing operation records its entry
# through record_activity inside its own transaction, so an entry exists
# exactly when the effect it describes was committed.

import logging

from flask import has_request_context, request
from sqlalchemy.exc import SQLAlchemyError

from ballot_engine import db
from ballot_engine.database.models import VoterActivityLog

logger = logging.getLogger(__name__)

LOGIN = 'login'
BALLOT_ACCESSED = 'ballot_accessed'
VOTE_CAST = 'vote_cast'
LOGOUT = 'logout'
RESULTS_VIEWED = 'results_viewed'
FEEDBACK_SUBMITTED = 'feedback_submitted'

ACTIONS = (LOGIN, BALLOT_ACCESSED, VOTE_CAST, LOGOUT, RESULTS_VIEWED, FEEDBACK_SUBMITTED)


def _requester():
    if not has_request_context():
        return None, None
    agent = request.headers.get('User-Agent')
    return request.remote_addr, agent[:255] if agent else None


def record_activity(voter, action, metadata=None):
    """Add an activity row to the current session. The caller commits."""
    if action not in ACTIONS:
        raise ValueError(f"Unknown voter action: {action}")
    ip_address, user_agent = _requester()
    entry = VoterActivityLog(
        voter_id=voter.id,
        election_id=voter.election_id,
        action=action,
        details=metadata,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.session.add(entry)
    return entry


def record_view(voter, action, metadata=None):
    """Record a read-only action in its own short transaction.

    A failure here is logged and rolled back; the page the voter asked for is
    still served.
    """
    try:
        record_activity(voter, action, metadata)
        db.session.commit()
        return True
    except SQLAlchemyError:
        db.session.rollback()
        logger.warning('Could not record %s for voter %s', action, voter.id, exc_info=True)
        return False


def query_activity(action=None, voter_id=None, election_id=None, date_from=None, date_to=None):
    """Filtered activity, newest first. Returns a query for the caller to page."""
    query = VoterActivityLog.query
    if action:
        query = query.filter(VoterActivityLog.action == action)
    if voter_id is not None:
        query = query.filter(VoterActivityLog.voter_id == voter_id)
    if election_id is not None:
        query = query.filter(VoterActivityLog.election_id == election_id)
    if date_from is not None:
        query = query.filter(VoterActivityLog.created_at >= date_from)
    if date_to is not None:
        query = query.filter(VoterActivityLog.created_at <= date_to)
    return query.order_by(VoterActivityLog.created_at.desc(), VoterActivityLog.id.desc())
