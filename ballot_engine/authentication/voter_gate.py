# ballot_engine/authentication/voter_gate.py
"""Voter authentication, separate from the institutional staff login.

A voter logs in with (election, roster id, credential) and receives a JWT
whose ``scope`` is ``voter``. The server keeps a VoterSession row per token;
revoking that row (logout, or the forced logout after a ballot is committed)
makes the token useless even if a client replays it.
"""

import logging
from functools import wraps

from flask import g
from flask_jwt_extended import get_jwt, verify_jwt_in_request
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError
from sqlalchemy.exc import SQLAlchemyError

from ballot_engine import app, db, jwt, invalid_token_callback
from ballot_engine.audit.activity_log import LOGIN, LOGOUT, record_activity
from ballot_engine.database.models import Election, Voter, VoterSession, utcnow
from ballot_engine.elections.registry import ensure_open
from ballot_engine.encryption.password_hashing import CredentialHasher
from ballot_engine.exceptions import AlreadyVoted, InvalidCredentials, StorageFailure
from ballot_engine.security.input_validator import InputValidator
from ballot_engine.security.token_manager import TokenManager, VOTER_SCOPE

logger = logging.getLogger(__name__)

credential_hasher = CredentialHasher(
    time_cost=app.config['ARGON2_TIME_COST'],
    memory_cost=app.config['ARGON2_MEMORY_COST'],
)
token_manager = TokenManager(app)
validator = InputValidator()


def revoke_sessions(voter_id, now=None):
    """Mark every open session of a voter revoked. The caller commits."""
    return (
        VoterSession.query
        .filter(VoterSession.voter_id == voter_id, VoterSession.revoked_at.is_(None))
        .update({VoterSession.revoked_at: now or utcnow()}, synchronize_session=False)
    )


class VoterGate:
    def __init__(self, hasher=None, tokens=None):
        self.hasher = hasher or credential_hasher
        self.tokens = tokens or token_manager

    def authenticate(self, election_id, roster_id, credential):
        """Return the voter or raise InvalidCredentials / AlreadyVoted / ElectionClosed."""
        voter = None
        try:
            election_id = validator.parse_identifier(election_id)
        except ValueError:
            election_id = None
        if election_id is not None and validator.validate_roster_id(roster_id):
            voter = Voter.query.filter_by(election_id=election_id, school_id=roster_id).first()

        if voter is None:
            self.hasher.burn_verify(credential)
            raise InvalidCredentials(f'no voter {roster_id!r} in election {election_id}')
        if not self.hasher.verify(credential, voter.password_hash):
            raise InvalidCredentials(f'wrong credential for voter {voter.id}')

        if voter.has_voted:
            raise AlreadyVoted(f'voter {voter.id} has already voted')
        ensure_open(db.session.get(Election, voter.election_id))
        return voter

    def login(self, election_id, roster_id, credential):
        voter = self.authenticate(election_id, roster_id, credential)
        token, jti = self.tokens.voter_session_token(voter)
        try:
            db.session.add(VoterSession(jti=jti, voter_id=voter.id, election_id=voter.election_id))
            record_activity(voter, LOGIN)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.exception('Could not open a session for voter %s', voter.id)
            raise StorageFailure(str(e)) from e
        logger.info('Voter %s logged in to election %s', voter.id, voter.election_id)
        return voter, token

    def logout(self, voter, jti=None):
        try:
            if jti:
                (VoterSession.query
                 .filter(VoterSession.jti == jti, VoterSession.revoked_at.is_(None))
                 .update({VoterSession.revoked_at: utcnow()}, synchronize_session=False))
            else:
                revoke_sessions(voter.id)
            record_activity(voter, LOGOUT)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.exception('Could not close the session of voter %s', voter.id)
            raise StorageFailure(str(e)) from e


def is_session_revoked(jwt_payload):
    if jwt_payload.get('scope') != VOTER_SCOPE:
        # feedback tokens are never valid sessions; voter_required rejects them
        return False
    session_row = db.session.get(VoterSession, jwt_payload.get('jti'))
    if session_row is None or session_row.revoked_at is not None:
        return True
    voter = db.session.get(Voter, session_row.voter_id)
    return voter is None or voter.has_voted


@jwt.token_in_blocklist_loader
def check_if_token_revoked(jwt_header, jwt_payload):
    return is_session_revoked(jwt_payload)


class WrongTokenScope(JWTExtendedException):
    pass


@app.errorhandler(WrongTokenScope)
def wrong_scope_callback(error):
    return invalid_token_callback(str(error))


def _load_voter(claims):
    if claims.get('scope') != VOTER_SCOPE:
        raise WrongTokenScope('token is not a voter session')
    voter = db.session.get(Voter, int(claims['sub']))
    if voter is None:
        raise WrongTokenScope('voter no longer exists')
    return voter


def voter_required(fn):
    """Require a live voter session; exposes ``g.voter`` and ``g.voter_jti``."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        verify_jwt_in_request()
        claims = get_jwt()
        g.voter = _load_voter(claims)
        g.voter_jti = claims['jti']
        return fn(*args, **kwargs)
    return wrapper


def optional_voter():
    """The voter behind the request's session, or None for anonymous/staff callers."""
    try:
        verify_jwt_in_request(optional=True)
        claims = get_jwt()
        if not claims:
            return None, None
        return _load_voter(claims), claims['jti']
    except (JWTExtendedException, PyJWTError):
        return None, None
