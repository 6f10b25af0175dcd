# ballot_engine/voting/feedback.py

# Post-vote feedback: one entry per voter per election, reachable only with
# the feedback token handed out with the ballot receipt.

import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ballot_engine import db
from ballot_engine.audit.activity_log import FEEDBACK_SUBMITTED, record_activity
from ballot_engine.authentication.voter_gate import token_manager
from ballot_engine.database.models import Voter, VoterFeedback
from ballot_engine.exceptions import FeedbackAlreadySubmitted, InvalidCredentials, StorageFailure, ValidationFailed
from ballot_engine.security.input_validator import InputValidator
from ballot_engine.security.token_manager import FEEDBACK_SCOPE

logger = logging.getLogger(__name__)
validator = InputValidator()


def voter_for_feedback_token(token):
    claims = token_manager.validate_token(token, FEEDBACK_SCOPE)
    if claims is None:
        raise InvalidCredentials('feedback token rejected')
    voter = db.session.get(Voter, int(claims['sub']))
    if voter is None or not voter.has_voted or voter.election_id != claims.get('election_id'):
        raise InvalidCredentials('feedback token does not match a voter who has voted')
    return voter


def submit_feedback(token, data):
    voter = voter_for_feedback_token(token)
    try:
        fields = validator.validate_feedback(data)
    except ValueError as e:
        raise ValidationFailed({'feedback': str(e)})

    if VoterFeedback.query.filter_by(voter_id=voter.id, election_id=voter.election_id).first():
        raise FeedbackAlreadySubmitted(f'voter {voter.id}')

    feedback = VoterFeedback(voter_id=voter.id, election_id=voter.election_id, **fields)
    db.session.add(feedback)
    record_activity(voter, FEEDBACK_SUBMITTED, {'rating': fields['rating']})
    try:
        db.session.commit()
    except IntegrityError:
        # lost a race with another submission of the same token
        db.session.rollback()
        raise FeedbackAlreadySubmitted(f'voter {voter.id}')
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.exception('Could not store feedback for voter %s', voter.id)
        raise StorageFailure(str(e)) from e
    return feedback


def feedback_statistics(election):
    base = VoterFeedback.query.filter_by(election_id=election.id)
    total = base.count()
    average = db.session.query(func.avg(VoterFeedback.rating)).filter(VoterFeedback.election_id == election.id).scalar()
    breakdown = dict(
        db.session.query(VoterFeedback.rating, func.count(VoterFeedback.id))
        .filter(VoterFeedback.election_id == election.id)
        .group_by(VoterFeedback.rating)
        .all()
    )
    return {
        'total': total,
        'average_rating': round(float(average or 0), 2),
        'ratings_breakdown': {rating: breakdown.get(rating, 0) for rating in (5, 4, 3, 2, 1)},
        'would_recommend': {
            'yes': base.filter(VoterFeedback.would_recommend.is_(True)).count(),
            'no': base.filter(VoterFeedback.would_recommend.is_(False)).count(),
        },
    }
