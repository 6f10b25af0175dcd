# ballot_engine/voting/submission.py
"""Ballot preview and the one-shot ballot commit.

Commit protocol, all inside one database transaction:

1. conditional flip ``has_voted: false -> true`` for this voter only; if no
   row matched, another submission already won and nothing else happens;
2. one Vote row per (position, selected candidate);
3. ``vote_cast`` activity entry;
4. every open session of the voter revoked and ``logout`` recorded.

The has_voted read done before validation only gives a friendly early
answer. The conditional update is what stops a second ballot.
"""

import logging
import secrets
from dataclasses import dataclass, field
from typing import List

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from ballot_engine import app, db
from ballot_engine.audit.activity_log import LOGOUT, VOTE_CAST, record_activity
from ballot_engine.audit.audit_logger import security_log
from ballot_engine.authentication.voter_gate import revoke_sessions, token_manager
from ballot_engine.database.models import Election, Vote, Voter, utcnow
from ballot_engine.elections.catalog import BallotRules
from ballot_engine.elections.registry import ensure_open
from ballot_engine.encryption.digital_signatures import ReceiptSigner
from ballot_engine.exceptions import AlreadyVoted, CommitConflict, StorageFailure

logger = logging.getLogger(__name__)

receipt_signer = ReceiptSigner(app.config['RECEIPT_SIGNING_KEY'])


@dataclass
class BallotReceipt:
    reference: str
    election_id: int
    election_name: str
    timestamp: str
    votes: List[dict] = field(default_factory=list)
    signed: dict = None
    feedback_token: str = None

    def to_dict(self):
        return {
            'reference': self.reference,
            'election': {'id': self.election_id, 'name': self.election_name},
            'timestamp': self.timestamp,
            'votes': self.votes,
            'signed_receipt': self.signed,
            'feedback_token': self.feedback_token,
        }


def _new_reference():
    return f'REF-{secrets.token_hex(4).upper()}'


class BallotService:
    def __init__(self, signer=None, tokens=None):
        self.signer = signer or receipt_signer
        self.tokens = tokens or token_manager

    def preview(self, voter, raw_votes):
        """Validate and resolve selections without writing anything."""
        election = db.session.get(Election, voter.election_id)
        rules = BallotRules.for_election(election)
        selections = rules.validate(raw_votes)
        return {'election': election.to_dict(), 'selections': rules.resolve(selections), 'votes': selections}

    def cast(self, voter, raw_votes):
        election = db.session.get(Election, voter.election_id)
        if voter.has_voted:
            raise AlreadyVoted(f'voter {voter.id} has already voted')
        ensure_open(election)

        rules = BallotRules.for_election(election)
        selections = rules.validate(raw_votes)
        resolved = rules.resolve(selections)

        voter_id, election_id, election_name = voter.id, election.id, election.name
        timestamp = utcnow()
        reference = _new_reference()
        try:
            self._commit(voter, selections, timestamp, reference)
        except CommitConflict:
            logger.warning('Duplicate ballot for voter %s rejected by conditional update', voter_id)
            security_log.log_event('duplicate_ballot_rejected', {'voter_id': voter_id}, election_id=election_id)
            raise
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.exception('Ballot commit failed for voter %s', voter_id)
            security_log.log_event('ballot_commit_failed', {'voter_id': voter_id, 'error': type(e).__name__},
                                   election_id=election_id)
            raise StorageFailure(str(e)) from e

        logger.info('Ballot %s committed for voter %s in election %s', reference, voter_id, election_id)
        return self._receipt(voter, reference, election_id, election_name, timestamp, resolved)

    def _commit(self, voter, selections, timestamp, reference):
        flipped = db.session.execute(
            update(Voter)
            .where(Voter.id == voter.id, Voter.has_voted.is_(False))
            .values(has_voted=True, voted_at=timestamp)
            .execution_options(synchronize_session=False)
        ).rowcount
        if flipped != 1:
            db.session.rollback()
            raise CommitConflict(f'has_voted already set for voter {voter.id}')

        for position_id, candidate_ids in selections.items():
            for candidate_id in candidate_ids:
                db.session.add(Vote(
                    election_id=voter.election_id,
                    voter_id=voter.id,
                    position_id=position_id,
                    candidate_id=candidate_id,
                    timestamp=timestamp,
                ))

        record_activity(voter, VOTE_CAST, {
            'positions_voted': len(selections),
            'total_candidates_selected': sum(len(ids) for ids in selections.values()),
            'reference': reference,
        })
        revoke_sessions(voter.id, timestamp)
        record_activity(voter, LOGOUT, {'reason': 'ballot_submitted'})
        db.session.commit()

    def _receipt(self, voter, reference, election_id, election_name, timestamp, resolved):
        votes = [
            {
                'position': entry['position']['description'],
                'candidate': candidate['fullname'],
                'partylist': candidate['partylist'],
            }
            for entry in resolved
            for candidate in entry['candidates']
        ]
        body = {
            'reference': reference,
            'election_id': election_id,
            'timestamp': timestamp.isoformat(),
            'votes': votes,
        }
        return BallotReceipt(
            reference=reference,
            election_id=election_id,
            election_name=election_name,
            timestamp=body['timestamp'],
            votes=votes,
            signed=self.signer.sign_receipt(body),
            feedback_token=self.tokens.feedback_token(voter),
        )

    def verify_receipt(self, signed):
        return self.signer.verify_receipt(signed)
