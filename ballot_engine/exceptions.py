# ballot_engine/exceptions.py
"""Errors surfaced by the ballot engine.

Every error carries the HTTP status it maps to and a public message. The
public message is the only text a voter ever sees; internal details stay in
the logs and the security audit file.

Hierarchy:
- BallotError
  - InvalidCredentials
  - AlreadyVoted
    - CommitConflict
  - ElectionClosed
  - ValidationFailed
  - StorageFailure
  - FeedbackAlreadySubmitted
"""


class BallotError(Exception):
    status_code = 400
    code = 'ballot_error'
    public_message = 'The request could not be completed.'

    def __init__(self, detail=None):
        super().__init__(detail or self.public_message)
        self.detail = detail

    def to_dict(self):
        return {'success': False, 'error': self.code, 'message': self.public_message}


class InvalidCredentials(BallotError):
    status_code = 401
    code = 'invalid_credentials'
    public_message = 'Invalid voter ID or password for this election.'


class AlreadyVoted(BallotError):
    status_code = 409
    code = 'already_voted'
    public_message = 'You have already cast your vote in this election.'


class CommitConflict(AlreadyVoted):
    """A concurrent submission flipped has_voted first.

    Callers see exactly what AlreadyVoted shows.
    """


class ElectionClosed(BallotError):
    status_code = 403
    code = 'election_closed'
    public_message = 'This election is no longer active.'


class ValidationFailed(BallotError):
    status_code = 422
    code = 'validation_failed'
    public_message = 'Please review your ballot selections.'

    def __init__(self, errors=None, detail=None):
        super().__init__(detail)
        self.errors = errors or {}

    def to_dict(self):
        payload = super().to_dict()
        payload['errors'] = self.errors
        return payload


class StorageFailure(BallotError):
    status_code = 503
    code = 'storage_failure'
    public_message = 'An error occurred while submitting your vote. Please try again.'


class FeedbackAlreadySubmitted(BallotError):
    status_code = 409
    code = 'feedback_exists'
    public_message = 'You have already submitted feedback for this election.'
