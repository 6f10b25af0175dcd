import pytest
from datetime import timedelta

from ballot_engine import db
from ballot_engine.authentication.voter_gate import VoterGate, is_session_revoked
from ballot_engine.database.models import VoterActivityLog, VoterSession, utcnow
from ballot_engine.exceptions import AlreadyVoted, ElectionClosed, InvalidCredentials
from conftest import VOTER_CREDENTIAL, make_voter


@pytest.fixture
def gate(app):
    return VoterGate()


def test_authenticate_returns_voter(gate, election, voter):
    found = gate.authenticate(election.election.id, '2025-0001', VOTER_CREDENTIAL)
    assert found.id == voter.id


def test_authenticate_accepts_string_election_id(gate, election, voter):
    assert gate.authenticate(str(election.election.id), '2025-0001', VOTER_CREDENTIAL).id == voter.id


@pytest.mark.parametrize('roster_id,credential', [
    ('2025-0001', 'wrong-password'),
    ('2025-9999', VOTER_CREDENTIAL),
    ('<bad id>', VOTER_CREDENTIAL),
    ('2025-0001', None),
])
def test_authenticate_rejects_bad_credentials(gate, election, voter, roster_id, credential):
    with pytest.raises(InvalidCredentials):
        gate.authenticate(election.election.id, roster_id, credential)


def test_roster_is_scoped_to_election(gate, election, voter):
    with pytest.raises(InvalidCredentials):
        gate.authenticate(election.election.id + 1, '2025-0001', VOTER_CREDENTIAL)


def test_authenticate_rejects_voter_who_has_voted(gate, election):
    make_voter(election.election, '2025-0002', has_voted=True)
    with pytest.raises(AlreadyVoted):
        gate.authenticate(election.election.id, '2025-0002', VOTER_CREDENTIAL)


def test_authenticate_rejects_closed_election(gate, election, voter):
    election.election.end_time = utcnow() - timedelta(seconds=1)
    db.session.commit()
    with pytest.raises(ElectionClosed):
        gate.authenticate(election.election.id, '2025-0001', VOTER_CREDENTIAL)


def test_wrong_credential_checked_before_already_voted(gate, election):
    make_voter(election.election, '2025-0003', has_voted=True)
    with pytest.raises(InvalidCredentials):
        gate.authenticate(election.election.id, '2025-0003', 'not-it')


def test_login_opens_session_and_records_activity(app, gate, election, voter):
    with app.test_request_context('/voter/login', headers={'User-Agent': 'pytest-browser'}):
        logged_in, token = gate.login(election.election.id, '2025-0001', VOTER_CREDENTIAL)
    assert logged_in.id == voter.id
    assert token

    session_row = VoterSession.query.filter_by(voter_id=voter.id).one()
    assert session_row.revoked_at is None
    assert not is_session_revoked({'scope': 'voter', 'jti': session_row.jti})

    entry = VoterActivityLog.query.filter_by(voter_id=voter.id, action='login').one()
    assert entry.user_agent == 'pytest-browser'
    assert entry.election_id == election.election.id


def test_failed_login_records_nothing(gate, election, voter):
    with pytest.raises(InvalidCredentials):
        gate.login(election.election.id, '2025-0001', 'nope')
    assert VoterSession.query.count() == 0
    assert VoterActivityLog.query.count() == 0


def test_logout_revokes_session(app, gate, election, voter):
    with app.test_request_context('/voter/login'):
        gate.login(election.election.id, '2025-0001', VOTER_CREDENTIAL)
    jti = VoterSession.query.filter_by(voter_id=voter.id).one().jti

    gate.logout(voter, jti)

    assert db.session.get(VoterSession, jti).revoked_at is not None
    assert is_session_revoked({'scope': 'voter', 'jti': jti})
    assert VoterActivityLog.query.filter_by(voter_id=voter.id, action='logout').count() == 1


def test_session_is_revoked_once_voter_has_voted(app, gate, election, voter):
    with app.test_request_context('/voter/login'):
        gate.login(election.election.id, '2025-0001', VOTER_CREDENTIAL)
    jti = VoterSession.query.filter_by(voter_id=voter.id).one().jti
    voter.has_voted = True
    db.session.commit()
    assert is_session_revoked({'scope': 'voter', 'jti': jti})


def test_unknown_session_is_revoked(app):
    assert is_session_revoked({'scope': 'voter', 'jti': 'no-such-jti'})
