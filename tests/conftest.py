import os
import tempfile
from datetime import timedelta
from types import SimpleNamespace

import pytest

_tmp = tempfile.mkdtemp(prefix='ballot-tests-')
os.environ['DATABASE_URL'] = 'sqlite:///' + os.path.join(_tmp, 'ballot.db')
os.environ['AUDIT_LOG_DIR'] = os.path.join(_tmp, 'logs')
os.environ['RATELIMIT_ENABLED'] = 'false'
os.environ['ARGON2_TIME_COST'] = '1'
os.environ['ARGON2_MEMORY_COST'] = '1024'
os.environ['SECRET_KEY'] = 'test-secret'
os.environ['JWT_SECRET_KEY'] = 'test-jwt-secret-with-enough-length-for-hs256'

from ballot_engine import app as flask_app, db  # noqa: E402
from ballot_engine.authentication.voter_gate import credential_hasher  # noqa: E402
from ballot_engine.database.models import Candidate, Election, Partylist, Position, User, Voter, utcnow  # noqa: E402

VOTER_CREDENTIAL = 'campus-pass-1'
STAFF_PASSWORD = 'StaffPassword123!'


@pytest.fixture
def app():
    flask_app.config['TESTING'] = True
    flask_app.config['BALLOT_ALLOW_ABSTENTION'] = False
    flask_app.config['OPA_URL'] = None
    with flask_app.app_context():
        db.drop_all()
        db.create_all()
        yield flask_app
        db.session.remove()


@pytest.fixture
def client(app):
    return app.test_client()


def make_voter(election, school_id, credential=VOTER_CREDENTIAL, has_voted=False):
    voter = Voter(
        election_id=election.id,
        school_id=school_id,
        password_hash=credential_hasher.hash_secret(credential, enforce_policy=False),
        has_voted=has_voted,
    )
    db.session.add(voter)
    db.session.commit()
    return voter


@pytest.fixture
def election(app):
    """Student Council 2025: President (pick 1 of 2), Senator (pick up to 2 of 3)."""
    election = Election(name='Student Council 2025', election_code='SC2025', enabled=True,
                        end_time=utcnow() + timedelta(days=1))
    db.session.add(election)
    db.session.flush()

    unity = Partylist(election_id=election.id, name='Unity')
    db.session.add(unity)
    president = Position(election_id=election.id, description='President', max_vote=1, priority=1)
    senator = Position(election_id=election.id, description='Senator', max_vote=2, priority=2)
    db.session.add_all([president, senator])
    db.session.flush()

    def candidate(position, first, last, partylist=None):
        c = Candidate(election_id=election.id, position_id=position.id, firstname=first, lastname=last,
                      partylist_id=partylist.id if partylist else None)
        db.session.add(c)
        return c

    pres_a = candidate(president, 'Ana', 'Reyes', unity)
    pres_b = candidate(president, 'Ben', 'Cruz')
    sen_a = candidate(senator, 'Cara', 'Lim', unity)
    sen_b = candidate(senator, 'Dan', 'Sy')
    sen_c = candidate(senator, 'Eve', 'Tan')
    db.session.commit()

    return SimpleNamespace(
        election=election,
        president=president,
        senator=senator,
        pres_a=pres_a, pres_b=pres_b,
        sen_a=sen_a, sen_b=sen_b, sen_c=sen_c,
    )


@pytest.fixture
def voter(election):
    return make_voter(election.election, '2025-0001')


@pytest.fixture
def valid_votes(election):
    return {
        str(election.president.id): [election.pres_a.id],
        str(election.senator.id): [election.sen_a.id, election.sen_c.id],
    }


@pytest.fixture
def staff(app):
    def create(role='administrator', email=None):
        user = User(email=email or f'{role}@campus.example.edu',
                    password_hash=credential_hasher.hash_secret(STAFF_PASSWORD), role=role)
        db.session.add(user)
        db.session.commit()
        return user
    return create


def login_voter(client, election, school_id='2025-0001', credential=VOTER_CREDENTIAL):
    return client.post('/voter/login', json={
        'election_id': election.id,
        'roster_id': school_id,
        'credential': credential,
    })
