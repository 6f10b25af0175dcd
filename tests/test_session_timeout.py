import pytest
from datetime import timedelta
from flask_jwt_extended import create_access_token, decode_token

from ballot_engine import db
from ballot_engine.database.models import VoterSession


@pytest.fixture
def expired_token(voter):
    token = create_access_token(identity=str(voter.id), expires_delta=timedelta(seconds=-5),
                                additional_claims={'scope': 'voter', 'election_id': voter.election_id})
    jti = decode_token(token, allow_expired=True)["jti"]
    db.session.add(VoterSession(jti=jti, voter_id=voter.id, election_id=voter.election_id))
    db.session.commit()
    return token


def test_expired_session_redirects_browser_to_login(client, expired_token):
    resp = client.get('/ballot', headers={'Authorization': f'Bearer {expired_token}', 'Accept': 'text/html'})
    assert resp.status_code == 302
    assert resp.headers['Location'].endswith('/voter/login')


def test_expired_session_is_401_for_api_clients(client, expired_token):
    resp = client.get('/ballot', headers={'Authorization': f'Bearer {expired_token}',
                                          'Accept': 'application/json'})
    assert resp.status_code == 401
    assert resp.get_json()['error'] == 'session_invalid'


def test_session_lifetime_comes_from_config(app):
    assert app.config['JWT_ACCESS_TOKEN_EXPIRES'] == timedelta(minutes=30)
