# tests/test_token_manager.py
import pytest
import time
from flask import Flask
from flask_jwt_extended import JWTManager, decode_token
from ballot_engine.security.token_manager import FEEDBACK_SCOPE, VOTER_SCOPE, TokenManager


@pytest.fixture
def jwt_app():
    app = Flask(__name__)
    app.config['TESTING'] = True
    app.config['JWT_SECRET_KEY'] = "test_secret_that_is_long_enough_for_hs256"
    JWTManager(app)
    with app.app_context():
        yield app


@pytest.fixture
def token_manager(jwt_app):
    return TokenManager(jwt_app)


class _Voter:
    id = 42
    election_id = 7


def test_generate_and_validate_token(token_manager):
    token = token_manager.generate_token("user1", VOTER_SCOPE, expires_in=5)
    assert isinstance(token, str)
    claims = token_manager.validate_token(token, VOTER_SCOPE)
    assert claims['sub'] == "user1"
    assert claims['scope'] == VOTER_SCOPE


def test_scope_mismatch_is_rejected(token_manager):
    token = token_manager.generate_token("user1", FEEDBACK_SCOPE, expires_in=5)
    assert token_manager.validate_token(token, VOTER_SCOPE) is None


def test_token_expiry(token_manager):
    token = token_manager.generate_token("user2", FEEDBACK_SCOPE, expires_in=1)
    assert token_manager.validate_token(token, FEEDBACK_SCOPE) is not None
    time.sleep(2)
    assert token_manager.validate_token(token, FEEDBACK_SCOPE) is None


@pytest.mark.parametrize("token", [None, "", "garbage.token.value", 12])
def test_invalid_tokens(token_manager, token):
    assert token_manager.validate_token(token, VOTER_SCOPE) is None


def test_voter_session_token_carries_election(token_manager):
    token, jti = token_manager.voter_session_token(_Voter())
    claims = decode_token(token)
    assert claims['jti'] == jti
    assert claims['sub'] == "42"
    assert claims['election_id'] == 7
    assert claims['scope'] == VOTER_SCOPE


def test_feedback_token_lifetime(jwt_app, token_manager):
    jwt_app.config['FEEDBACK_TOKEN_MINUTES'] = 30
    claims = decode_token(token_manager.feedback_token(_Voter()))
    assert claims['scope'] == FEEDBACK_SCOPE
    assert claims['exp'] - claims['iat'] == 30 * 60
