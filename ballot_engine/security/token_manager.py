# ballot_engine/security/token_manager.py
from datetime import timedelta
from flask_jwt_extended import create_access_token, decode_token, get_jti
from flask import current_app, Flask
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError

# Scoped JWTs. A voter session token and a post-vote feedback token are
# both Flask-JWT-Extended access tokens; the ``scope`` claim keeps them from
# standing in for each other.

VOTER_SCOPE = 'voter'
FEEDBACK_SCOPE = 'feedback'


class TokenManager:
    def __init__(self, app: Flask = None):
        if app:
            self.init_app(app)

    def init_app(self, app: Flask):
        app.config.setdefault("JWT_SECRET_KEY", "change_this_secret_key")
        app.config.setdefault("JWT_ACCESS_TOKEN_EXPIRES", timedelta(minutes=30))
        app.config.setdefault("FEEDBACK_TOKEN_MINUTES", 30)

    def generate_token(self, identity: str, scope: str, expires_in: int = None, claims: dict = None) -> str:
        additional_claims = dict(claims or {})
        additional_claims['scope'] = scope
        expires_delta = timedelta(seconds=expires_in) if expires_in else None
        kwargs = {'expires_delta': expires_delta} if expires_delta else {}
        return create_access_token(identity=str(identity), additional_claims=additional_claims, **kwargs)

    def voter_session_token(self, voter):
        token = self.generate_token(voter.id, VOTER_SCOPE, claims={'election_id': voter.election_id})
        return token, get_jti(token)

    def feedback_token(self, voter):
        minutes = current_app.config.get("FEEDBACK_TOKEN_MINUTES", 30)
        return self.generate_token(voter.id, FEEDBACK_SCOPE, expires_in=minutes * 60,
                                   claims={'election_id': voter.election_id})

    def validate_token(self, token: str, scope: str):
        """Return the decoded claims if the token is valid for ``scope``, else None."""
        if not isinstance(token, str) or not token:
            return None
        try:
            decoded = decode_token(token, allow_expired=False)
        except (JWTExtendedException, PyJWTError) as e:
            current_app.logger.warning(f"Token validation failed: {str(e)}")
            return None
        if decoded.get('scope') != scope:
            current_app.logger.warning(f"Token scope {decoded.get('scope')!r} used where {scope!r} was required")
            return None
        return decoded
