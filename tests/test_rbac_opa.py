import pytest
import requests
from unittest.mock import patch
from ballot_engine.authentication import rbac


@pytest.mark.parametrize("role,permission,expected", [
    ("administrator", "manage_elections", True),
    ("election_manager", "view_feedback", True),
    ("election_manager", "view_activity_logs", False),
    ("auditor", "view_security_log", True),
    ("auditor", "manage_elections", False),
    ("voter", "view_feedback", False),
    ("auditor", "view_results", False),
    ("administrator", "cast_ballot", False),
])
def test_local_role_permissions(app, role, permission, expected):
    assert rbac.opa_check_permission(role, permission) is expected


@pytest.mark.parametrize("role,permission,opa_result", [
    ("auditor", "view_activity_logs", True),
    ("auditor", "manage_elections", False),
    ("election_manager", "manage_elections", True),
])
def test_opa_check_permission(role, permission, opa_result):
    with patch("ballot_engine.authentication.rbac.requests.post") as mock_post:
        mock_post.return_value.status_code = 200
        mock_post.return_value.json.return_value = {"result": opa_result}
        assert rbac.opa_check_permission(role, permission, opa_url="http://opa:8181/v1/data/ballot/allow") == opa_result
        mock_post.assert_called_once_with(
            "http://opa:8181/v1/data/ballot/allow",
            json={"input": {"role": role, "permission": permission}},
            timeout=2,
        )


def test_opa_unreachable_denies():
    with patch("ballot_engine.authentication.rbac.requests.post",
               side_effect=requests.ConnectionError("refused")):
        assert rbac.opa_check_permission("administrator", "manage_elections", opa_url="http://opa") is False


def test_opa_error_status_denies():
    with patch("ballot_engine.authentication.rbac.requests.post") as mock_post:
        mock_post.return_value.status_code = 500
        assert rbac.opa_check_permission("administrator", "manage_elections", opa_url="http://opa") is False


def test_get_permissions():
    assert rbac.rbac_service.get_permissions("auditor") == rbac.ROLE_PERMISSIONS[rbac.UserRole.AUDITOR]


def test_require_permission_allows(monkeypatch):
    monkeypatch.setattr(rbac, "opa_check_permission", lambda r, p: True)
    from flask import Flask
    app = Flask(__name__)
    app.secret_key = "test"

    @app.route("/test")
    @rbac.require_permission(rbac.Permission.VIEW_FEEDBACK)
    def test_view():
        return "ok"

    with app.test_client() as client:
        with client.session_transaction() as sess:
            sess["user_role"] = "auditor"
        resp = client.get("/test")
        assert resp.status_code == 200
        assert resp.data == b"ok"


def test_require_permission_denies(monkeypatch):
    monkeypatch.setattr(rbac, "opa_check_permission", lambda r, p: False)
    from flask import Flask
    app = Flask(__name__)
    app.secret_key = "test"

    @app.route("/test")
    @rbac.require_permission(rbac.Permission.MANAGE_ELECTIONS)
    def test_view():
        return "fail"

    with app.test_client() as client:
        with client.session_transaction() as sess:
            sess["user_role"] = "auditor"
        assert client.get("/test").status_code == 403


def test_require_permission_needs_staff_session():
    from flask import Flask
    app = Flask(__name__)
    app.secret_key = "test"

    @app.route("/test")
    @rbac.require_permission(rbac.Permission.VIEW_FEEDBACK)
    def test_view():
        return "fail"

    with app.test_client() as client:
        assert client.get("/test").status_code == 401
