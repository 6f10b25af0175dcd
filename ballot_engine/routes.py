# ballot_engine/routes.py

# HTTP surface of the ballot engine. Voter routes authenticate through the
# voter gate (JWT cookie), staff routes through the Flask session and RBAC.

from flask import request, jsonify, session, redirect, url_for, abort, g
import logging
from datetime import datetime
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from flask_jwt_extended import set_access_cookies, unset_jwt_cookies
from werkzeug.exceptions import HTTPException

from ballot_engine import app, limiter, db
from ballot_engine.audit.activity_log import BALLOT_ACCESSED, RESULTS_VIEWED, query_activity, record_view
from ballot_engine.audit.audit_logger import security_log
from ballot_engine.authentication.rbac import Permission, require_permission
from ballot_engine.authentication.voter_gate import VoterGate, credential_hasher, optional_voter, voter_required
from ballot_engine.database.models import Election, User, utcnow
from ballot_engine.elections.catalog import ballot_for
from ballot_engine.elections.registry import active_elections, latest_election, toggle_status
from ballot_engine.exceptions import BallotError, InvalidCredentials
from ballot_engine.security.input_validator import InputValidator
from ballot_engine.voting.feedback import feedback_statistics, submit_feedback
from ballot_engine.voting.submission import BallotService
from ballot_engine.voting.tally import election_results

logger = logging.getLogger(__name__)

voter_gate = VoterGate()
ballot_service = BallotService()
validator = InputValidator()


def _payload():
    if request.is_json:
        data = request.get_json(silent=True)
        return data if isinstance(data, dict) else {}
    return request.form.to_dict()


def _votes_from_request():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return None
    return data.get('votes')


@app.errorhandler(BallotError)
def handle_ballot_error(error):
    if error.detail:
        logger.info('%s: %s', type(error).__name__, error.detail)
    return jsonify(error.to_dict()), error.status_code


@app.errorhandler(HTTPException)
def handle_http_error(error):
    return jsonify({
        'success': False,
        'error': error.name,
        'message': error.description,
        'path': request.path,
    }), error.code


@app.errorhandler(SQLAlchemyError)
def handle_storage_error(error):
    db.session.rollback()
    logger.exception('Unhandled database error on %s', request.path)
    return jsonify({'success': False, 'error': 'storage_failure',
                    'message': 'Something went wrong. Please try again.'}), 503


@app.route('/health')
def health():
    try:
        db.session.execute(text('SELECT 1'))
        db_status = 'connected'
    except SQLAlchemyError as e:
        logger.error(f'Database connection check failed: {e}')
        db_status = 'disconnected'
    code = 200 if db_status == 'connected' else 503
    return jsonify({'status': 'healthy' if code == 200 else 'degraded', 'database': db_status,
                    'timestamp': utcnow().isoformat()}), code


# ---------------------------------------------------------------- voter gate

@app.route('/voter/login', methods=['GET'])
def voter_login_form():
    return jsonify({
        'elections': [
            {'id': e.id, 'name': e.name, 'election_code': e.election_code}
            for e in active_elections()
        ]
    })


@app.route('/voter/elections')
def voter_elections():
    return voter_login_form()


@app.route('/voter/login', methods=['POST'])
@limiter.limit(lambda: app.config['LOGIN_RATE_LIMIT'])
def voter_login():
    data = _payload()
    election_id = data.get('election_id')
    roster_id = data.get('roster_id') or data.get('school_id')
    credential = data.get('credential') or data.get('password')
    try:
        voter, token = voter_gate.login(election_id, roster_id, credential)
    except BallotError as e:
        # One message whatever went wrong; the reason goes to the security log
        logger.warning('Voter login rejected from %s: %s', request.remote_addr, e.code)
        security_log.log_event('voter_login_rejected', {
            'reason': e.code,
            'roster_id': roster_id if isinstance(roster_id, str) else None,
            'ip': request.remote_addr,
        }, election_id=election_id if isinstance(election_id, int) else None)
        if e.status_code >= 500:
            raise
        raise InvalidCredentials(e.detail)

    resp = redirect(url_for('show_ballot'))
    set_access_cookies(resp, token)
    return resp


@app.route('/voter/logout', methods=['POST'])
def voter_logout():
    voter, jti = optional_voter()
    if voter is not None:
        voter_gate.logout(voter, jti)
    resp = jsonify({'success': True, 'message': 'You have been logged out of voting.'})
    unset_jwt_cookies(resp)
    return resp


# -------------------------------------------------------------------- ballot

@app.route('/ballot')
@voter_required
def show_ballot():
    voter = g.voter
    election = db.session.get(Election, voter.election_id)
    payload = ballot_for(election)
    payload['voter'] = {'id': voter.id, 'school_id': voter.school_id}
    record_view(voter, BALLOT_ACCESSED)
    return jsonify(payload)


@app.route('/ballot/preview', methods=['POST'])
@voter_required
def preview_ballot():
    return jsonify(ballot_service.preview(g.voter, _votes_from_request()))


@app.route('/ballot/submit', methods=['POST'])
@voter_required
def submit_ballot():
    receipt = ballot_service.cast(g.voter, _votes_from_request())
    resp = jsonify({
        'success': True,
        'message': 'Your vote has been successfully recorded!',
        'confirmation_url': url_for('ballot_confirmation', ref=receipt.reference),
        **receipt.to_dict(),
    })
    unset_jwt_cookies(resp)
    return resp, 201


@app.route('/ballot/confirmation')
def ballot_confirmation():
    return jsonify({
        'message': 'Thank you for voting. Your ballot has been recorded.',
        'reference': request.args.get('ref'),
    })


@app.route('/ballot/receipt/verify', methods=['POST'])
def verify_receipt():
    data = request.get_json(silent=True)
    signed = data.get('signed_receipt', data) if isinstance(data, dict) else None
    valid = isinstance(signed, dict) and ballot_service.verify_receipt(signed)
    return jsonify({'valid': bool(valid)})


@app.route('/ballot/feedback', methods=['POST'])
def ballot_feedback():
    data = _payload()
    submit_feedback(data.get('token'), data)
    return jsonify({'success': True, 'message': 'Thank you for your feedback!'}), 201


# ------------------------------------------------------------------- results

@app.route('/results')
def results():
    raw_id = request.args.get('election_id')
    if raw_id is None or raw_id == '':
        election = latest_election()
    else:
        try:
            election = db.session.get(Election, validator.parse_identifier(raw_id))
        except ValueError:
            election = None
    if election is None:
        abort(404, description='Election not found')

    payload = election_results(election)
    voter, _ = optional_voter()
    if voter is not None and voter.election_id == election.id:
        record_view(voter, RESULTS_VIEWED)
    return jsonify(payload)


# --------------------------------------------------------------------- staff

@app.route('/login', methods=['POST'])
@limiter.limit(lambda: app.config['LOGIN_RATE_LIMIT'])
def staff_login():
    data = _payload()
    email = data.get('email')
    password = data.get('password')
    user = User.query.filter_by(email=email).first() if validator.validate_email(email) else None
    if user is None or not credential_hasher.verify(password, user.password_hash):
        if user is None:
            credential_hasher.burn_verify(password)
        security_log.log_event('staff_login_failed', {'email': email if isinstance(email, str) else None,
                                                      'ip': request.remote_addr})
        return jsonify({'success': False, 'error': 'invalid_credentials',
                        'message': 'Invalid email or password.'}), 401

    session.clear()
    session['user_id'] = user.id
    session['user_role'] = user.role.lower()
    session['login_time'] = utcnow().isoformat()
    security_log.log_event('staff_login', {'user_id': user.id, 'role': user.role})
    return jsonify({'success': True, 'role': user.role})


@app.route('/logout', methods=['POST'])
def staff_logout():
    session.clear()
    return jsonify({'success': True})


def _parse_date(value, name):
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace('Z', '+00:00')).replace(tzinfo=None)
    except ValueError:
        abort(400, description=f'Invalid {name} format')


@app.route('/admin/activity-logs')
@require_permission(Permission.VIEW_ACTIVITY_LOGS)
def admin_activity_logs():
    page = request.args.get('page', 1, type=int)
    per_page = min(request.args.get('per_page', 50, type=int), 200)
    query = query_activity(
        action=request.args.get('action') or None,
        voter_id=request.args.get('voter_id', type=int),
        election_id=request.args.get('election_id', type=int),
        date_from=_parse_date(request.args.get('date_from'), 'date_from'),
        date_to=_parse_date(request.args.get('date_to'), 'date_to'),
    )
    paginated = query.paginate(page=page, per_page=per_page, error_out=False)
    return jsonify({
        'items': [entry.to_dict() for entry in paginated.items],
        'total': paginated.total,
        'page': page,
        'per_page': per_page,
        'pages': paginated.pages,
    })


@app.route('/admin/security-log')
@require_permission(Permission.VIEW_SECURITY_LOG)
def admin_security_log():
    return jsonify({
        'entries': security_log.read_entries(limit=request.args.get('limit', 200, type=int)),
        'integrity_ok': security_log.verify_log_integrity(),
    })


@app.route('/admin/elections/<int:election_id>/feedback')
@require_permission(Permission.VIEW_FEEDBACK)
def admin_feedback(election_id):
    election = db.get_or_404(Election, election_id)
    return jsonify({'election': election.to_dict(), 'statistics': feedback_statistics(election)})


@app.route('/admin/elections/<int:election_id>/toggle-status', methods=['POST'])
@require_permission(Permission.MANAGE_ELECTIONS)
def admin_toggle_election(election_id):
    election = db.get_or_404(Election, election_id)
    toggle_status(election)
    return jsonify({'success': True, 'election': election.to_dict()})
