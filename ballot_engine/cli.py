# ballot_engine/cli.py

# Administration commands, run as `flask --app ballot_engine <command>`.

import secrets

import click
from sqlalchemy.exc import IntegrityError

from ballot_engine import app, db
from ballot_engine.authentication.rbac import UserRole
from ballot_engine.authentication.voter_gate import credential_hasher, validator
from ballot_engine.database.models import Election, Partylist, Position, User, Voter, utcnow
from ballot_engine.elections.catalog import add_candidate, add_partylist, add_position
from ballot_engine.elections.registry import create_election
from ballot_engine.exceptions import ValidationFailed


def _get_or_fail(model, ident, label):
    obj = db.session.get(model, ident)
    if obj is None:
        raise click.ClickException(f'{label} {ident} not found')
    return obj


@app.cli.command('init-db')
def init_db():
    """Create all tables (development; use `flask db upgrade` otherwise)."""
    db.create_all()
    click.echo('Database tables created.')


@app.cli.command('create-staff')
@click.argument('email')
@click.argument('role', type=click.Choice([r.value for r in UserRole]))
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
def create_staff(email, role, password):
    if not validator.validate_email(email):
        raise click.ClickException('Invalid email address')
    try:
        password_hash = credential_hasher.hash_secret(password)
    except ValueError as e:
        raise click.ClickException(str(e))
    db.session.add(User(email=email, password_hash=password_hash, role=role))
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise click.ClickException(f'User {email} already exists')
    click.echo(f'User {email} created with role {role}.')


@app.cli.command('create-election')
@click.argument('name')
@click.argument('code')
@click.option('--enabled/--disabled', default=False)
@click.option('--ends', 'end_time', type=click.DateTime(), default=None, help='UTC end time')
def create_election_command(name, code, enabled, end_time):
    if not validator.validate_election_code(code):
        raise click.ClickException('Invalid election code')
    try:
        election = create_election(validator.sanitize_string(name), code, enabled=enabled, end_time=end_time)
    except ValidationFailed as e:
        raise click.ClickException('; '.join(e.errors.values()))
    click.echo(f'Election {election.id} created ({election.election_code}).')


@app.cli.command('add-position')
@click.argument('election_id', type=int)
@click.argument('description')
@click.option('--max-vote', default=1, type=int)
@click.option('--priority', default=None, type=int)
def add_position_command(election_id, description, max_vote, priority):
    election = _get_or_fail(Election, election_id, 'Election')
    try:
        position = add_position(election, validator.sanitize_string(description), max_vote, priority)
    except ValidationFailed as e:
        raise click.ClickException('; '.join(e.errors.values()))
    click.echo(f'Position {position.id} added: {position.description} (max {position.max_vote}).')


@app.cli.command('add-partylist')
@click.argument('election_id', type=int)
@click.argument('name')
@click.option('--description', default=None)
def add_partylist_command(election_id, name, description):
    election = _get_or_fail(Election, election_id, 'Election')
    partylist = add_partylist(election, validator.sanitize_string(name), description)
    click.echo(f'Partylist {partylist.id} added: {partylist.name}.')


@app.cli.command('add-candidate')
@click.argument('position_id', type=int)
@click.argument('firstname')
@click.argument('lastname')
@click.option('--partylist-id', default=None, type=int)
@click.option('--platform', default=None)
@click.option('--photo', default=None)
def add_candidate_command(position_id, firstname, lastname, partylist_id, platform, photo):
    position = _get_or_fail(Position, position_id, 'Position')
    partylist = _get_or_fail(Partylist, partylist_id, 'Partylist') if partylist_id else None
    try:
        candidate = add_candidate(
            position,
            validator.sanitize_string(firstname),
            validator.sanitize_string(lastname),
            partylist=partylist,
            photo=photo,
            platform=validator.sanitize_string(platform, max_length=2000) if platform else None,
        )
    except ValidationFailed as e:
        raise click.ClickException('; '.join(e.errors.values()))
    click.echo(f'Candidate {candidate.id} added: {candidate.fullname}.')


@app.cli.command('register-voters')
@click.argument('election_id', type=int)
@click.argument('roster_ids', nargs=-1, required=True)
@click.option('--default-password', default=None,
              help='Give every voter this credential instead of a generated one.')
def register_voters(election_id, roster_ids, default_password):
    """Add voters to an election roster and print each credential once."""
    election = _get_or_fail(Election, election_id, 'Election')
    bad = [r for r in roster_ids if not validator.validate_roster_id(r)]
    if bad:
        raise click.ClickException(f'Invalid roster ids: {", ".join(bad)}')

    batch = f'{utcnow():%Y%m%d%H%M%S}-{secrets.token_hex(2)}'
    issued = []
    for roster_id in dict.fromkeys(roster_ids):
        credential = default_password or credential_hasher.generate_credential()
        db.session.add(Voter(
            election_id=election.id,
            school_id=roster_id,
            password_hash=credential_hasher.hash_secret(credential, enforce_policy=False),
            generation_batch=batch,
        ))
        issued.append((roster_id, credential))
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise click.ClickException('One or more roster ids are already registered for this election')

    click.echo(f'Registered {len(issued)} voters in batch {batch}:')
    for roster_id, credential in issued:
        click.echo(f'{roster_id}\t{credential}')
