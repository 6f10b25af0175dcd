# ballot_engine/database/models.py

from ballot_engine import db
from datetime import datetime, timezone


def utcnow():
    """Naive UTC timestamp, the form every DateTime column here stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(db.Model):
    """Institutional staff account; never used to cast a ballot."""
    __tablename__ = 'users'
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(254), unique=True, nullable=False)
    password_hash = db.Column(db.String(200), nullable=False)  # Argon2id
    role = db.Column(db.String(30), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)


class Election(db.Model):
    __tablename__ = 'elections'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    election_code = db.Column(db.String(30), unique=True, nullable=False)
    enabled = db.Column(db.Boolean, nullable=False, default=False)
    end_time = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    positions = db.relationship('Position', backref='election', lazy=True,
                                order_by='[Position.priority, Position.id]')
    partylists = db.relationship('Partylist', backref='election', lazy=True)
    voters = db.relationship('Voter', backref='election', lazy='dynamic')

    def to_dict(self):
        from ballot_engine.elections.registry import election_status
        return {
            'id': self.id,
            'name': self.name,
            'election_code': self.election_code,
            'enabled': self.enabled,
            'end_time': self.end_time.isoformat() if self.end_time else None,
            'status': election_status(self),
        }

    def __repr__(self):
        return f'<Election {self.election_code}>'


class Position(db.Model):
    __tablename__ = 'positions'
    id = db.Column(db.Integer, primary_key=True)
    election_id = db.Column(db.Integer, db.ForeignKey('elections.id'), nullable=False, index=True)
    description = db.Column(db.String(150), nullable=False)
    max_vote = db.Column(db.Integer, nullable=False, default=1)
    priority = db.Column(db.Integer, nullable=False, default=0)

    candidates = db.relationship('Candidate', backref='position', lazy=True, order_by='Candidate.id')

    __table_args__ = (
        db.CheckConstraint('max_vote >= 1', name='ck_positions_max_vote'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'description': self.description,
            'max_vote': self.max_vote,
            'priority': self.priority,
        }


class Partylist(db.Model):
    __tablename__ = 'partylists'
    id = db.Column(db.Integer, primary_key=True)
    election_id = db.Column(db.Integer, db.ForeignKey('elections.id'), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=True)

    candidates = db.relationship('Candidate', backref='partylist', lazy=True)


class Candidate(db.Model):
    __tablename__ = 'candidates'
    id = db.Column(db.Integer, primary_key=True)
    election_id = db.Column(db.Integer, db.ForeignKey('elections.id'), nullable=False, index=True)
    position_id = db.Column(db.Integer, db.ForeignKey('positions.id'), nullable=False, index=True)
    partylist_id = db.Column(db.Integer, db.ForeignKey('partylists.id'), nullable=True)
    firstname = db.Column(db.String(100), nullable=False)
    lastname = db.Column(db.String(100), nullable=False)
    photo = db.Column(db.String(255), nullable=True)
    platform = db.Column(db.Text, nullable=True)

    @property
    def fullname(self):
        return f'{self.firstname} {self.lastname}'

    def to_dict(self):
        return {
            'id': self.id,
            'fullname': self.fullname,
            'photo': self.photo,
            'platform': self.platform,
            'partylist': self.partylist.name if self.partylist else None,
        }


class Voter(db.Model):
    __tablename__ = 'voters'
    id = db.Column(db.Integer, primary_key=True)
    election_id = db.Column(db.Integer, db.ForeignKey('elections.id'), nullable=False, index=True)
    school_id = db.Column(db.String(50), nullable=False)
    password_hash = db.Column(db.String(200), nullable=False)  # Argon2id
    # Only ever flipped false -> true by the conditional update in voting/submission.py
    has_voted = db.Column(db.Boolean, nullable=False, default=False)
    voted_at = db.Column(db.DateTime, nullable=True)
    generation_batch = db.Column(db.String(40), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    votes = db.relationship('Vote', backref='voter', lazy=True)

    __table_args__ = (
        db.UniqueConstraint('election_id', 'school_id', name='uq_voters_election_school'),
    )

    def __repr__(self):
        return f'<Voter {self.school_id} in election {self.election_id}>'


class Vote(db.Model):
    __tablename__ = 'votes'
    id = db.Column(db.Integer, primary_key=True)
    election_id = db.Column(db.Integer, db.ForeignKey('elections.id'), nullable=False, index=True)
    voter_id = db.Column(db.Integer, db.ForeignKey('voters.id'), nullable=False, index=True)
    position_id = db.Column(db.Integer, db.ForeignKey('positions.id'), nullable=False)
    candidate_id = db.Column(db.Integer, db.ForeignKey('candidates.id'), nullable=False)
    timestamp = db.Column(db.DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        db.Index('ix_votes_position_candidate', 'position_id', 'candidate_id'),
        db.UniqueConstraint('voter_id', 'candidate_id', name='uq_votes_voter_candidate'),
    )

    def __repr__(self):
        return f'<Vote {self.id} by Voter {self.voter_id}>'


class VoterSession(db.Model):
    """Server-side half of a voter login; the JWT carries its jti."""
    __tablename__ = 'voter_sessions'
    jti = db.Column(db.String(64), primary_key=True)
    voter_id = db.Column(db.Integer, db.ForeignKey('voters.id'), nullable=False, index=True)
    election_id = db.Column(db.Integer, db.ForeignKey('elections.id'), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    revoked_at = db.Column(db.DateTime, nullable=True)


class VoterActivityLog(db.Model):
    __tablename__ = 'voter_activity_logs'
    id = db.Column(db.Integer, primary_key=True)
    voter_id = db.Column(db.Integer, db.ForeignKey('voters.id'), nullable=False, index=True)
    election_id = db.Column(db.Integer, db.ForeignKey('elections.id'), nullable=False, index=True)
    action = db.Column(db.String(40), nullable=False, index=True)
    details = db.Column('metadata', db.JSON, nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    def to_dict(self):
        return {
            'id': self.id,
            'voter_id': self.voter_id,
            'election_id': self.election_id,
            'action': self.action,
            'metadata': self.details,
            'ip_address': self.ip_address,
            'user_agent': self.user_agent,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class VoterFeedback(db.Model):
    __tablename__ = 'voter_feedback'
    id = db.Column(db.Integer, primary_key=True)
    voter_id = db.Column(db.Integer, db.ForeignKey('voters.id'), nullable=False)
    election_id = db.Column(db.Integer, db.ForeignKey('elections.id'), nullable=False, index=True)
    rating = db.Column(db.Integer, nullable=False)
    comment = db.Column(db.Text, nullable=True)
    experience = db.Column(db.String(20), nullable=True)
    would_recommend = db.Column(db.Boolean, nullable=True)
    improvements = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        db.UniqueConstraint('voter_id', 'election_id', name='uq_feedback_voter_election'),
    )
