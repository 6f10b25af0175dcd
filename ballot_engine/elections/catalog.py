# ballot_engine/elections/catalog.py

# Positions, candidates and partylists of an election, plus the ballot rules
# derived from them. Preview and submit both validate through BallotRules so
# the two paths always agree.

import logging
from dataclasses import dataclass
from typing import Dict, FrozenSet, List

from flask import current_app

from ballot_engine import db
from ballot_engine.database.models import Candidate, Partylist, Position
from ballot_engine.exceptions import ValidationFailed
from ballot_engine.security.input_validator import InputValidator

logger = logging.getLogger(__name__)
validator = InputValidator()


def ordered_positions(election) -> List[Position]:
    return (
        Position.query
        .filter_by(election_id=election.id)
        .order_by(Position.priority, Position.id)
        .all()
    )


def ballot_for(election) -> dict:
    """Election summary with ordered positions and their candidates."""
    positions = []
    for position in ordered_positions(election):
        entry = position.to_dict()
        entry['candidates'] = [c.to_dict() for c in position.candidates]
        positions.append(entry)
    return {'election': election.to_dict(), 'positions': positions}


@dataclass(frozen=True)
class PositionRule:
    position_id: int
    description: str
    max_vote: int
    candidate_ids: FrozenSet[int]


class BallotRules:
    """Validation descriptor for one election's ballot.

    Built from the ordered positions: position -> (max selections, allowed
    candidates). ``validate`` returns the normalised selections or raises
    ValidationFailed with one message per offending position.
    """

    def __init__(self, election_id, rules: List[PositionRule], allow_abstention=False):
        self.election_id = election_id
        self.rules = rules
        self.allow_abstention = allow_abstention
        self._by_id = {rule.position_id: rule for rule in rules}

    @classmethod
    def for_election(cls, election, allow_abstention=None):
        if allow_abstention is None:
            allow_abstention = current_app.config.get('BALLOT_ALLOW_ABSTENTION', False)
        rules = []
        for position in ordered_positions(election):
            candidate_ids = frozenset(
                c.id for c in position.candidates if c.election_id == election.id
            )
            rules.append(PositionRule(position.id, position.description, position.max_vote, candidate_ids))
        return cls(election.id, rules, allow_abstention=allow_abstention)

    def rule_for(self, position_id) -> PositionRule:
        return self._by_id[position_id]

    def validate(self, raw_votes) -> Dict[int, List[int]]:
        try:
            selections, errors = validator.normalize_selections(raw_votes)
        except ValueError as e:
            raise ValidationFailed({'votes': str(e)})

        for position_id in selections:
            if position_id not in self._by_id:
                errors[str(position_id)] = 'Position does not belong to this election.'

        for rule in self.rules:
            key = str(rule.position_id)
            if key in errors:
                continue
            if rule.position_id not in selections:
                errors[key] = f'A selection for {rule.description} is required.'
                continue
            chosen = selections[rule.position_id]
            if not chosen and not self.allow_abstention:
                errors[key] = f'A selection for {rule.description} is required.'
            elif len(chosen) > rule.max_vote:
                errors[key] = f'You may select at most {rule.max_vote} for {rule.description}.'
            elif len(set(chosen)) != len(chosen):
                errors[key] = f'A candidate was selected more than once for {rule.description}.'
            elif not set(chosen) <= rule.candidate_ids:
                errors[key] = f'Invalid candidate selected for {rule.description}.'

        if errors:
            logger.info('Ballot rejected for election %s: %s', self.election_id, sorted(errors))
            raise ValidationFailed(errors)

        # keep ballot order
        return {rule.position_id: selections[rule.position_id] for rule in self.rules}

    def resolve(self, selections) -> list:
        """Selections rendered back with candidate details, in ballot order."""
        wanted = {cid for chosen in selections.values() for cid in chosen}
        candidates = {c.id: c for c in Candidate.query.filter(Candidate.id.in_(wanted)).all()} if wanted else {}
        resolved = []
        for rule in self.rules:
            if rule.position_id not in selections:
                continue
            resolved.append({
                'position': {
                    'id': rule.position_id,
                    'description': rule.description,
                    'max_vote': rule.max_vote,
                },
                'candidates': [
                    {
                        'id': cid,
                        'fullname': candidates[cid].fullname,
                        'photo': candidates[cid].photo,
                        'partylist': candidates[cid].partylist.name if candidates[cid].partylist else None,
                    }
                    for cid in selections[rule.position_id]
                ],
            })
        return resolved


def add_position(election, description, max_vote=1, priority=None):
    if max_vote < 1:
        raise ValidationFailed({'max_vote': 'Maximum votes must be at least 1.'})
    if priority is None:
        priority = len(ordered_positions(election)) + 1
    position = Position(election_id=election.id, description=description, max_vote=max_vote, priority=priority)
    db.session.add(position)
    db.session.commit()
    return position


def add_partylist(election, name, description=None):
    partylist = Partylist(election_id=election.id, name=name, description=description)
    db.session.add(partylist)
    db.session.commit()
    return partylist


def add_candidate(position, firstname, lastname, partylist=None, photo=None, platform=None):
    if partylist is not None and partylist.election_id != position.election_id:
        raise ValidationFailed({'partylist': 'Partylist belongs to a different election.'})
    candidate = Candidate(
        election_id=position.election_id,
        position_id=position.id,
        partylist_id=partylist.id if partylist else None,
        firstname=firstname,
        lastname=lastname,
        photo=photo,
        platform=platform,
    )
    db.session.add(candidate)
    db.session.commit()
    return candidate
