# ballot_engine/voting/tally.py

# Results computed on demand from committed Vote rows.

from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import func

from ballot_engine import db
from ballot_engine.database.models import Candidate, Vote, Voter
from ballot_engine.elections.catalog import ordered_positions


def _candidate_counts(position):
    rows = (
        db.session.query(Candidate, func.count(Vote.id))
        .outerjoin(Vote, db.and_(Vote.candidate_id == Candidate.id, Vote.position_id == position.id))
        .filter(Candidate.position_id == position.id)
        .group_by(Candidate.id)
        .order_by(Candidate.id)
        .all()
    )
    candidates = [
        {
            'id': candidate.id,
            'fullname': candidate.fullname,
            'photo': candidate.photo,
            'platform': candidate.platform,
            'partylist': candidate.partylist.name if candidate.partylist else None,
            'votes': count,
        }
        for candidate, count in rows
    ]
    # Stable sort: equal counts keep catalog order. No further tie-break.
    return sorted(candidates, key=lambda c: c['votes'], reverse=True)


def tally_election(election):
    results = []
    for position in ordered_positions(election):
        candidates = _candidate_counts(position)
        results.append({
            'position_id': position.id,
            'description': position.description,
            'max_vote': position.max_vote,
            'total_votes': sum(c['votes'] for c in candidates),
            'candidates': candidates,
        })
    return results


def turnout_percentage(voted, total):
    if not total:
        return 0
    pct = (Decimal(voted) * 100 / Decimal(total)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
    return float(pct)


def turnout(election):
    total_voters = Voter.query.filter_by(election_id=election.id).count()
    voted_count = Voter.query.filter_by(election_id=election.id, has_voted=True).count()
    total_votes = Vote.query.filter_by(election_id=election.id).count()
    return {
        'total_voters': total_voters,
        'voted_count': voted_count,
        'not_voted_count': total_voters - voted_count,
        'total_votes': total_votes,
        'turnout_percentage': turnout_percentage(voted_count, total_voters),
    }


def election_results(election):
    return {
        'election': election.to_dict(),
        'results': tally_election(election),
        'statistics': turnout(election),
    }
