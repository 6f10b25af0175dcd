# ballot_engine/security/input_validator.py

import re
import html
import bleach

# Shape checks and sanitisation for everything a voter types or posts.
# Semantic ballot rules (max_vote, candidate membership) live in
# elections/catalog.py; this module only turns raw request data into
# well-typed values.

FEEDBACK_EXPERIENCES = ('excellent', 'good', 'average', 'poor')


def _as_int(value):
    if isinstance(value, bool):
        raise ValueError(f"Not an identifier: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise ValueError(f"Not an identifier: {value!r}")


class InputValidator:
    def __init__(self):
        self.allowed_html_tags = []
        self.allowed_html_attributes = {}

        self.patterns = {
            'roster_id': re.compile(r'^[A-Za-z0-9][A-Za-z0-9_-]{2,49}$'),
            'election_code': re.compile(r'^[A-Za-z0-9_-]{2,30}$'),
            'email': re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'),
            'xss_script': re.compile(r'<script[^>]*>.*?</script>', re.IGNORECASE | re.DOTALL),
        }

    def sanitize_string(self, input_str, max_length=255):
        if not isinstance(input_str, str):
            raise ValueError("Input must be a string")
        if len(input_str) > max_length:
            input_str = input_str[:max_length]

        sanitized = re.sub(self.patterns['xss_script'], '', input_str)
        sanitized = bleach.clean(sanitized, tags=self.allowed_html_tags,
                                 attributes=self.allowed_html_attributes, strip=True)
        # bleach escapes what it keeps; store plain text
        return html.unescape(sanitized).strip()

    def validate_roster_id(self, roster_id):
        return isinstance(roster_id, str) and bool(self.patterns['roster_id'].match(roster_id))

    def validate_election_code(self, code):
        return isinstance(code, str) and bool(self.patterns['election_code'].match(code))

    def validate_email(self, email):
        return isinstance(email, str) and bool(self.patterns['email'].match(email))

    def parse_identifier(self, value):
        return _as_int(value)

    def normalize_selections(self, votes):
        """Turn ``{position: [candidate, ...]}`` into integer keys and lists.

        Returns ``(selections, errors)``; ``errors`` is keyed by the position
        key as it was posted. Raises ValueError when ``votes`` is not a
        mapping at all.
        """
        if not isinstance(votes, dict):
            raise ValueError("Votes must be an object keyed by position")

        selections = {}
        errors = {}
        for raw_key, raw_value in votes.items():
            try:
                position_id = _as_int(raw_key)
            except ValueError:
                errors[str(raw_key)] = 'Unknown position.'
                continue
            if not isinstance(raw_value, list):
                errors[str(raw_key)] = 'Selections must be a list.'
                continue
            try:
                selections[position_id] = [_as_int(v) for v in raw_value]
            except ValueError:
                errors[str(raw_key)] = 'Selections must be candidate identifiers.'
        return selections, errors

    def validate_feedback(self, data):
        if not isinstance(data, dict):
            raise ValueError("Feedback must be an object")

        try:
            rating = _as_int(data.get('rating'))
        except ValueError:
            raise ValueError("Rating is required")
        if not 1 <= rating <= 5:
            raise ValueError("Rating must be between 1 and 5")

        comment = data.get('comment')
        if comment is not None:
            if not isinstance(comment, str) or len(comment) > 1000:
                raise ValueError("Comment must be text of at most 1000 characters")
            comment = self.sanitize_string(comment, max_length=1000) or None

        experience = data.get('experience')
        if experience is not None and experience not in FEEDBACK_EXPERIENCES:
            raise ValueError(f"Experience must be one of {', '.join(FEEDBACK_EXPERIENCES)}")

        would_recommend = data.get('would_recommend')
        if would_recommend is not None and not isinstance(would_recommend, bool):
            raise ValueError("would_recommend must be true or false")

        improvements = data.get('improvements')
        if improvements is not None:
            if not isinstance(improvements, list) or not all(isinstance(i, str) for i in improvements):
                raise ValueError("Improvements must be a list of strings")
            improvements = [self.sanitize_string(i, max_length=100) for i in improvements[:20]]

        return {
            'rating': rating,
            'comment': comment,
            'experience': experience,
            'would_recommend': would_recommend,
            'improvements': improvements,
        }
