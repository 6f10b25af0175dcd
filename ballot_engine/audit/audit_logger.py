# ballot_engine/audit/audit_logger.py

import os
import json
import hashlib
import base64
import logging
import threading
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives import serialization

from ballot_engine import app
from ballot_engine.database.models import utcnow

logger = logging.getLogger(__name__)

# Append-only security event file for things that have no voter row to hang
# on: rejected logins, commit conflicts, storage failures. Each line is
# chained to the previous one by hash and signed with Ed25519.


class SecurityEventLog:
    def __init__(self, log_dir='logs', signing_key_pem=None, key_file=None):
        self.log_dir = log_dir
        self.log_file = os.path.join(log_dir, 'security.log')
        self.previous_hash = None
        self._lock = threading.Lock()

        os.makedirs(log_dir, exist_ok=True)

        if signing_key_pem:
            self.signing_key = serialization.load_pem_private_key(signing_key_pem.encode(), password=None)
        elif key_file:
            self.signing_key = self._load_or_create_key(key_file)
        else:
            self.signing_key = Ed25519PrivateKey.generate()
        self._load_previous_hash()

    @classmethod
    def from_config(cls, config):
        """The application's log: a configured key, else one kept beside the log file."""
        log_dir = config['AUDIT_LOG_DIR']
        return cls(
            log_dir=log_dir,
            signing_key_pem=config.get('AUDIT_SIGNING_KEY'),
            key_file=config.get('AUDIT_SIGNING_KEY_FILE') or os.path.join(log_dir, 'security_signing_key.pem'),
        )

    @staticmethod
    def _load_or_create_key(key_file):
        if os.path.exists(key_file):
            with open(key_file, 'rb') as f:
                return serialization.load_pem_private_key(f.read(), password=None)

        key = Ed25519PrivateKey.generate()
        pem = key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption())
        # O_EXCL: a second worker starting at the same time reads the winner's key
        try:
            fd = os.open(key_file, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        except FileExistsError:
            with open(key_file, 'rb') as f:
                return serialization.load_pem_private_key(f.read(), password=None)
        with os.fdopen(fd, 'wb') as f:
            f.write(pem)
        logger.info('Generated security log signing key at %s', key_file)
        return key

    def _load_previous_hash(self):
        if not os.path.exists(self.log_file):
            return
        with open(self.log_file, 'r') as f:
            lines = [line for line in f if line.strip()]
        if lines:
            try:
                self.previous_hash = json.loads(lines[-1]).get('hash')
            except ValueError:
                logger.warning('Last security log line is not JSON; starting a new chain')
                self.previous_hash = None

    def log_event(self, event_type, data, election_id=None):
        """Append one event. Never raises; a write failure is logged."""
        with self._lock:
            try:
                entry = {
                    "timestamp": utcnow().isoformat(),
                    "event_type": event_type,
                    "election_id": election_id,
                    "data": data,
                    "previous_hash": self.previous_hash,
                }
                entry_json = json.dumps(entry, sort_keys=True)
                entry['hash'] = hashlib.sha256(entry_json.encode()).hexdigest()
                entry['signature'] = base64.b64encode(self.signing_key.sign(entry_json.encode())).decode()

                with open(self.log_file, 'a') as f:
                    f.write(json.dumps(entry) + "\n")

                self.previous_hash = entry['hash']
            except (OSError, TypeError, ValueError):
                logger.exception('Security log write failed for %s', event_type)

    def read_entries(self, limit=None):
        if not os.path.exists(self.log_file):
            return []
        with open(self.log_file, 'r') as f:
            entries = [json.loads(line) for line in f if line.strip()]
        entries.reverse()
        return entries[:limit] if limit else entries

    def verify_log_integrity(self):
        if not os.path.exists(self.log_file):
            return True
        public_key = self.signing_key.public_key()
        previous_hash = None
        try:
            with open(self.log_file, 'r') as f:
                for line in f:
                    if not line.strip():
                        continue
                    entry = json.loads(line)
                    if entry.get('previous_hash') != previous_hash:
                        return False
                    signature = base64.b64decode(entry.pop('signature'))
                    recorded_hash = entry.pop('hash')
                    entry_json = json.dumps(entry, sort_keys=True).encode()
                    if hashlib.sha256(entry_json).hexdigest() != recorded_hash:
                        return False
                    public_key.verify(signature, entry_json)
                    previous_hash = recorded_hash
        except (ValueError, KeyError, InvalidSignature):
            return False
        return True


security_log = SecurityEventLog.from_config(app.config)
