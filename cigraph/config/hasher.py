"""
Canonical hashing and signing of emitted manifests.
"""
import hashlib
import hmac
import json
import logging
from typing import Any, Dict, Sequence


class ManifestHasher:
    """Computes canonical digests and signatures for manifest documents"""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def canonical_json(self, documents: Sequence[Dict[str, Any]]) -> str:
        """Canonical JSON (sorted keys, no whitespace) so formatting never changes the hash"""
        return json.dumps(list(documents), sort_keys=True, separators=(',', ':'))

    def compute_digest(self, documents: Sequence[Dict[str, Any]]) -> str:
        """
        Compute SHA256 of the parsed documents.

        Args:
            documents: Manifest documents in emission order

        Returns:
            SHA256 hash hex string
        """
        return hashlib.sha256(self.canonical_json(documents).encode('utf-8')).hexdigest()

    def sign(self, payload: str, key: str) -> str:
        """HMAC-SHA256 of the serialized manifest body"""
        if not key:
            raise ValueError("Signing key must be a non-empty string")
        return hmac.new(key.encode('utf-8'), payload.encode('utf-8'), hashlib.sha256).hexdigest()

    def signature_document(self, payload: str, key: str) -> Dict[str, Any]:
        signature = self.sign(payload, key)
        self.logger.debug(f"Signed manifest ({len(payload)} bytes)")
        return {'kind': 'signature', 'hmac': signature}
