"""Server-to-server request signing for CloudKit Web Services."""

import base64
import hashlib
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec

KEY_ID_HEADER = "X-Apple-CloudKit-Request-KeyID"
DATE_HEADER = "X-Apple-CloudKit-Request-ISO8601Date"
SIGNATURE_HEADER = "X-Apple-CloudKit-Request-SignatureV1"


class RequestSigner:
    """Signs requests with a server-to-server key.

    The signed message is ``<date>:<base64 sha256 of body>:<subpath>``, signed
    with ECDSA over SHA-256 using the key registered in the CloudKit dashboard.
    """

    def __init__(self, key_id: str, private_key: ec.EllipticCurvePrivateKey):
        if not isinstance(private_key, ec.EllipticCurvePrivateKey):
            raise TypeError("CloudKit server-to-server keys must be EC private keys")
        self.key_id = key_id
        self._private_key = private_key

    @classmethod
    def from_pem(cls, key_id: str, pem: bytes, password: Optional[bytes] = None) -> "RequestSigner":
        private_key = serialization.load_pem_private_key(pem, password=password)
        return cls(key_id, private_key)

    @classmethod
    def from_file(cls, key_id: str, path: Path) -> "RequestSigner":
        return cls.from_pem(key_id, Path(path).read_bytes())

    @staticmethod
    def format_date(moment: datetime) -> str:
        """ISO 8601 date in UTC without fractional seconds."""
        return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")

    @staticmethod
    def message(date: str, body: bytes, subpath: str) -> bytes:
        body_hash = base64.b64encode(hashlib.sha256(body).digest()).decode("ascii")
        return f"{date}:{body_hash}:{subpath}".encode("utf-8")

    def sign_headers(self, body: bytes, subpath: str, now: Optional[datetime] = None) -> Dict[str, str]:
        date = self.format_date(now or datetime.now(timezone.utc))
        signature = self._private_key.sign(self.message(date, body, subpath), ec.ECDSA(hashes.SHA256()))
        return {
            KEY_ID_HEADER: self.key_id,
            DATE_HEADER: date,
            SIGNATURE_HEADER: base64.b64encode(signature).decode("ascii"),
        }
