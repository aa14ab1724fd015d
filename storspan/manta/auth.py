"""HTTP Signature authentication for Manta requests.

Manta authenticates every request by an RSA or ECDSA signature over the
``Date`` header, made with an SSH key registered on the account::

    Authorization: Signature keyId="/<user>/keys/<md5 fingerprint>",
        algorithm="rsa-sha256",headers="date",signature="<base64>"

The key is either given explicitly (``MANTA_KEY_PATH``) or located in
``~/.ssh`` by matching its fingerprint against ``MANTA_KEY_ID``, which may be
in either the legacy MD5 (``aa:bb:...``) or the ``SHA256:...`` form.
"""

from __future__ import annotations

import base64
import hashlib
import logging
from collections.abc import Generator
from email.utils import formatdate
from pathlib import Path

import httpx
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa

from storspan.manta.errors import MantaAuthError

logger = logging.getLogger(__name__)

# Files in ~/.ssh that are never private keys
_SKIP_FILES = frozenset({"authorized_keys", "config", "known_hosts", "known_hosts.old"})


def load_private_key(path: Path) -> rsa.RSAPrivateKey | ec.EllipticCurvePrivateKey:
    """Load an unencrypted RSA or ECDSA private key in OpenSSH or PEM format."""
    try:
        data = path.read_bytes()
    except OSError as e:
        raise MantaAuthError(f"read key {path}: {e}") from e

    try:
        if b"OPENSSH PRIVATE KEY" in data:
            key = serialization.load_ssh_private_key(data, password=None)
        else:
            key = serialization.load_pem_private_key(data, password=None)
    except (TypeError, ValueError) as e:
        raise MantaAuthError(f"load key {path}: {e}") from e

    if not isinstance(key, rsa.RSAPrivateKey | ec.EllipticCurvePrivateKey):
        raise MantaAuthError(
            f"load key {path}: unsupported key type {type(key).__name__}"
        )
    return key


def md5_fingerprint(key: rsa.RSAPrivateKey | ec.EllipticCurvePrivateKey) -> str:
    """Colon-separated MD5 fingerprint of the key's OpenSSH public blob."""
    digest = hashlib.md5(_public_blob(key)).hexdigest()
    return ":".join(digest[i : i + 2] for i in range(0, len(digest), 2))


def sha256_fingerprint(key: rsa.RSAPrivateKey | ec.EllipticCurvePrivateKey) -> str:
    """``SHA256:<base64>`` fingerprint, as printed by modern ``ssh-keygen -l``."""
    digest = hashlib.sha256(_public_blob(key)).digest()
    return "SHA256:" + base64.b64encode(digest).decode("ascii").rstrip("=")


def _public_blob(key: rsa.RSAPrivateKey | ec.EllipticCurvePrivateKey) -> bytes:
    line = key.public_key().public_bytes(
        serialization.Encoding.OpenSSH, serialization.PublicFormat.OpenSSH
    )
    return base64.b64decode(line.split()[1])


def key_matches(
    key: rsa.RSAPrivateKey | ec.EllipticCurvePrivateKey, key_id: str
) -> bool:
    """True if ``key_id`` names this key in MD5 or SHA256 form."""
    wanted = key_id.strip()
    if wanted.upper().startswith("MD5:"):
        wanted = wanted[4:]
    return wanted.lower() == md5_fingerprint(key) or wanted == sha256_fingerprint(key)


def find_private_key(
    key_id: str, ssh_dir: Path | None = None
) -> rsa.RSAPrivateKey | ec.EllipticCurvePrivateKey:
    """Find the private key in ``ssh_dir`` whose fingerprint is ``key_id``."""
    ssh_dir = ssh_dir or Path.home() / ".ssh"
    if not ssh_dir.is_dir():
        raise MantaAuthError(f"no key matching {key_id}: {ssh_dir} does not exist")

    for candidate in sorted(ssh_dir.iterdir()):
        if (
            not candidate.is_file()
            or candidate.suffix == ".pub"
            or candidate.name in _SKIP_FILES
        ):
            continue
        try:
            key = load_private_key(candidate)
        except MantaAuthError as e:
            logger.debug("Skipping %s: %s", candidate, e)
            continue
        if key_matches(key, key_id):
            logger.debug("Using key %s for %s", candidate, key_id)
            return key

    raise MantaAuthError(f"no private key in {ssh_dir} matches {key_id}")


class MantaSignatureAuth(httpx.Auth):
    """Sign each request's ``Date`` header with the account's SSH key."""

    def __init__(
        self,
        user: str,
        key: rsa.RSAPrivateKey | ec.EllipticCurvePrivateKey,
    ) -> None:
        self.user = user
        self._key = key
        if isinstance(key, rsa.RSAPrivateKey):
            self.algorithm = "rsa-sha256"
        else:
            self.algorithm = "ecdsa-sha256"
        self.key_id = f"/{user}/keys/{md5_fingerprint(key)}"

    @classmethod
    def from_settings(
        cls, user: str, key_id: str, key_path: Path | None = None
    ) -> MantaSignatureAuth:
        """Build an auth hook from ``MANTA_*`` style settings."""
        if key_path is not None:
            key = load_private_key(key_path)
            if not key_matches(key, key_id):
                logger.warning(
                    "Key %s does not match MANTA_KEY_ID %s; signing with it anyway",
                    key_path,
                    key_id,
                )
        else:
            key = find_private_key(key_id)
        return cls(user, key)

    def sign(self, date: str) -> str:
        """Return the ``Authorization`` header value for a ``Date`` value."""
        data = f"date: {date}".encode()
        if isinstance(self._key, rsa.RSAPrivateKey):
            raw = self._key.sign(data, padding.PKCS1v15(), hashes.SHA256())
        else:
            raw = self._key.sign(data, ec.ECDSA(hashes.SHA256()))
        signature = base64.b64encode(raw).decode("ascii")
        return (
            f'Signature keyId="{self.key_id}",algorithm="{self.algorithm}",'
            f'headers="date",signature="{signature}"'
        )

    def auth_flow(
        self, request: httpx.Request
    ) -> Generator[httpx.Request, httpx.Response, None]:
        date = formatdate(usegmt=True)
        request.headers["Date"] = date
        request.headers["Authorization"] = self.sign(date)
        yield request
