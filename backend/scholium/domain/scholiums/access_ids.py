"""Join codes ("access ids"): generation, encryption at rest, lookup digest."""

from __future__ import annotations

import base64
import hashlib
import hmac
import secrets
import string

from cryptography.fernet import Fernet, InvalidToken

ACCESS_ID_LENGTH = 8
_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits


class InvalidAccessId(ValueError):
	pass


def generate_access_id() -> str:
	return "".join(secrets.choice(_ALPHABET) for _ in range(ACCESS_ID_LENGTH))


def normalise(access_id: str) -> str:
	return (access_id or "").strip()


class AccessIdCipher:
	"""Fernet encryption for display plus an HMAC digest for indexed lookup."""

	def __init__(self, secret: str) -> None:
		key_material = hashlib.sha256(secret.encode("utf-8")).digest()
		self._fernet = Fernet(base64.urlsafe_b64encode(key_material))
		self._digest_key = hashlib.sha256(b"access-id-digest:" + secret.encode("utf-8")).digest()

	def encrypt(self, access_id: str) -> str:
		return self._fernet.encrypt(normalise(access_id).encode("utf-8")).decode("ascii")

	def decrypt(self, token: str) -> str:
		try:
			return self._fernet.decrypt(token.encode("ascii")).decode("utf-8")
		except (InvalidToken, ValueError) as exc:
			raise InvalidAccessId("invalid_access_id") from exc

	def digest(self, access_id: str) -> str:
		return hmac.new(self._digest_key, normalise(access_id).encode("utf-8"), hashlib.sha256).hexdigest()
