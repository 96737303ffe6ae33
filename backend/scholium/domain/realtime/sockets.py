"""Socket.IO namespace relaying change events to watching clients."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Dict, Optional, Set

import socketio

from scholium.domain.realtime.events import ChangeEvent
from scholium.domain.realtime.notifier import ChangeNotifier, Unsubscribe
from scholium.infra.auth import AuthenticatedUser, parse_socket_token
from scholium.obs import metrics as obs_metrics
from scholium.settings import settings

logger = logging.getLogger(__name__)

MembershipCheck = Callable[[str, str], Awaitable[bool]]

CHANGE_EVENT = "scholium:change"


def _header(scope: dict, name: str) -> Optional[str]:
	target = name.encode().lower()
	for key, value in scope.get("headers", []):
		if key.lower() == target:
			return value.decode()
	return None


class ScholiumsNamespace(socketio.AsyncNamespace):
	"""One socket room per scholium, fed by a single shared notifier subscription."""

	def __init__(self, notifier: ChangeNotifier, is_member: MembershipCheck) -> None:
		super().__init__("/scholiums")
		self._notifier = notifier
		self._is_member = is_member
		self._sessions: Dict[str, AuthenticatedUser] = {}
		self._watching: Dict[str, Set[str]] = {}
		self._watchers: Dict[str, Set[str]] = {}
		self._relays: Dict[str, Unsubscribe] = {}

	async def on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None) -> None:
		obs_metrics.socket_connected(self.namespace)
		try:
			user = self._authorise(environ, auth)
		except Exception:
			obs_metrics.socket_disconnected(self.namespace)
			raise ConnectionRefusedError("unauthorized") from None
		self._sessions[sid] = user
		await self.emit("scholiums:ack", {"ok": True}, room=sid)

	async def on_disconnect(self, sid: str, *args) -> None:
		obs_metrics.socket_disconnected(self.namespace)
		self._sessions.pop(sid, None)
		for scholium_id in list(self._watching.pop(sid, set())):
			self._release(sid, scholium_id)

	async def on_scholium_watch(self, sid: str, payload: dict) -> dict:
		obs_metrics.socket_event(self.namespace, "scholium_watch")
		user = self._sessions.get(sid)
		if not user:
			raise ConnectionRefusedError("unauthenticated")
		scholium_id = str((payload or {}).get("scholium_id") or "")
		if not scholium_id:
			return {"ok": False, "error": "scholium_id_required"}
		if not await self._is_member(scholium_id, user.id):
			return {"ok": False, "error": "not_member"}
		await self.enter_room(sid, self.scholium_room(scholium_id))
		self._watching.setdefault(sid, set()).add(scholium_id)
		self._acquire(sid, scholium_id)
		return {"ok": True}

	async def on_scholium_unwatch(self, sid: str, payload: dict) -> dict:
		obs_metrics.socket_event(self.namespace, "scholium_unwatch")
		if sid not in self._sessions:
			raise ConnectionRefusedError("unauthenticated")
		scholium_id = str((payload or {}).get("scholium_id") or "")
		if not scholium_id:
			return {"ok": False, "error": "scholium_id_required"}
		await self.leave_room(sid, self.scholium_room(scholium_id))
		self._watching.get(sid, set()).discard(scholium_id)
		self._release(sid, scholium_id)
		return {"ok": True}

	@staticmethod
	def scholium_room(scholium_id: str) -> str:
		return f"scholium:{scholium_id}"

	def watcher_count(self, scholium_id: str) -> int:
		return len(self._watchers.get(scholium_id, ()))

	def _acquire(self, sid: str, scholium_id: str) -> None:
		watchers = self._watchers.setdefault(scholium_id, set())
		watchers.add(sid)
		if scholium_id not in self._relays:
			self._relays[scholium_id] = self._notifier.subscribe(scholium_id, self._relay)

	def _release(self, sid: str, scholium_id: str) -> None:
		watchers = self._watchers.get(scholium_id)
		if watchers is None:
			return
		watchers.discard(sid)
		if watchers:
			return
		self._watchers.pop(scholium_id, None)
		unsubscribe = self._relays.pop(scholium_id, None)
		if unsubscribe is not None:
			unsubscribe()

	async def _relay(self, event: ChangeEvent) -> None:
		obs_metrics.socket_event(self.namespace, CHANGE_EVENT)
		await self.emit(CHANGE_EVENT, event.to_wire(), room=self.scholium_room(event.scholium_id))

	def _authorise(self, environ: dict, auth: Optional[dict]) -> AuthenticatedUser:
		scope = environ.get("asgi.scope", environ)
		auth_payload = auth or environ.get("auth") or scope.get("auth") or {}
		token = auth_payload.get("token")
		if not token:
			auth_header = _header(scope, "authorization")
			if auth_header and auth_header.lower().startswith("bearer "):
				token = auth_header.split(" ", 1)[1]
		if token:
			return parse_socket_token(str(token))
		if settings.is_dev():
			user_id = auth_payload.get("user_id") or auth_payload.get("userId")
			if user_id:
				return AuthenticatedUser(id=str(user_id))
		raise ValueError("missing_token")


__all__ = ["CHANGE_EVENT", "ScholiumsNamespace"]
