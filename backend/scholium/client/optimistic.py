"""Apply-locally, await, then reconcile or revert."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar, Union

import httpx

from scholium.domain.common.errors import ScholiumError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class OptimisticResult(Generic[T]):
	ok: bool
	value: Optional[T] = None
	error: Optional[str] = None
	message: Optional[str] = None


async def _maybe_await(value: Union[Any, Awaitable[Any]]) -> Any:
	if inspect.isawaitable(value):
		return await value
	return value


async def optimistic_update(
	apply: Callable[[], Any],
	commit: Callable[[], Awaitable[T]],
	revert: Callable[[], Any],
	reconcile: Optional[Callable[[T], Any]] = None,
) -> OptimisticResult[T]:
	"""Run `apply`, then `commit`; on a rejected commit run `revert`.

	Domain rejections and network errors come back as a failed result carrying
	a short message for the view. Anything else is reverted and re-raised.
	"""
	await _maybe_await(apply())
	try:
		value = await commit()
	except ScholiumError as exc:
		await _maybe_await(revert())
		logger.info("sync.optimistic_rejected", extra={"code": exc.code})
		return OptimisticResult(ok=False, error=exc.code, message=exc.message)
	except httpx.HTTPError as exc:
		await _maybe_await(revert())
		logger.warning("sync.optimistic_network_error", extra={"error": str(exc)})
		return OptimisticResult(ok=False, error="network_error", message=str(exc) or "network_error")
	except Exception:
		await _maybe_await(revert())
		raise
	if reconcile is not None:
		await _maybe_await(reconcile(value))
	return OptimisticResult(ok=True, value=value)


__all__ = ["OptimisticResult", "optimistic_update"]
