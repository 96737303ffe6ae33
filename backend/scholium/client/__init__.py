"""Client-side sync: change sources, membership guard, sessions and editors."""

from .editors import PermissionsEditor, TimeSlotDraftEditor
from .guard import MembershipGuard
from .http import ScholiumApiClient
from .optimistic import OptimisticResult, optimistic_update
from .session import ClientSyncSession
from .sources import ChangeSource, NotifierSource, PollingSource, SSESource

__all__ = [
	"ChangeSource",
	"ClientSyncSession",
	"MembershipGuard",
	"NotifierSource",
	"OptimisticResult",
	"PermissionsEditor",
	"PollingSource",
	"SSESource",
	"ScholiumApiClient",
	"TimeSlotDraftEditor",
	"optimistic_update",
]
