from typing import Awaitable, Callable, Optional

from converge.core.models.resource import RemoteResource

# Refresh contract of a poll session.
#
# Returns the current snapshot, None for explicit absence, or raises for a
# transport error. Called repeatedly at the session interval; it must be
# idempotent and side-effect-free.
RefreshFunc = Callable[[], Awaitable[Optional[RemoteResource]]]
