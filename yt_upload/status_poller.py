"""
Transcode Status Poller
=======================

Wait for YouTube to finish processing an uploaded video.

Statuses:
- uploaded:  still processing, notify and poll again
- processed: transcoded and playable, notify and stop
- anything else (failed, rejected, deleted): notify and stop

A failed status query is reported and retried after the same fixed
interval; polling has no backoff growth.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from .backoff import CancelToken

logger = logging.getLogger(__name__)

STATUS_POLLING_INTERVAL = float(os.getenv("YT_STATUS_POLL_SECONDS", "60"))  # One minute

STATUS_UPLOADED = "uploaded"
STATUS_PROCESSED = "processed"


@dataclass
class PollState:
    resource_id: str
    terminal: bool = False
    last_status: Optional[str] = None
    queries: int = 0


@dataclass
class PollUpdate:
    """
    One observation. `status` is the raw uploadStatus; `error` is set
    (and `status` is None) when the query itself failed.
    """
    resource_id: str
    status: Optional[str] = None
    error: Optional[str] = None
    resource: Dict[str, Any] = field(default_factory=dict)
    terminal: bool = False

    @property
    def succeeded(self) -> bool:
        return self.status == STATUS_PROCESSED


class TranscodeStatusPoller:
    """
    Poll a status source until a terminal state is reached.

    Args:
        fetch: Callable returning the resource dict for an id; raises on query failure
        status_of: Extracts the status string from the resource dict
        interval: Seconds between queries
        cancel_token: Stops polling before the next query or during the wait
        wait: Injectable wait(seconds) -> cancelled, defaults to the token's wait
    """

    def __init__(
        self,
        fetch: Callable[[str], Dict[str, Any]],
        status_of: Callable[[Dict[str, Any]], Optional[str]],
        interval: float = STATUS_POLLING_INTERVAL,
        cancel_token: Optional[CancelToken] = None,
        wait: Optional[Callable[[float], bool]] = None,
    ):
        self.fetch = fetch
        self.status_of = status_of
        self.interval = interval
        self.cancel_token = cancel_token or CancelToken()
        self._wait = wait or self.cancel_token.wait
        self.state: Optional[PollState] = None

    def poll(self, resource_id: str, on_update: Callable[[PollUpdate], None]) -> None:
        state = PollState(resource_id=resource_id)
        self.state = state

        while not state.terminal:
            if self.cancel_token.cancelled:
                logger.info(f"Status polling for {resource_id} cancelled")
                return

            update = self._query(state)
            on_update(update)
            if state.terminal:
                break

            if self._wait(self.interval) or self.cancel_token.cancelled:
                logger.info(f"Status polling for {resource_id} cancelled")
                return

        logger.info(f"Final status for {resource_id}: {state.last_status}")

    def _query(self, state: PollState) -> PollUpdate:
        state.queries += 1
        try:
            resource = self.fetch(state.resource_id)
        except Exception as e:
            # The status polling failed; try again after the same interval.
            logger.warning(f"Status query for {state.resource_id} failed: {e}")
            return PollUpdate(resource_id=state.resource_id, error=str(e))

        status = self.status_of(resource)
        state.last_status = status
        state.terminal = status != STATUS_UPLOADED
        if status == STATUS_UPLOADED:
            logger.debug(f"{state.resource_id} still processing")
        elif status != STATUS_PROCESSED:
            logger.warning(f"Transcoding failed for {state.resource_id}: {status}")
        return PollUpdate(
            resource_id=state.resource_id,
            status=status,
            resource=resource,
            terminal=state.terminal,
        )
