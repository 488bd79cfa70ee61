"""Remote activity source.

GET {base}/users/{subject_id}/activity with the filter as query params.
The response body must be a JSON array of activity records.  Records
with an activity kind we do not recognise are dropped and reported;
any other malformed record fails the whole fetch, since a source that
breaks its contract on one record cannot be trusted for the rest.
"""

from __future__ import annotations

import logging
from urllib.parse import quote

from engagement.core.errors import TransportError, TransportErrorKind, UpstreamError
from engagement.core.metrics import ACTIVITY_RECORDS_SKIPPED, UPSTREAM_REQUESTS
from engagement.models.activity import ActivityEvent, ActivityFilter, UnknownActivityKind
from engagement.services.transport import Transport

logger = logging.getLogger(__name__)


class ActivitySource:
    def __init__(self, transport: Transport, timeout_ms: int) -> None:
        self._transport = transport
        self._timeout_ms = timeout_ms

    @staticmethod
    def path_for(subject_id: str) -> str:
        return f"/users/{quote(subject_id, safe='')}/activity"

    async def fetch(
        self, subject_id: str, activity_filter: ActivityFilter | None = None
    ) -> list[ActivityEvent]:
        params = activity_filter.as_params() if activity_filter else {}
        try:
            response = await self._transport.request(
                "GET",
                self.path_for(subject_id),
                params=params,
                timeout_ms=self._timeout_ms,
            )
        except TransportError as exc:
            UPSTREAM_REQUESTS.labels(outcome=exc.kind.value).inc()
            raise UpstreamError.from_transport(exc, subject_id) from exc

        try:
            events = self._decode(subject_id, response.data)
        except UpstreamError:
            UPSTREAM_REQUESTS.labels(
                outcome=TransportErrorKind.MALFORMED_RESPONSE.value
            ).inc()
            raise

        UPSTREAM_REQUESTS.labels(outcome="ok").inc()
        return events

    def _decode(self, subject_id: str, data: object) -> list[ActivityEvent]:
        if not isinstance(data, list):
            raise UpstreamError(
                TransportErrorKind.MALFORMED_RESPONSE,
                f"expected a list of activities, got {type(data).__name__}",
                subject_id=subject_id,
            )

        events: list[ActivityEvent] = []
        for index, item in enumerate(data):
            if not isinstance(item, dict):
                raise UpstreamError(
                    TransportErrorKind.MALFORMED_RESPONSE,
                    f"activity #{index} is not an object",
                    subject_id=subject_id,
                )
            try:
                events.append(ActivityEvent.from_payload(item))
            except UnknownActivityKind as exc:
                ACTIVITY_RECORDS_SKIPPED.labels(reason="unknown_kind").inc()
                logger.warning(
                    "Skipping activity with unknown kind=%r id=%s user=%s",
                    exc.raw,
                    item.get("id"),
                    subject_id,
                    extra={"subject_id": subject_id, "error": str(exc)},
                )
            except (KeyError, TypeError, ValueError) as exc:
                raise UpstreamError(
                    TransportErrorKind.MALFORMED_RESPONSE,
                    f"activity #{index} is malformed: {exc!r}",
                    subject_id=subject_id,
                ) from exc
        return events
