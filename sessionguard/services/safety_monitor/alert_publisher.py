"""Alert event forwarder for an external audit sink.

Subscribes to a controller's event channel and forwards alert events to
a Kinesis stream. The controller itself writes nothing durable; this
forwarder is wired in by the host application when an audit consumer
exists.

Payloads carry a fingerprint of the transcript chunk, never the speech
itself.
"""
import json
import logging
import os
from typing import Iterable, Optional

from .events import EventSubscription, SafetyEvent, SafetyEventType

logger = logging.getLogger(__name__)


FORWARDED_EVENT_TYPES = frozenset({
    SafetyEventType.ALERT_RAISED,
    SafetyEventType.TECHNIQUE_STOP_RECOMMENDED,
    SafetyEventType.TECHNIQUE_STOP_REQUESTED,
})


def build_alert_record(event: SafetyEvent, session_id: str) -> dict:
    """Reduce a safety event to the record sent downstream.

    Raw transcript text and matched evidence are left out.
    """
    record = {
        "event_id": event.event_id,
        "event_type": event.event_type.value,
        "sequence": event.sequence,
        "timestamp": event.timestamp.isoformat() + "Z",
        "source": "safety-monitor",
        "session_id": session_id,
    }
    data = event.payload
    if event.event_type is SafetyEventType.ALERT_RAISED:
        alert = data.get("alert", {})
        record["data"] = {
            "alert_id": alert.get("id"),
            "urgency_level": alert.get("urgency_level"),
            "alert_type": alert.get("type"),
            "action_required": alert.get("action_required"),
            "body_region": alert.get("body_region"),
            "recommendations": alert.get("recommendations", []),
            "warning_count": len(alert.get("warnings", [])),
            "highlight_count": len(alert.get("highlights", [])),
            "red_flag_categories": sorted({
                h["category"] for h in alert.get("highlights", [])
            }),
            "chunk_id": data.get("chunk_id"),
            "text_hash": data.get("text_hash"),
        }
    else:
        record["data"] = {
            "alert_id": data.get("alert_id"),
            "urgency_level": data.get("urgency_level"),
        }
    return record


class AlertEventPublisher:
    """Publishes alert events to a Kinesis stream.

    Failure Handling:
        - Publishing failure never reaches the controller
        - Failures are logged at CRITICAL level for alerting
    """

    def __init__(
        self,
        session_id: str,
        stream_name: str = "sessionguard-safety-alerts",
        enabled: bool = False,
        region: Optional[str] = None,
    ):
        """Initialize publisher.

        Args:
            session_id: Monitoring session, used as partition key
            stream_name: Kinesis stream name
            enabled: Whether publishing is enabled (off for local dev)
            region: AWS region (defaults to AWS_REGION env var)
        """
        self.session_id = session_id
        self.stream_name = stream_name
        self.enabled = enabled
        self.region = region or os.getenv("AWS_REGION", "us-east-1")
        self._kinesis_client = None
        self.published_count = 0

        logger.info(
            "ALERT_PUBLISHER_INITIALIZED",
            extra={
                "stream_name": stream_name,
                "enabled": enabled,
                "region": self.region,
            }
        )

    @property
    def kinesis_client(self):
        """Lazy initialization of Kinesis client."""
        if self._kinesis_client is None and self.enabled:
            try:
                import boto3
                self._kinesis_client = boto3.client(
                    "kinesis",
                    region_name=self.region,
                )
            except Exception as e:
                logger.error(
                    "KINESIS_CLIENT_INIT_FAILED",
                    extra={"error": str(e)}
                )
        return self._kinesis_client

    def publish_event(self, event: SafetyEvent) -> bool:
        """Forward one event if it is an alert event.

        Returns:
            True if published successfully, False otherwise
        """
        if event.event_type not in FORWARDED_EVENT_TYPES:
            return False

        if not self.enabled:
            logger.info(
                "ALERT_PUBLISH_SKIPPED",
                extra={"event_id": event.event_id, "reason": "publishing_disabled"}
            )
            return False

        record = build_alert_record(event, self.session_id)

        try:
            if self.kinesis_client is None:
                logger.critical(
                    "ALERT_EVENT_FALLBACK_LOG",
                    extra={
                        "event_id": event.event_id,
                        "payload": json.dumps(record),
                        "reason": "kinesis_client_unavailable",
                        "action": "MANUAL_PROCESSING_REQUIRED",
                    }
                )
                return False

            response = self.kinesis_client.put_record(
                StreamName=self.stream_name,
                Data=json.dumps(record),
                PartitionKey=self.session_id,  # Same session -> same shard, ordered
            )

            self.published_count += 1
            logger.info(
                "ALERT_EVENT_PUBLISHED",
                extra={
                    "event_id": event.event_id,
                    "event_type": event.event_type.value,
                    "shard_id": response.get("ShardId"),
                    "sequence_number": response.get("SequenceNumber"),
                }
            )
            return True

        except Exception as e:
            logger.critical(
                "ALERT_EVENT_PUBLISH_FAILED",
                extra={
                    "event_id": event.event_id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "action": "MANUAL_REVIEW_REQUIRED",
                    "payload": json.dumps(record),
                }
            )
            return False

    def publish_batch(self, events: Iterable[SafetyEvent]) -> int:
        """Forward the alert events among ``events`` in one request.

        Returns:
            Number of successfully published events
        """
        records = [
            build_alert_record(event, self.session_id)
            for event in events
            if event.event_type in FORWARDED_EVENT_TYPES
        ]
        if not self.enabled or not records:
            return 0

        if self.kinesis_client is None:
            logger.error(
                "ALERT_BATCH_PUBLISH_FAILED",
                extra={"reason": "kinesis_client_unavailable"}
            )
            return 0

        try:
            response = self.kinesis_client.put_records(
                StreamName=self.stream_name,
                Records=[
                    {"Data": json.dumps(record), "PartitionKey": self.session_id}
                    for record in records
                ],
            )
        except Exception as e:
            logger.critical(
                "ALERT_BATCH_PUBLISH_FAILED",
                extra={"error": str(e), "event_count": len(records)}
            )
            return 0

        failed_count = response.get("FailedRecordCount", 0)
        success_count = len(records) - failed_count
        self.published_count += success_count
        logger.info(
            "ALERT_BATCH_PUBLISHED",
            extra={"total": len(records), "success": success_count, "failed": failed_count}
        )
        return success_count

    async def run(self, subscription: EventSubscription) -> int:
        """Forward events until the subscription ends.

        Returns:
            Number of events published
        """
        published = 0
        async for event in subscription:
            if self.publish_event(event):
                published += 1
        logger.info("ALERT_PUBLISHER_STOPPED", extra={"published": published})
        return published
