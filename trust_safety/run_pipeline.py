"""
Main pipeline orchestrator - wires Kafka topics to the safety engine
"""
import os
import logging
import threading
import time
from concurrent.futures import Future
from datetime import datetime
from typing import Any, Dict, Optional
import asyncio

from trust_safety.lib.kafka_client import MessageBroker
from trust_safety.lib.metrics import metrics
from trust_safety.models.enums import ReportCategory
from trust_safety.models.realtime import ChatMessage, ProfileTextEvent
from trust_safety.services.engine import SafetyEngine

logger = logging.getLogger(__name__)


class Pipeline:
    """
    One consumer thread per topic feeds a single asyncio loop thread.
    Events are submitted without waiting, so many are in flight at once;
    failures land on the dead letter topic.
    """

    SWEEP_INTERVAL_SECONDS = float(os.getenv('TS_SWEEP_INTERVAL_SECONDS', '300'))

    def __init__(self, engine: Optional[SafetyEngine] = None, broker: Optional[MessageBroker] = None):
        self.engine = engine or SafetyEngine.from_env()
        self.broker = broker or MessageBroker()
        self.loop = asyncio.new_event_loop()
        self._loop_thread = threading.Thread(target=self.loop.run_forever, name="safety-loop", daemon=True)

        # Start metrics server
        metrics.start()
        logger.info("Pipeline initialized")

    def _submit(self, coro, original: Dict[str, Any], label: str) -> Future:
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)

        def _done(f: Future):
            error = f.exception()
            if error is not None:
                logger.error(f"Error processing {label}: {error!r}")
                self.broker.publish_dlq(original, str(error))

        future.add_done_callback(_done)
        return future

    def handle_chat(self, message_data: Dict[str, Any]) -> Future:
        message = ChatMessage(
            user_id=str(message_data["user_id"]),
            stream_id=str(message_data["stream_id"]),
            scope_id=str(message_data.get("scope_id") or message_data.get("creator_id") or message_data["stream_id"]),
            text=str(message_data.get("text") or message_data.get("content") or ""),
            timestamp=datetime.fromtimestamp(float(message_data["timestamp"]))
            if message_data.get("timestamp") else datetime.utcnow(),
        )
        return self._submit(self._process_chat(message), message_data, f"chat message from {message.user_id}")

    async def _process_chat(self, message: ChatMessage):
        start_time = time.perf_counter()
        result = await self.engine.handle_chat_message(message)
        latency_ms = (time.perf_counter() - start_time) * 1000
        logger.debug(f"Chat from {message.user_id} in {message.stream_id}: {result.action.value} in {latency_ms:.2f}ms")
        return result

    def handle_profile(self, event_data: Dict[str, Any]) -> Future:
        event = ProfileTextEvent(
            user_id=str(event_data["user_id"]),
            field=str(event_data.get("field") or "username"),
            text=str(event_data.get("text") or ""),
        )
        return self._submit(
            self.engine.check_profile_text(event.user_id, event.text, event.field),
            event_data, f"profile {event.field} of {event.user_id}",
        )

    def handle_report(self, report_data: Dict[str, Any]) -> Future:
        category = ReportCategory(str(report_data["category"]))
        return self._submit(
            self._process_report(report_data, category), report_data,
            f"report against {report_data.get('reported_user_id')}",
        )

    async def _process_report(self, report_data: Dict[str, Any], category: ReportCategory):
        result = await self.engine.submit_report(
            reporter_id=str(report_data["reporter_id"]),
            reported_user_id=str(report_data["reported_user_id"]),
            category=category,
            stream_id=report_data.get("stream_id"),
            scope_id=report_data.get("scope_id"),
            notes=report_data.get("notes"),
            creator_id=report_data.get("creator_id"),
        )
        if not result.ok:
            logger.warning(f"Report rejected ({result.error_kind.value}): {result.message}")
        return result

    def start(self):
        """Start consuming from Kafka topics"""
        logger.info("Starting pipeline consumers...")
        self._loop_thread.start()
        asyncio.run_coroutine_threadsafe(
            self.engine.sweeper.run_forever(self.SWEEP_INTERVAL_SECONDS), self.loop
        )

        for target, handler in (
            (self.broker.consume_chat_stream, self.handle_chat),
            (self.broker.consume_profile_stream, self.handle_profile),
            (self.broker.consume_report_stream, self.handle_report),
        ):
            threading.Thread(target=target, args=(handler,), daemon=True).start()

        logger.info("Pipeline consumers started")

        # Keep main thread alive
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            logger.info("Shutting down pipeline...")
            self.stop()

    def stop(self):
        self.loop.call_soon_threadsafe(self.engine.sweeper.stop)
        self.broker.close()
        close = getattr(self.engine.store, 'close', None)
        if close is not None:
            close()
        self.loop.call_soon_threadsafe(self.loop.stop)


def main():
    logging.basicConfig(
        level=os.getenv('LOG_LEVEL', 'INFO'),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    Pipeline().start()


if __name__ == '__main__':
    main()
