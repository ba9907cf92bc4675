# matterflow/integrations/notification_relay.py
"""Hands committed notifications to the downstream delivery service"""
import asyncio
import hashlib
import hmac
import json
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

import aiohttp
import backoff
from loguru import logger

from matterflow.core.metrics import NOTIFICATIONS_DROPPED, NOTIFICATIONS_RELAYED

Sender = Callable[[Dict[str, Any]], Awaitable[None]]

RETRYABLE_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError)


class NotificationRelay:
    """Queue plus worker tasks that POST notification events with retry.

    The inbox row is the source of truth; the relay is best effort. Events are
    only submitted after the transaction that created them commits. With no
    delivery URL configured, events are logged and dropped. When the queue is
    full, new events are dropped rather than held in memory.
    """

    def __init__(
            self,
            webhook_url: Optional[str] = None,
            secret: Optional[str] = None,
            num_workers: int = 2,
            max_tries: int = 5,
            backoff_factor: float = 1.0,
            timeout_seconds: float = 10.0,
            queue_size: int = 1000,
            sender: Optional[Sender] = None
    ):
        self.webhook_url = webhook_url
        self.secret = secret
        self.num_workers = num_workers
        self.max_tries = max_tries
        self.backoff_factor = backoff_factor
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self.sender: Sender = sender or self.post_event
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.running = False
        self.workers: List[asyncio.Task] = []
        self._session: Optional[aiohttp.ClientSession] = None

    async def start(self):
        """Start delivery workers"""
        if self.running:
            return

        self.running = True
        if self.webhook_url and self.sender == self.post_event:
            self._session = aiohttp.ClientSession(timeout=self.timeout)

        for i in range(self.num_workers):
            self.workers.append(asyncio.create_task(self._delivery_worker(f"relay-{i}")))

        logger.info(f"Notification relay started with {self.num_workers} workers")

    async def stop(self):
        """Stop workers; undelivered events stay in their inboxes"""
        self.running = False
        for worker in self.workers:
            worker.cancel()
        await asyncio.gather(*self.workers, return_exceptions=True)
        self.workers.clear()

        if self._session is not None:
            await self._session.close()
            self._session = None

        logger.info("Notification relay stopped")

    def submit(self, event: Dict[str, Any]) -> bool:
        """Queue an event for delivery; returns False when the relay is not running or the queue is full"""
        if not self.running:
            logger.debug(f"Notification relay idle, not relaying {event.get('event_type')}")
            return False
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            NOTIFICATIONS_DROPPED.inc()
            logger.warning(f"Notification relay queue full ({self.queue.maxsize}), dropping {event.get('id')}")
            return False
        return True

    async def join(self):
        """Wait until every queued event has been handled"""
        await self.queue.join()

    async def _delivery_worker(self, worker_name: str):
        logger.info(f"Notification relay worker {worker_name} started")
        while True:
            event = await self.queue.get()
            try:
                await self._deliver(event)
            finally:
                self.queue.task_done()

    async def _deliver(self, event: Dict[str, Any]):
        send = backoff.on_exception(
            backoff.expo,
            RETRYABLE_ERRORS,
            max_tries=self.max_tries,
            factor=self.backoff_factor,
            logger=None,
        )(self.sender)

        try:
            await send(event)
            NOTIFICATIONS_RELAYED.labels(outcome="delivered").inc()
        except Exception as e:
            NOTIFICATIONS_RELAYED.labels(outcome="abandoned").inc()
            logger.error(f"Notification {event.get('id')} abandoned: {type(e).__name__}: {e}")

    def _build_headers(self, body: str) -> Dict[str, str]:
        headers = {
            'Content-Type': 'application/json',
            'User-Agent': 'MatterFlow-Relay/1.0',
            'X-MatterFlow-Delivery': str(time.time()),
        }
        if self.secret:
            signature = hmac.new(self.secret.encode('utf-8'), body.encode('utf-8'), hashlib.sha256).hexdigest()
            headers['X-MatterFlow-Signature'] = f'sha256={signature}'
        return headers

    async def post_event(self, event: Dict[str, Any]) -> None:
        """Default sender: POST the event as JSON to the delivery service"""
        if not self.webhook_url:
            logger.info(f"Notification {event.get('event_type')} for {event.get('user_id')} (delivery disabled)")
            return

        body = json.dumps(event, sort_keys=True, default=str)
        headers = self._build_headers(body)
        headers['X-MatterFlow-Event'] = str(event.get('event_type', ''))

        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self.timeout)

        async with self._session.post(self.webhook_url, data=body, headers=headers) as response:
            response.raise_for_status()
            logger.debug(f"Notification {event.get('id')} delivered: {response.status}")
