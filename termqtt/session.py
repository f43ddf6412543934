"""
Broker session management for termqtt.

This module owns the connection to one broker:
- Connection status tracking (disconnected/connecting/connected/error)
- Subscribing every configured filter and aggregating the SUBACKs
- Delivering inbound messages
- Publishing edited payloads

Transport callbacks may fire on a library thread. They never touch
session state directly; each is queued as (generation, event, args) and
handled by pump(), which runs on a single consumer loop. Events from a
connection that was replaced or closed carry an old generation and are
dropped.
"""

import asyncio
import queue
import time

from .errors import SubscriptionError
from .logging import get_logger
from .transport import PahoTransport
from .utils import build_client_id

# Connection status
DISCONNECTED = 'disconnected'
CONNECTING = 'connecting'
CONNECTED = 'connected'
ERROR = 'error'

STATUSES = (DISCONNECTED, CONNECTING, CONNECTED, ERROR)

# Granted QoS value meaning the broker refused the filter
SUBACK_FAILURE = 0x80


def default_transport_factory(listener, config):
    return PahoTransport(listener, keepalive=config.keepalive,
                         reconnect_period=config.reconnect_period)


def default_client_id_factory(config):
    return build_client_id(config.client_id)


class SubscriptionOutcome:
    """Result of subscribing one filter."""
    __slots__ = ('topic_filter', 'granted', 'rejected', 'error', 'reason_codes', 'timed_out')

    def __init__(self, topic_filter):
        self.topic_filter = topic_filter
        self.granted = []        # [(topic_filter, qos)]
        self.rejected = False
        self.error = None        # SubscriptionError or None
        self.reason_codes = None
        self.timed_out = False


class SubscriptionCycle:
    """
    SUBACK aggregation for the filters subscribed after one CONNACK.

    Each filter is expected to report exactly once; the cycle is complete
    when every filter has reported (or expire() gave up on the rest).
    """

    __slots__ = ('filters', 'cycle_id', 'started_at', 'outcomes', 'remaining',
                 '_granted', '_details')

    def __init__(self, filters, cycle_id=0, started_at=0):
        self.filters = list(filters)
        self.cycle_id = cycle_id
        self.started_at = started_at
        self.outcomes = {}
        self.remaining = len(self.filters)
        self._granted = []
        self._details = []

    def is_complete(self):
        return self.remaining <= 0

    def record(self, topic_filter, error=None, granted=None, reason_codes=None):
        """
        Fold one filter's acknowledgement into the cycle.

        Args:
            topic_filter: the filter this ack belongs to
            error: SubscriptionError (or any exception) or None
            granted: list of (topic_filter, qos) pairs
            reason_codes: raw SUBACK reason codes, if available

        Returns:
            bool: True once every filter has reported
        """
        if topic_filter in self.outcomes or topic_filter not in self.filters:
            return self.is_complete()

        outcome = SubscriptionOutcome(topic_filter)
        self.outcomes[topic_filter] = outcome
        granted = list(granted or [])

        if granted:
            outcome.granted = granted
            self._granted.extend(granted)
            if any(qos == SUBACK_FAILURE for _, qos in granted):
                outcome.rejected = True
                self._details.append('rejected:%s' % topic_filter)
        elif error is None:
            self._details.append('none:%s' % topic_filter)

        if error is not None:
            outcome.error = error
            reason_code = getattr(error, 'reason_code', None)
            reason_text = getattr(error, 'reason_text', None)
            code = getattr(error, 'code', None)
            if reason_code is not None:
                self._details.append('rc:%s' % reason_code)
            if reason_text:
                self._details.append('reason:%s' % reason_text)
            if code:
                self._details.append('code:%s' % code)
            label = 'warn' if granted else 'error'
            message = getattr(error, 'message', None) or str(error) or 'Subscribe error'
            self._details.append('%s:%s' % (label, message))

        if reason_codes:
            outcome.reason_codes = list(reason_codes)
            self._details.append('suback:%s' % ','.join(str(c) for c in reason_codes))

        self.remaining -= 1
        return self.is_complete()

    def expire(self):
        """Give up on filters that never acknowledged."""
        for topic_filter in self.filters:
            if topic_filter in self.outcomes:
                continue
            outcome = SubscriptionOutcome(topic_filter)
            outcome.timed_out = True
            outcome.error = SubscriptionError('No SUBACK received')
            self.outcomes[topic_filter] = outcome
            self._details.append('timeout:%s' % topic_filter)
            self.remaining -= 1

    def label(self):
        return ', '.join(self.filters)

    def summary(self):
        """One-line summary covering every filter in the cycle."""
        parts = []
        if len(self.filters) > 1:
            parts.append('subscribed %d filters' % len(self.filters))
        if self._granted:
            parts.append('granted:' + ', '.join('%s:%s' % (t, q) for t, q in self._granted))
        else:
            parts.append('granted:none')
        parts.extend(self._details)
        return ' | '.join(parts) or 'subscribed'


class BrokerSession:
    """
    Connection, subscription and publish state machine for one broker.

    Example:
        session = BrokerSession()

        @session.on_message
        def handle(topic, payload):
            print(topic, payload)

        session.connect(BrokerConfig(host='localhost'))
        await session.run()
    """

    def __init__(self, on_status=None, on_message=None, on_subscription=None,
                 transport_factory=None, client_id_factory=None, clock=None,
                 poll_interval=0.05, log_level=None):
        """
        Initialize the session.

        Args:
            on_status: Callback(status, error) on every status change
            on_message: Callback(topic, payload_text) per inbound message
            on_subscription: Callback(filter_label, summary) per connect cycle
            transport_factory: Callable(listener, config) -> transport
            client_id_factory: Callable(config) -> client ID string
            clock: Callable returning monotonic seconds (subscribe timeout)
            poll_interval: Seconds between pump() calls in run()
            log_level: 'DEBUG', 'INFO', 'WARNING', 'ERROR'
        """
        self._log = get_logger('termqtt.session', log_level)

        self._on_status = on_status
        self._on_message = on_message
        self._on_subscription = on_subscription

        self._transport_factory = transport_factory or default_transport_factory
        self._client_id_factory = client_id_factory or default_client_id_factory
        self._clock = clock or time.monotonic
        self.poll_interval = poll_interval

        self._events = queue.SimpleQueue()
        self._generation = 0
        self._cycle_seq = 0
        self._transport = None
        self._config = None
        self._cycle = None
        self._running = False

        self.status = DISCONNECTED
        self.error = None
        self.client_id = None
        self.last_subscription = None

        self._handlers = {
            'connect': self._handle_connect,
            'message': self._handle_message,
            'suback': self._handle_suback,
            'reconnect': self._handle_reconnect,
            'close': self._handle_close,
            'offline': self._handle_close,
            'error': self._handle_error,
        }

    # Hook decorators

    def on_status(self, func):
        """
        Decorator for status changes.

        @session.on_status
        def handler(status, error):
            pass
        """
        self._on_status = func
        return func

    def on_message(self, func):
        """
        Decorator for inbound messages.

        @session.on_message
        def handler(topic, payload):
            pass
        """
        self._on_message = func
        return func

    def on_subscription(self, func):
        """
        Decorator for the aggregated subscription result.

        @session.on_subscription
        def handler(filter_label, summary):
            pass
        """
        self._on_subscription = func
        return func

    def _fire_hook(self, hook, *args):
        if hook is None:
            return
        try:
            hook(*args)
        except Exception as e:
            self._log.error("Error in hook: %s", e)

    @property
    def config(self):
        """Snapshot of the config in use (None before connect)."""
        return self._config

    @property
    def generation(self):
        return self._generation

    def is_connected(self):
        return self._transport is not None and self.status == CONNECTED

    def _set_status(self, status, error=None):
        self.status = status
        self.error = error
        if error:
            self._log.warning("Status %s: %s", status, error)
        else:
            self._log.debug("Status %s", status)
        self._fire_hook(self._on_status, status, error)

    # Event channel

    def _listener_for(self, generation):
        events = self._events

        def listener(event, *args):
            events.put((generation, event, args))
        return listener

    def _suback_callback(self, generation, cycle_id, topic_filter):
        events = self._events

        def callback(error, granted, reason_codes=None):
            events.put((generation, 'suback', (cycle_id, topic_filter, error, granted, reason_codes)))
        return callback

    def pump(self):
        """
        Handle every queued transport event.

        Must always be called from the same loop or thread.

        Returns:
            int: Number of events taken off the channel
        """
        handled = 0
        while True:
            try:
                generation, event, args = self._events.get_nowait()
            except queue.Empty:
                break
            handled += 1

            if generation != self._generation:
                self._log.debug("Dropping stale %s (generation %d, current %d)",
                                event, generation, self._generation)
                continue

            handler = self._handlers.get(event)
            if handler is None:
                self._log.debug("Ignoring unknown transport event %s", event)
                continue
            handler(*args)

        self._check_subscribe_timeout()
        return handled

    async def run(self):
        """Consume transport events until stop() is called."""
        self._running = True
        try:
            while self._running:
                self.pump()
                await asyncio.sleep(self.poll_interval)
        finally:
            self._running = False

    def stop(self):
        self._running = False

    # Operations

    def connect(self, config):
        """
        Open a connection with a private copy of ``config``.

        Returns immediately; progress is reported through on_status.
        """
        if self._transport is not None:
            self._close_transport()

        config = config.copy()
        self._config = config
        self._generation += 1
        self._cycle = None
        self._set_status(CONNECTING)

        try:
            config.validate()
        except ValueError as e:
            self._set_status(ERROR, str(e))
            return

        try:
            self.client_id = self._client_id_factory(config)
            transport = self._transport_factory(self._listener_for(self._generation), config)
            self._transport = transport
            self._log.info("Connecting to %s:%d (tls=%s)", config.host, config.port, config.tls)
            transport.connect(
                config.host, config.port, self.client_id,
                username=config.username or None,
                password=config.password or None,
                tls=config.tls,
            )
        except Exception as e:
            self._log.error("Transport setup failed: %s", e)
            self._set_status(ERROR, str(e) or type(e).__name__)

    def disconnect(self):
        """Close the connection; late events from it are discarded."""
        self._generation += 1
        self._cycle = None
        if self._transport is None:
            return
        self._close_transport()
        self._set_status(DISCONNECTED)

    def update_config(self, config):
        """Reconnect with a new configuration."""
        self.disconnect()
        self.connect(config)

    def publish(self, topic, payload):
        """
        Publish ``payload`` on ``topic`` with the configured QoS.

        Silently does nothing unless connected.

        Returns:
            bool: True if the message was handed to the transport
        """
        if not self.is_connected():
            self._log.debug("Not connected, dropping publish to %s", topic)
            return False
        if isinstance(payload, str):
            payload = payload.encode('utf-8')
        try:
            self._transport.publish(topic, payload, self._config.qos)
        except Exception as e:
            self._log.error("Publish to %s failed: %s", topic, e)
            return False
        return True

    def _close_transport(self):
        transport = self._transport
        self._transport = None
        try:
            transport.close()
        except Exception as e:
            self._log.warning("Error closing transport: %s", e)

    # Event handlers

    def _handle_connect(self):
        self._set_status(CONNECTED)
        self._log.info("Connected to %s:%d", self._config.host, self._config.port)

        filters = self._config.active_filters()
        self._cycle_seq += 1
        self._cycle = SubscriptionCycle(filters, self._cycle_seq, self._clock())

        for topic_filter in filters:
            callback = self._suback_callback(self._generation, self._cycle_seq, topic_filter)
            try:
                self._transport.subscribe(topic_filter, self._config.qos, callback)
            except Exception as e:
                callback(SubscriptionError(str(e) or 'Subscribe error', code=type(e).__name__), [], None)

    def _handle_suback(self, cycle_id, topic_filter, error, granted, reason_codes):
        cycle = self._cycle
        if cycle is None or cycle.cycle_id != cycle_id:
            self._log.debug("Dropping SUBACK for %s from an old cycle", topic_filter)
            return
        if cycle.record(topic_filter, error, granted, reason_codes):
            self._finish_cycle()

    def _check_subscribe_timeout(self):
        cycle = self._cycle
        if cycle is None or self._config is None:
            return
        timeout = self._config.subscribe_timeout
        if timeout is None:
            return
        if self._clock() - cycle.started_at >= timeout:
            self._log.warning("SUBACK timeout after %ss", timeout)
            cycle.expire()
            self._finish_cycle()

    def _finish_cycle(self):
        cycle = self._cycle
        self._cycle = None
        self.last_subscription = cycle
        label = cycle.label()
        summary = cycle.summary()
        self._log.info("Subscribed %s: %s", label, summary)
        self._fire_hook(self._on_subscription, label, summary)

    def _handle_message(self, topic, payload):
        if isinstance(payload, (bytes, bytearray)):
            payload = bytes(payload).decode('utf-8', errors='replace')
        self._fire_hook(self._on_message, topic, payload)

    def _handle_reconnect(self):
        self._set_status(CONNECTING)

    def _handle_close(self):
        self._set_status(DISCONNECTED)

    def _handle_error(self, detail=None):
        self._set_status(ERROR, detail or 'Unknown error')
