"""
MQTT transport for termqtt, backed by paho-mqtt.

Wraps paho.mqtt.client.Client behind a small surface used by
BrokerSession. paho runs its network loop on its own thread, so every
callback here only translates the paho event into a call to
``listener(event, *args)``; the session queues those and handles them
on its consumer loop.

Events:
    connect                     CONNACK accepted
    message(topic, payload)     payload as bytes
    reconnect                   a new connection attempt is starting
    close                       connection closed
    offline                     could not reach the broker
    error(detail)               transport error text
"""

import threading

import paho.mqtt.client as mqtt

from .errors import BrokerConnectionError, SubscriptionError
from .logging import get_logger

_log = get_logger('termqtt.transport')


def _reason_value(reason_code):
    """Numeric value of a paho ReasonCode (or a plain int)."""
    return getattr(reason_code, 'value', reason_code)


def _is_failure(reason_code):
    failure = getattr(reason_code, 'is_failure', None)
    if failure is not None:
        return failure
    return _reason_value(reason_code) != 0


class PahoTransport:
    """
    One paho client connection with fixed-interval reconnect.

    Args:
        listener: callable(event, *args) receiving transport events
        keepalive: MQTT keepalive in seconds
        reconnect_period: seconds between reconnect attempts
    """

    def __init__(self, listener, keepalive=30, reconnect_period=1):
        self.listener = listener
        self.keepalive = keepalive
        self.reconnect_period = reconnect_period
        self._client = None
        self._lock = threading.Lock()
        self._pending = {}      # mid -> (topic_filter, callback)
        self._attempts = 0

    def _emit(self, event, *args):
        try:
            self.listener(event, *args)
        except Exception as e:
            _log.error("Listener failed on %s: %s", event, e)

    def connect(self, host, port, client_id, username=None, password=None, tls=False):
        """Start connecting in the background; never blocks or raises."""
        client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=client_id,
            protocol=mqtt.MQTTv311,
        )
        client.on_pre_connect = self._on_pre_connect
        client.on_connect = self._on_connect
        client.on_connect_fail = self._on_connect_fail
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message
        client.on_subscribe = self._on_subscribe
        self._client = client

        try:
            if username:
                client.username_pw_set(username, password or None)
            if tls:
                client.tls_set()
            client.reconnect_delay_set(min_delay=self.reconnect_period,
                                       max_delay=self.reconnect_period)
            client.connect_async(host, port, keepalive=self.keepalive)
            client.loop_start()
        except Exception as e:
            error = BrokerConnectionError(str(e) or 'Connection setup failed',
                                          code=type(e).__name__)
            _log.error("Connect to %s:%s failed: %s", host, port, error.detail())
            self._emit('error', error.detail())
            return

        _log.debug("Connecting to %s:%s as %s", host, port, client_id)

    def subscribe(self, topic_filter, qos, callback):
        """
        Subscribe and report the outcome through ``callback``.

        callback(error, granted, reason_codes) is called once, either
        right away when paho refuses the request or later from the
        network thread when the SUBACK arrives. ``granted`` is a list of
        (topic_filter, qos) pairs, 0x80 meaning rejected.
        """
        if self._client is None:
            callback(SubscriptionError('Not connected', code='MQTT_ERR_NO_CONN'), [], None)
            return

        # Held across subscribe() so a fast SUBACK can't beat the mid bookkeeping
        with self._lock:
            try:
                result, mid = self._client.subscribe(topic_filter, qos=qos)
            except Exception as e:
                result, mid = None, None
                error = SubscriptionError(str(e) or 'Subscribe error', code=type(e).__name__)
            else:
                error = None
                if result == mqtt.MQTT_ERR_SUCCESS:
                    self._pending[mid] = (topic_filter, callback)
                else:
                    error = SubscriptionError(mqtt.error_string(result),
                                              reason_code=_reason_value(result),
                                              code=getattr(result, 'name', None))
        if error is not None:
            callback(error, [], None)

    def publish(self, topic, payload, qos):
        if self._client is None:
            return
        info = self._client.publish(topic, payload, qos=qos)
        rc = getattr(info, 'rc', mqtt.MQTT_ERR_SUCCESS)
        if rc != mqtt.MQTT_ERR_SUCCESS:
            _log.warning("Publish to %s failed: %s", topic, mqtt.error_string(rc))

    def close(self):
        """Disconnect and stop the network thread."""
        client = self._client
        self._client = None
        with self._lock:
            self._pending.clear()
        if client is None:
            return
        # Silence late callbacks from the closing client
        client.on_pre_connect = None
        client.on_connect = None
        client.on_connect_fail = None
        client.on_disconnect = None
        client.on_message = None
        client.on_subscribe = None
        try:
            client.disconnect()
        finally:
            client.loop_stop()

    def is_connected(self):
        return self._client is not None and self._client.is_connected()

    # paho callbacks (network thread)

    def _on_pre_connect(self, client, userdata):
        self._attempts += 1
        if self._attempts > 1:
            self._emit('reconnect')

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        if _is_failure(reason_code):
            self._emit('error', 'Connection refused: %s' % reason_code)
            return
        self._emit('connect')

    def _on_connect_fail(self, client, userdata):
        self._emit('error', 'Unable to reach broker')
        self._emit('offline')

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        with self._lock:
            abandoned = list(self._pending.values())
            self._pending.clear()
        for topic_filter, callback in abandoned:
            callback(SubscriptionError('Connection lost before SUBACK'), [], None)
        if _is_failure(reason_code):
            self._emit('error', 'Disconnected: %s' % reason_code)
        self._emit('close')

    def _on_message(self, client, userdata, message):
        self._emit('message', message.topic, message.payload)

    def _on_subscribe(self, client, userdata, mid, reason_code_list, properties=None):
        with self._lock:
            entry = self._pending.pop(mid, None)
        if entry is None:
            return
        topic_filter, callback = entry
        codes = [_reason_value(rc) for rc in reason_code_list]
        granted = [(topic_filter, code) for code in codes]
        callback(None, granted, codes)
