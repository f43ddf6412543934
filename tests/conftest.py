"""
pytest configuration and fixtures for termqtt tests.

FakeTransport stands in for the paho-backed transport: tests drive the
session by emitting transport events and acknowledging subscriptions by
hand, then calling session.pump().
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from termqtt.config import BrokerConfig
from termqtt.logging import set_level
from termqtt.session import BrokerSession
from termqtt.storage import JsonStorage

# Configure pytest-asyncio for the async session tests
pytest_plugins = ('pytest_asyncio',)


class FakeTransport:
    """Records calls made by BrokerSession and replays transport events."""

    def __init__(self, listener, config):
        self.listener = listener
        self.config = config
        self.connect_args = None
        self.subscriptions = []   # (topic_filter, qos, callback)
        self.published = []       # (topic, payload, qos)
        self.closed = False

    def connect(self, host, port, client_id, username=None, password=None, tls=False):
        self.connect_args = {
            'host': host, 'port': port, 'client_id': client_id,
            'username': username, 'password': password, 'tls': tls,
        }

    def subscribe(self, topic_filter, qos, callback):
        self.subscriptions.append((topic_filter, qos, callback))

    def publish(self, topic, payload, qos):
        self.published.append((topic, payload, qos))

    def close(self):
        self.closed = True

    def emit(self, event, *args):
        """Simulate a transport event."""
        self.listener(event, *args)

    def filters(self):
        return [s[0] for s in self.subscriptions]

    def ack(self, topic_filter, qos=0, error=None, reason_codes=None, granted=None):
        """Simulate the SUBACK (or failure) for one subscribed filter."""
        for subscribed, _, callback in self.subscriptions:
            if subscribed == topic_filter:
                if granted is None:
                    granted = [] if error is not None else [(topic_filter, qos)]
                callback(error, granted, reason_codes)
                return
        raise AssertionError('%s was never subscribed' % topic_filter)


class TransportFactory:
    """Transport factory that keeps every FakeTransport it creates."""

    def __init__(self):
        self.created = []

    def __call__(self, listener, config):
        transport = FakeTransport(listener, config)
        self.created.append(transport)
        return transport

    @property
    def last(self):
        return self.created[-1]


class Recorder:
    """Collects session callbacks."""

    def __init__(self):
        self.statuses = []
        self.messages = []
        self.subscriptions = []

    def on_status(self, status, error=None):
        self.statuses.append((status, error))

    def on_message(self, topic, payload):
        self.messages.append((topic, payload))

    def on_subscription(self, filter_label, summary):
        self.subscriptions.append((filter_label, summary))

    @property
    def last_status(self):
        return self.statuses[-1] if self.statuses else None


@pytest.fixture(autouse=True)
def quiet_logs():
    """Keep loggers quiet during tests."""
    set_level('ERROR')
    yield


@pytest.fixture
def broker_config():
    """Provide a BrokerConfig with test defaults."""
    return BrokerConfig(
        host='broker.test',
        port=1883,
        client_id='tester',
        topic_filter='sensors/#',
        qos=1,
        log_level='ERROR',
    )


@pytest.fixture
def transport_factory():
    return TransportFactory()


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def session(transport_factory, recorder):
    """Provide a BrokerSession wired to a FakeTransport and a Recorder."""
    return BrokerSession(
        on_status=recorder.on_status,
        on_message=recorder.on_message,
        on_subscription=recorder.on_subscription,
        transport_factory=transport_factory,
        client_id_factory=lambda config: 'test-client',
    )


@pytest.fixture
def connected_session(session, transport_factory, broker_config):
    """A session whose transport has reported CONNACK."""
    session.connect(broker_config)
    transport_factory.last.emit('connect')
    session.pump()
    return session


@pytest.fixture
def storage(tmp_path):
    """JsonStorage in a temporary directory."""
    return JsonStorage(str(tmp_path / 'termqtt'))
