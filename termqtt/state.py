"""
Application state for termqtt.

AppState is an immutable snapshot; every change goes through reduce(),
a pure function of (state, action). Store applies dispatched actions one
at a time, so an action dispatched from a listener runs after the current
one has finished.
"""

from collections import deque

from .config import BrokerConfig
from .logging import get_logger
from .payload import parse_json
from .topic import ExcludeFilter, ingest

# Panes
TOPICS = 'topics'
FAVOURITES = 'favourites'
PAYLOAD = 'payload'
WATCHLIST = 'watchlist'
DETAILS = 'details'

PANES = (TOPICS, FAVOURITES, PAYLOAD, WATCHLIST, DETAILS)

# Action types
HYDRATE = 'hydrate'
STATUS = 'status'
SUBSCRIPTION = 'subscription'
MESSAGE = 'message'
SET = 'set'

DEFAULT_EXCLUDES = ('read', 'data', 'config')

_log = get_logger('termqtt.state')


class TopicMessage:
    """Latest message received on a topic."""
    __slots__ = ('topic', 'payload', 'json', 'error', 'received_at')

    def __init__(self, topic, payload, json=None, error=None, received_at=0):
        self.topic = topic
        self.payload = payload
        self.json = json
        self.error = error
        self.received_at = received_at

    @property
    def is_json(self):
        return self.error is None

    @classmethod
    def parse(cls, topic, payload, received_at=0):
        value, error = parse_json(payload)
        return cls(topic, payload, value, error, received_at)


class Favourite:
    __slots__ = ('topic', 'alias')

    def __init__(self, topic, alias=None):
        self.topic = topic
        self.alias = alias

    def __eq__(self, other):
        if not isinstance(other, Favourite):
            return NotImplemented
        return self.topic == other.topic and self.alias == other.alias

    def to_dict(self):
        data = {'topic': self.topic}
        if self.alias:
            data['alias'] = self.alias
        return data

    @classmethod
    def from_dict(cls, data):
        return cls(str(data.get('topic', '')), data.get('alias') or None)


class WatchEntry:
    """A payload field pinned to the watchlist."""
    __slots__ = ('topic', 'path')

    def __init__(self, topic, path):
        self.topic = topic
        self.path = path

    def __eq__(self, other):
        if not isinstance(other, WatchEntry):
            return NotImplemented
        return self.topic == other.topic and self.path == other.path

    def to_dict(self):
        return {'topic': self.topic, 'path': self.path}

    @classmethod
    def from_dict(cls, data):
        return cls(str(data.get('topic', '')), str(data.get('path', '')))


class SavedMessage:
    __slots__ = ('name', 'topic', 'payload')

    def __init__(self, name, topic, payload):
        self.name = name
        self.topic = topic
        self.payload = payload

    def __eq__(self, other):
        if not isinstance(other, SavedMessage):
            return NotImplemented
        return (self.name, self.topic, self.payload) == (other.name, other.topic, other.payload)

    def to_dict(self):
        return {'name': self.name, 'topic': self.topic, 'payload': self.payload}

    @classmethod
    def from_dict(cls, data):
        return cls(str(data.get('name', '')), str(data.get('topic', '')),
                   str(data.get('payload', '')))


class AppState:
    """Immutable application snapshot. Use replace() to derive a new one."""

    __slots__ = (
        'broker', 'connection_status', 'connection_error',
        'message_count', 'last_message_topic', 'last_message_at',
        'last_subscription', 'subscription_info',
        'topic_expansion', 'topics', 'messages',
        'favourites', 'watchlist', 'saved_messages', 'exclude_filters',
        'search_query', 'updates_paused',
        'selected_topic_index', 'selected_payload_index',
        'selected_favourite_index', 'selected_watch_index',
        'active_pane'
    )

    def __init__(self, **kwargs):
        defaults = {
            'broker': None,
            'connection_status': 'disconnected',
            'connection_error': None,
            'message_count': 0,
            'last_message_topic': None,
            'last_message_at': None,
            'last_subscription': None,
            'subscription_info': None,
            'topic_expansion': {},
            'topics': [],
            'messages': {},
            'favourites': [],
            'watchlist': [],
            'saved_messages': [],
            'exclude_filters': [],
            'search_query': '',
            'updates_paused': False,
            'selected_topic_index': 0,
            'selected_payload_index': 0,
            'selected_favourite_index': 0,
            'selected_watch_index': 0,
            'active_pane': TOPICS,
        }
        for key in kwargs:
            if key not in defaults:
                raise AttributeError('AppState has no field %r' % key)
        defaults.update(kwargs)
        if defaults['broker'] is None:
            defaults['broker'] = BrokerConfig()
        for key, value in defaults.items():
            object.__setattr__(self, key, value)

    def __setattr__(self, name, value):
        raise AttributeError('AppState is immutable; use replace()')

    def replace(self, **changes):
        values = {name: getattr(self, name) for name in self.__slots__}
        values.update(changes)
        return AppState(**values)


def create_initial_state(environ=None):
    """Default state, with TERMQTT_* environment overrides on the broker."""
    return AppState(
        broker=BrokerConfig.from_env(environ),
        exclude_filters=[ExcludeFilter(pattern, True) for pattern in DEFAULT_EXCLUDES],
    )


# Action builders

def hydrate(**data):
    return {'type': HYDRATE, 'data': data}


def status(status, error=None):
    return {'type': STATUS, 'status': status, 'error': error}


def subscription(filter_label, info):
    return {'type': SUBSCRIPTION, 'filter': filter_label, 'info': info}


def message(topic, payload, received_at):
    return {'type': MESSAGE, 'topic': topic, 'payload': payload, 'received_at': received_at}


def set_fields(**data):
    return {'type': SET, 'data': data}


def reduce(state, action):
    """
    Apply one action to ``state``.

    Returns:
        AppState: the new state, or ``state`` itself when nothing changed
    """
    kind = action.get('type')

    if kind in (HYDRATE, SET):
        return state.replace(**action['data'])

    if kind == STATUS:
        return state.replace(connection_status=action['status'],
                             connection_error=action.get('error'))

    if kind == SUBSCRIPTION:
        return state.replace(last_subscription=action['filter'],
                             subscription_info=action['info'])

    if kind == MESSAGE:
        if state.updates_paused:
            return state
        topic = action['topic']
        received_at = action['received_at']
        messages = dict(state.messages)
        messages[topic] = TopicMessage.parse(topic, action['payload'], received_at)
        return state.replace(
            messages=messages,
            topics=ingest(state.topics, topic),
            message_count=state.message_count + 1,
            last_message_topic=topic,
            last_message_at=received_at,
        )

    return state


class Store:
    """Holds the current AppState and notifies listeners of changes."""

    def __init__(self, initial, reducer=reduce):
        self._state = initial
        self._reducer = reducer
        self._listeners = []
        self._pending = deque()
        self._dispatching = False

    def get_state(self):
        return self._state

    def dispatch(self, action):
        self._pending.append(lambda current: self._reducer(current, action))
        self._drain()

    def set_state(self, **changes):
        self._pending.append(lambda current: current.replace(**changes))
        self._drain()

    def update_state(self, updater):
        self._pending.append(updater)
        self._drain()

    def _drain(self):
        if self._dispatching:
            return
        self._dispatching = True
        try:
            while self._pending:
                step = self._pending.popleft()
                previous = self._state
                self._state = step(previous)
                if self._state is not previous:
                    self._notify()
        finally:
            self._dispatching = False

    def _notify(self):
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception as e:
                _log.error("Error in state listener: %s", e)

    def subscribe(self, listener):
        """Register ``listener(state)``; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe
