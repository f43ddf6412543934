"""
termqtt Broker Configuration

Connection settings for one broker. Uses __slots__ and keyword overrides
like the rest of the package; sessions take a copy at connect time so the
caller's object can be edited freely afterwards.
"""

import os

from .utils import validate_topic_filter

ENV_PREFIX = 'TERMQTT_'

_PERSISTED = (
    'host', 'port', 'client_id', 'username', 'password',
    'topic_filter', 'extra_topic_filters', 'default_topic',
    'tls', 'qos',
)

_TRUE_VALUES = ('1', 'true', 'yes', 'on')


def _is_int(value):
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value):
    return _is_int(value) or isinstance(value, float)


class BrokerConfig:
    """Configuration parameters for a broker connection."""

    __slots__ = (
        'host', 'port', 'client_id', 'username', 'password', 'tls', 'qos',
        'topic_filter', 'extra_topic_filters', 'default_topic',
        'keepalive', 'reconnect_period', 'subscribe_timeout',
        'log_level'
    )

    def __init__(self, **kwargs):
        """Initialize configuration with defaults, override with kwargs."""
        # Network settings
        self.host = 'localhost'
        self.port = 1883
        self.tls = False

        # Identity and credentials
        self.client_id = 'termqtt'
        self.username = ''
        self.password = ''

        # Subscriptions
        self.qos = 0
        self.topic_filter = '#'
        self.extra_topic_filters = []
        self.default_topic = ''

        # Transport tunables
        self.keepalive = 30
        self.reconnect_period = 1
        self.subscribe_timeout = None

        # Logging
        self.log_level = 'INFO'

        for key, value in kwargs.items():
            if hasattr(self, key):
                setattr(self, key, value)

        # Never share the caller's list
        self.extra_topic_filters = list(self.extra_topic_filters or [])

    def __eq__(self, other):
        if not isinstance(other, BrokerConfig):
            return NotImplemented
        return all(getattr(self, name) == getattr(other, name) for name in self.__slots__)

    def __repr__(self):
        return 'BrokerConfig(host=%r, port=%r, tls=%r, topic_filter=%r)' % (
            self.host, self.port, self.tls, self.topic_filter)

    def copy(self, **changes):
        """Return an independent copy, optionally with fields replaced."""
        values = {name: getattr(self, name) for name in self.__slots__}
        values.update(changes)
        return BrokerConfig(**values)

    def active_filters(self):
        """Deduplicated subscription filters, primary first.

        A blank primary filter falls back to '#'. Blank extras and repeats
        are dropped.
        """
        primary = (self.topic_filter or '').strip() or '#'
        filters = [primary]
        for extra in self.extra_topic_filters:
            extra = (extra or '').strip()
            if extra and extra not in filters:
                filters.append(extra)
        return filters

    def validate(self):
        """Validate configuration parameters.

        Raises:
            ValueError: If any parameter is invalid.
        """
        if not isinstance(self.host, str) or not self.host.strip():
            raise ValueError('host must not be empty')

        if not _is_int(self.port) or not (1 <= self.port <= 65535):
            raise ValueError('port must be an integer in range 1-65535, got %r' % (self.port,))

        if not _is_int(self.qos) or self.qos not in (0, 1, 2):
            raise ValueError('qos must be 0, 1 or 2, got %r' % (self.qos,))

        if not _is_int(self.keepalive) or self.keepalive < 0:
            raise ValueError('keepalive must be an integer >= 0, got %r' % (self.keepalive,))

        if not _is_number(self.reconnect_period) or self.reconnect_period <= 0:
            raise ValueError('reconnect_period must be > 0, got %r' % (self.reconnect_period,))

        if self.subscribe_timeout is not None and (
                not _is_number(self.subscribe_timeout) or self.subscribe_timeout <= 0):
            raise ValueError('subscribe_timeout must be > 0 or None, got %r' % (self.subscribe_timeout,))

        if not isinstance(self.topic_filter, str):
            raise ValueError('topic_filter must be a string, got %r' % (self.topic_filter,))
        for extra in self.extra_topic_filters:
            if not isinstance(extra, str):
                raise ValueError('extra_topic_filters must hold strings, got %r' % (extra,))

        for topic_filter in self.active_filters():
            validate_topic_filter(topic_filter)

        valid_levels = ('DEBUG', 'INFO', 'WARNING', 'ERROR')
        if self.log_level not in valid_levels:
            raise ValueError('log_level must be one of %s, got %s' % (valid_levels, self.log_level))

    def to_dict(self):
        """Fields that are persisted between runs."""
        data = {name: getattr(self, name) for name in _PERSISTED}
        data['extra_topic_filters'] = list(self.extra_topic_filters)
        return data

    @classmethod
    def from_dict(cls, data, base=None):
        """Build a config from persisted data layered over ``base``."""
        config = base.copy() if base is not None else cls()
        if not isinstance(data, dict):
            return config
        for name in _PERSISTED:
            if name in data:
                setattr(config, name, data[name])
        # Stored ports may be strings
        if isinstance(config.port, str):
            try:
                config.port = int(config.port)
            except ValueError:
                pass
        extras = config.extra_topic_filters
        config.extra_topic_filters = list(extras) if isinstance(extras, (list, tuple)) else []
        return config

    @classmethod
    def from_env(cls, environ=None, base=None):
        """Apply TERMQTT_* environment overrides over ``base``.

        TERMQTT_ROOT_TOPIC sets both the subscription filter and the
        default publish topic.
        """
        env = os.environ if environ is None else environ
        config = base.copy() if base is not None else cls()

        host = env.get(ENV_PREFIX + 'BROKER')
        if host:
            config.host = host

        port = env.get(ENV_PREFIX + 'PORT')
        if port:
            try:
                config.port = int(port)
            except ValueError:
                pass

        user = env.get(ENV_PREFIX + 'USER')
        if user:
            config.username = user

        password = env.get(ENV_PREFIX + 'PASSWORD')
        if password:
            config.password = password

        tls = env.get(ENV_PREFIX + 'TLS')
        if tls:
            config.tls = tls.strip().lower() in _TRUE_VALUES

        root = env.get(ENV_PREFIX + 'ROOT_TOPIC')
        if root:
            config.topic_filter = root
            config.default_topic = root

        return config
