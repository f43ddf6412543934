"""
Topic explorer for termqtt - wires a BrokerSession to the state store.

Session callbacks become store actions, persisted slices of the state
are written back to storage whenever they change, and operator commands
(publish, search, filters, favourites, watchlist) are validated here
before they reach the session or the store.
"""

import asyncio
import time

from . import state as actions
from . import storage as keys
from .config import BrokerConfig
from .errors import ValidationError
from .logging import get_logger
from .payload import RAW_KEY, TableRow, rebuild_from_rows, rows_from_value
from .session import BrokerSession
from .state import Favourite, SavedMessage, Store, WatchEntry, create_initial_state
from .topic import (
    ExcludeFilter, add_filter, delete_filter, edit_filter, toggle_filter, SEPARATOR,
)
from .utils import validate_topic_name


def _load_list(raw, cls):
    if not isinstance(raw, list):
        return []
    return [cls.from_dict(item) for item in raw if isinstance(item, dict)]


class Explorer:
    """Topic explorer application core.

    Example:
        explorer = Explorer(BrokerConfig(host='localhost'), storage=JsonStorage())
        explorer.run()  # blocking
    """

    def __init__(self, config=None, storage=None, session=None, clock=None,
                 environ=None, log_level=None):
        """Initialize the explorer.

        Args:
            config: BrokerConfig that overrides persisted and env settings
            storage: JsonStorage (None disables persistence)
            session: BrokerSession (created if None)
            clock: Callable returning wall-clock seconds for message stamps
            environ: Environment mapping for TERMQTT_* overrides
            log_level: 'DEBUG', 'INFO', 'WARNING', 'ERROR'
        """
        self._log = get_logger('termqtt.app', log_level)
        self._config = config.copy() if config is not None else None
        self._environ = environ
        self._clock = clock or time.time
        self.storage = storage

        initial = create_initial_state(environ)
        if self._config is not None:
            initial = initial.replace(broker=self._config.copy())
        self.store = Store(initial)
        self._persisted = self._persisted_slices(initial)

        self.session = session or BrokerSession(log_level=log_level)
        self.session.on_status(self._on_status)
        self.session.on_message(self._on_message)
        self.session.on_subscription(self._on_subscription)

        self.store.subscribe(self._persist_if_changed)

    @property
    def state(self):
        return self.store.get_state()

    # Session hooks

    def _on_status(self, status, error=None):
        self.store.dispatch(actions.status(status, error))

    def _on_message(self, topic, payload):
        self.store.dispatch(actions.message(topic, payload, self._clock()))

    def _on_subscription(self, filter_label, summary):
        self.store.dispatch(actions.subscription(filter_label, summary))

    # Persistence

    @staticmethod
    def _persisted_slices(state):
        return (state.broker, state.favourites, state.watchlist,
                state.saved_messages, state.exclude_filters)

    def load(self):
        """Hydrate broker settings and per-broker lists from storage."""
        if self.storage is None:
            return
        current = self.state

        broker = current.broker
        if self._config is None:
            stored = self.storage.load(keys.BROKER)
            if isinstance(stored, dict):
                broker = BrokerConfig.from_env(self._environ, base=BrokerConfig.from_dict(stored))

        data = self.storage.load_all(broker.host, broker.port)
        changes = {'broker': broker}
        if data.get(keys.FAVOURITES) is not None:
            changes['favourites'] = _load_list(data[keys.FAVOURITES], Favourite)
        if data.get(keys.WATCHLIST) is not None:
            changes['watchlist'] = _load_list(data[keys.WATCHLIST], WatchEntry)
        if data.get(keys.SAVED_MESSAGES) is not None:
            changes['saved_messages'] = _load_list(data[keys.SAVED_MESSAGES], SavedMessage)
        if data.get(keys.FILTERS) is not None:
            changes['exclude_filters'] = _load_list(data[keys.FILTERS], ExcludeFilter)

        # Freshly loaded data doesn't need writing back
        self._persisted = None
        self.store.dispatch(actions.hydrate(**changes))
        self._persisted = self._persisted_slices(self.state)
        self._log.debug("Loaded settings for %s:%s", broker.host, broker.port)

    def _persist_if_changed(self, state):
        if self.storage is None or self._persisted is None:
            return
        slices = self._persisted_slices(state)
        if all(a is b for a, b in zip(slices, self._persisted)):
            return
        self._persisted = slices
        self.save()

    def save(self):
        if self.storage is None:
            return
        current = self.state
        data = {
            keys.BROKER: current.broker.to_dict(),
            keys.FAVOURITES: [f.to_dict() for f in current.favourites],
            keys.WATCHLIST: [w.to_dict() for w in current.watchlist],
            keys.SAVED_MESSAGES: [m.to_dict() for m in current.saved_messages],
            keys.FILTERS: [f.to_dict() for f in current.exclude_filters],
        }
        try:
            self.storage.save_all(data, current.broker.host, current.broker.port)
        except OSError as e:
            self._log.error("Failed to save settings: %s", e)

    # Lifecycle

    def start(self):
        self.session.connect(self.state.broker)

    async def run_async(self):
        """Connect and consume session events until stop()."""
        self.start()
        try:
            await self.session.run()
        finally:
            self.session.disconnect()

    def run(self):
        """Run the explorer (blocking). Handles KeyboardInterrupt gracefully."""
        try:
            asyncio.run(self.run_async())
        except KeyboardInterrupt:
            self._log.info("Stopped by user")

    def stop(self):
        self.session.stop()

    def set_broker(self, config):
        """Switch to a new broker configuration and reconnect."""
        try:
            config.validate()
        except ValueError as e:
            raise ValidationError(str(e))
        config = config.copy()
        self.store.set_state(broker=config)
        self.session.update_config(config)

    # Publishing

    def publish(self, topic, payload):
        """
        Publish ``payload`` to ``topic``.

        Raises:
            ValidationError: if the topic is blank or contains wildcards

        Returns:
            bool: True if handed to the broker, False while not connected
        """
        topic = validate_topic_name(topic)
        return self.session.publish(topic, payload)

    def publish_rows(self, topic, rows, raw_mode=False):
        return self.publish(topic, rebuild_from_rows(rows, raw_mode))

    def rows_for(self, topic):
        """
        Editable rows for the latest message on ``topic``.

        Returns:
            (rows, raw_mode) tuple; non-JSON payloads come back as a
            single raw 'payload' row
        """
        msg = self.state.messages.get(topic)
        if msg is None:
            return [], False
        if msg.is_json:
            return rows_from_value(msg.json), False
        return [TableRow(RAW_KEY, msg.payload)], True

    # Topic tree

    def set_search(self, query):
        self.store.set_state(search_query=query or '')

    def set_updates_paused(self, paused):
        self.store.set_state(updates_paused=bool(paused))

    def toggle_expansion(self, path):
        depth = len([level for level in path.split(SEPARATOR) if level]) - 1
        expansion = dict(self.state.topic_expansion)
        expansion[path] = not expansion.get(path, depth == 0)
        self.store.set_state(topic_expansion=expansion)
        return expansion[path]

    # Exclude filters

    def add_exclude_filter(self, pattern):
        if not (pattern or '').strip():
            raise ValidationError("Filter pattern cannot be empty")
        self.store.set_state(exclude_filters=add_filter(self.state.exclude_filters, pattern))

    def edit_exclude_filter(self, index, pattern):
        if not (pattern or '').strip():
            raise ValidationError("Filter pattern cannot be empty")
        self.store.set_state(exclude_filters=edit_filter(self.state.exclude_filters, index, pattern))

    def toggle_exclude_filter(self, index):
        self.store.set_state(exclude_filters=toggle_filter(self.state.exclude_filters, index))

    def delete_exclude_filter(self, index):
        self.store.set_state(exclude_filters=delete_filter(self.state.exclude_filters, index))

    # Favourites, watchlist and saved messages

    def add_favourite(self, topic, alias=None):
        topic = validate_topic_name(topic)
        if any(f.topic == topic for f in self.state.favourites):
            return
        self.store.set_state(favourites=self.state.favourites + [Favourite(topic, alias)])

    def rename_favourite(self, topic, alias):
        favourites = [Favourite(f.topic, alias or None) if f.topic == topic else f
                      for f in self.state.favourites]
        self.store.set_state(favourites=favourites)

    def remove_favourite(self, topic):
        self.store.set_state(favourites=[f for f in self.state.favourites if f.topic != topic])

    def add_watch(self, topic, path):
        entry = WatchEntry(validate_topic_name(topic), path)
        if entry in self.state.watchlist:
            return
        self.store.set_state(watchlist=self.state.watchlist + [entry])

    def remove_watch(self, index):
        self.store.set_state(watchlist=[w for i, w in enumerate(self.state.watchlist) if i != index])

    def save_message(self, name, topic, payload):
        name = (name or '').strip()
        if not name:
            raise ValidationError("Message name cannot be empty")
        saved = [m for m in self.state.saved_messages if m.name != name]
        saved.append(SavedMessage(name, validate_topic_name(topic), payload))
        self.store.set_state(saved_messages=saved)

    def delete_saved_message(self, name):
        self.store.set_state(saved_messages=[m for m in self.state.saved_messages if m.name != name])
