"""
Local persistence for termqtt.

Stores each logical key as a JSON file under the user's config directory
($XDG_CONFIG_HOME/termqtt or ~/.config/termqtt). Lists that belong to one
broker (favourites, watchlist, saved messages, exclude filters) are kept
per host and port, falling back to the unscoped file written by older
versions.
"""

import fnmatch
import json
import os

from .logging import get_logger
from .utils import sanitize_key

CONFIG_DIR_NAME = 'termqtt'

BROKER = 'broker'
FAVOURITES = 'favourites'
WATCHLIST = 'watchlist'
SAVED_MESSAGES = 'saved_messages'
FILTERS = 'filters'

SCOPED_KEYS = (FAVOURITES, WATCHLIST, SAVED_MESSAGES, FILTERS)

_log = get_logger('termqtt.storage')


def config_dir(environ=None):
    env = os.environ if environ is None else environ
    xdg = env.get('XDG_CONFIG_HOME', '')
    if xdg.strip():
        return os.path.join(xdg, CONFIG_DIR_NAME)
    return os.path.join(os.path.expanduser('~'), '.config', CONFIG_DIR_NAME)


def file_name(key):
    return 'termqtt_%s.json' % key


def broker_prefix(host, port):
    """Key prefix for one broker, e.g. 'broker_mqtt_example_com_1883_'."""
    safe_host = sanitize_key(host or 'unknown') or 'unknown'
    safe_port = str(port) if isinstance(port, int) else 'unknown'
    return 'broker_%s_%s_' % (safe_host, safe_port)


class JsonStorage:
    """Key-value storage with one JSON file per key."""

    def __init__(self, directory=None):
        self.directory = directory or config_dir()

    def path(self, key):
        return os.path.join(self.directory, file_name(key))

    def exists(self, key):
        return os.path.isfile(self.path(key))

    def load(self, key, fallback=None):
        """Stored value for ``key``; ``fallback`` if missing or unreadable."""
        path = self.path(key)
        if not os.path.isfile(path):
            return fallback
        try:
            with open(path, 'r', encoding='utf-8') as fh:
                return json.load(fh)
        except (OSError, ValueError) as e:
            _log.warning("Ignoring unreadable %s: %s", path, e)
            return fallback

    def save(self, key, value):
        os.makedirs(self.directory, exist_ok=True)
        path = self.path(key)
        tmp = path + '.tmp'
        with open(tmp, 'w', encoding='utf-8') as fh:
            json.dump(value, fh, indent=2, ensure_ascii=False)
        os.replace(tmp, path)

    def files(self):
        """Names of the files stored in the directory."""
        if not os.path.isdir(self.directory):
            return []
        return sorted(name for name in os.listdir(self.directory)
                      if os.path.isfile(os.path.join(self.directory, name)))

    def clear(self, pattern=None):
        """
        Delete stored files, all of them or those matching a glob.

        Returns:
            list of deleted file names
        """
        removed = []
        for name in self.files():
            if pattern and not fnmatch.fnmatch(name, pattern):
                continue
            os.remove(os.path.join(self.directory, name))
            removed.append(name)
        _log.info("Removed %d file(s) from %s", len(removed), self.directory)
        return removed

    def has_broker_config(self):
        return self.exists(BROKER)

    def load_all(self, host, port, fallback=None):
        """
        Load every persisted key for one broker.

        Scoped keys prefer the broker's own file, then the legacy unscoped
        file, then the fallback.

        Returns:
            dict of key -> raw JSON value
        """
        fallback = fallback or {}
        prefix = broker_prefix(host, port)
        data = {BROKER: self.load(BROKER, fallback.get(BROKER))}
        for key in SCOPED_KEYS:
            legacy = self.load(key, fallback.get(key))
            data[key] = self.load(prefix + key, legacy)
        return data

    def save_all(self, data, host, port):
        prefix = broker_prefix(host, port)
        if BROKER in data:
            self.save(BROKER, data[BROKER])
        for key in SCOPED_KEYS:
            if key in data:
                self.save(prefix + key, data[key])
