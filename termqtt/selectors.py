"""Derived views of AppState for the topic, payload, watch and status panes."""

from .payload import FlattenedEntry, STRING, flatten, format_value, pretty_json
from .session import CONNECTED
from .topic import build_tree, filtered_topics, first_leaf_path, visible_entries


def _visible_tree(state):
    topics = filtered_topics(state.topics, state.exclude_filters, state.search_query)
    return build_tree(topics)


def topic_tree_entries(state):
    """
    Rows of the topic pane.

    Returns:
        (entries, topic_paths) tuple: TopicEntry list and their paths
    """
    entries = visible_entries(_visible_tree(state), state.topic_expansion)
    return entries, [entry.path for entry in entries]


def first_leaf_topic_path(state, parent_path):
    return first_leaf_path(_visible_tree(state), parent_path)


def payload_entries(message):
    """Flattened rows for a message; error/raw rows if it isn't JSON."""
    if message is None:
        return []
    if message.is_json:
        return flatten(message.json)
    return [
        FlattenedEntry('error', 'JSON parse error: %s' % message.error, STRING),
        FlattenedEntry('raw', message.payload, STRING),
    ]


def watch_options(state):
    """(name, description) per watch entry; description is the current value."""
    options = []
    for entry in state.watchlist:
        description = ''
        msg = state.messages.get(entry.topic)
        if msg is not None and msg.is_json:
            for item in flatten(msg.json):
                if item.path == entry.path:
                    description = format_value(item.value)
                    break
        options.append(('%s:%s' % (entry.topic, entry.path), description))
    return options


class StatusLine:
    __slots__ = ('line1', 'line2', 'paused', 'search_active', 'excludes_active')

    def __init__(self, line1, line2, paused, search_active, excludes_active):
        self.line1 = line1
        self.line2 = line2
        self.paused = paused
        self.search_active = search_active
        self.excludes_active = excludes_active


def status_line(state):
    excludes = sum(1 for f in state.exclude_filters if f.enabled)
    broker = state.broker
    search = 'search:%s' % state.search_query if state.search_query else 'search:off'
    line1 = '%s  broker:%s:%s  filter:%s  %s' % (
        state.connection_status.upper(), broker.host, broker.port,
        broker.topic_filter or '#', search)

    parts = ['messages:%d' % state.message_count, 'excludes:%d' % excludes]
    if state.connection_error:
        parts.append('error:%s' % state.connection_error)
    if state.subscription_info:
        parts.append('sub:%s' % state.subscription_info)

    return StatusLine(
        line1=line1.strip(),
        line2='  '.join(parts),
        paused=state.updates_paused and state.connection_status == CONNECTED,
        search_active=bool(state.search_query.strip()),
        excludes_active=excludes > 0,
    )


def details_content(message):
    """
    Text for the details pane.

    Returns:
        (content, is_json) tuple
    """
    if message is None:
        return 'No message selected', False
    if message.is_json:
        return pretty_json(message.json), True
    return message.payload, False
