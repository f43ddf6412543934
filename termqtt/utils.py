"""
termqtt utility functions.

Input validation for topics and filters, and client ID construction.
"""

import os
import re
import socket

from .errors import ValidationError

DEFAULT_CLIENT_BASE = 'termqtt'

_UNSAFE_KEY = re.compile(r'[^a-zA-Z0-9]+')


def validate_topic_name(topic, max_length=65535):
    """Validate an MQTT topic name (for PUBLISH).

    Args:
        topic: str
        max_length: maximum allowed length in bytes

    Returns:
        The topic with surrounding whitespace removed.

    Raises:
        ValidationError if invalid
    """
    topic = (topic or '').strip()

    if not topic:
        raise ValidationError("Topic name cannot be empty")
    if len(topic.encode('utf-8')) > max_length:
        raise ValidationError("Topic name exceeds maximum length")
    if '+' in topic or '#' in topic:
        raise ValidationError("Topic name cannot contain wildcards")

    return topic


def validate_topic_filter(topic_filter, max_length=65535):
    """Validate an MQTT topic filter (for SUBSCRIBE).

    Args:
        topic_filter: str
        max_length: maximum allowed length in bytes

    Returns:
        The filter with surrounding whitespace removed.

    Raises:
        ValidationError if invalid
    """
    topic_filter = (topic_filter or '').strip()

    if not topic_filter:
        raise ValidationError("Topic filter cannot be empty")
    if len(topic_filter.encode('utf-8')) > max_length:
        raise ValidationError("Topic filter exceeds maximum length")

    # Check '#' - only allowed as last char after '/' or alone
    hash_pos = topic_filter.find('#')
    if hash_pos != -1:
        if hash_pos != len(topic_filter) - 1:
            raise ValidationError("# wildcard must be last character")
        if hash_pos > 0 and topic_filter[hash_pos - 1] != '/':
            raise ValidationError("# must be alone or after /")

    # Check '+' - must occupy entire level
    for level in topic_filter.split('/'):
        if '+' in level and level != '+':
            raise ValidationError("+ must occupy entire level")

    return topic_filter


def build_client_id(base=None, hostname=None, pid=None):
    """Build the client ID sent to the broker.

    Format is "<base>-<hostname>-<pid>" so several explorers on one
    machine don't kick each other off the broker.

    Args:
        base: configured client ID prefix; blank falls back to "termqtt"
        hostname: host name override (defaults to socket.gethostname())
        pid: process ID override (defaults to os.getpid())

    Returns:
        str
    """
    base = (base or '').strip() or DEFAULT_CLIENT_BASE
    if hostname is None:
        hostname = socket.gethostname()
    if pid is None:
        pid = os.getpid()
    return "%s-%s-%d" % (base, hostname, pid)


def sanitize_key(value):
    """Collapse non-alphanumeric runs to '_' and strip edge underscores."""
    return _UNSAFE_KEY.sub('_', value or '').strip('_')
