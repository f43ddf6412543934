"""
termqtt - MQTT topic explorer core.

Tracks the topics seen on a broker as a navigable tree, flattens JSON
payloads into editable rows and republishes edited payloads.
"""

__version__ = '1.0.0'
__author__ = 'mateuszsury'

from .config import BrokerConfig
from .errors import TermqttError, ParsePayloadError, BrokerConnectionError, SubscriptionError, ValidationError
from .topic import ExcludeFilter, TopicNode, match_filter, filtered_topics, build_tree, visible_entries, first_leaf_path
from .payload import TableRow, flatten, rebuild_from_rows, preview_from_rows
from .session import BrokerSession
from .app import Explorer
