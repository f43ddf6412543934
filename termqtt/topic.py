"""
Topic registry for termqtt.

Keeps the set of topics seen on the broker, hides topics matched by
exclude filters or not matching the search query, and builds a trie of
the remainder for tree navigation.

Supports MQTT wildcards in exclude filters:
- '+' matches exactly one level
- '#' matches zero or more levels (last level only)

Every function here is pure: trees are rebuilt from the topic list on
each query and never mutated afterwards.
"""

import bisect

SEPARATOR = '/'
SINGLE_LEVEL = '+'
MULTI_LEVEL = '#'

INDENT = '  '
MARK_EXPANDED = '- '
MARK_COLLAPSED = '+ '
MARK_LEAF = '  '


class ExcludeFilter:
    """Topic pattern that hides matching topics while enabled."""
    __slots__ = ('pattern', 'enabled')

    def __init__(self, pattern, enabled=True):
        self.pattern = pattern
        self.enabled = enabled

    def __eq__(self, other):
        if not isinstance(other, ExcludeFilter):
            return NotImplemented
        return self.pattern == other.pattern and self.enabled == other.enabled

    def __repr__(self):
        return 'ExcludeFilter(%r, enabled=%r)' % (self.pattern, self.enabled)

    def is_active(self):
        return self.enabled and bool(self.pattern.strip())

    def to_dict(self):
        return {'pattern': self.pattern, 'enabled': self.enabled}

    @classmethod
    def from_dict(cls, data):
        return cls(str(data.get('pattern', '')), bool(data.get('enabled', True)))


class TopicNode:
    """Node in the topic trie."""
    __slots__ = ('name', 'path', 'children')

    def __init__(self, name='', path=''):
        self.name = name
        self.path = path
        self.children = {}   # segment -> TopicNode

    def sorted_children(self):
        """Children in lexicographic segment order."""
        return [self.children[key] for key in sorted(self.children)]

    def has_children(self):
        return bool(self.children)


class TopicEntry:
    """One visible row of the topic tree."""
    __slots__ = ('path', 'label', 'depth', 'has_children')

    def __init__(self, path, label, depth, has_children):
        self.path = path
        self.label = label
        self.depth = depth
        self.has_children = has_children

    def __repr__(self):
        return 'TopicEntry(%r, depth=%d)' % (self.path, self.depth)


def ingest(known_topics, topic):
    """Return the sorted topic list with ``topic`` added if it is new.

    The input list is never modified.
    """
    index = bisect.bisect_left(known_topics, topic)
    if index < len(known_topics) and known_topics[index] == topic:
        return known_topics
    result = list(known_topics)
    result.insert(index, topic)
    return result


def match_filter(topic, pattern):
    """Check if a topic filter matches a concrete topic name.

    Args:
        topic: str, concrete topic name
        pattern: str, may contain +/# wildcards

    Returns:
        bool: True if the pattern matches the topic
    """
    if not pattern:
        return False
    if pattern == MULTI_LEVEL:
        return True

    f_levels = pattern.split(SEPARATOR)
    t_levels = topic.split(SEPARATOR)

    for index, level in enumerate(f_levels):
        if level == MULTI_LEVEL:
            return True
        if index >= len(t_levels):
            return False
        if level == SINGLE_LEVEL:
            continue
        if level != t_levels[index]:
            return False
    return len(f_levels) == len(t_levels)


def _has_wildcard(pattern):
    for level in pattern.split(SEPARATOR):
        if level in (SINGLE_LEVEL, MULTI_LEVEL):
            return True
    return False


def exclude_matches(topic, pattern):
    """Check whether an exclude pattern hides ``topic``.

    Wildcard patterns follow MQTT filter rules. A literal pattern also
    hides any topic containing it as a run of whole levels, so 'read'
    hides 'x/read/y' and 'a/b' hides 'x/a/b/c'.
    """
    pattern = pattern.strip()
    if not pattern:
        return False
    if _has_wildcard(pattern):
        return match_filter(topic, pattern)

    p_levels = pattern.split(SEPARATOR)
    t_levels = topic.split(SEPARATOR)
    width = len(p_levels)
    for start in range(len(t_levels) - width + 1):
        if t_levels[start:start + width] == p_levels:
            return True
    return False


def filtered_topics(topics, filters, search_query=''):
    """Topics that survive the exclude filters and the search query.

    Args:
        topics: iterable of topic names
        filters: list of ExcludeFilter
        search_query: case-insensitive substring, spaces included;
            whitespace-only disables search

    Returns:
        list of topic names, in input order
    """
    active = [f.pattern for f in filters if f.is_active()]
    query = (search_query or '').lower()
    searching = bool(query.strip())

    result = []
    for topic in topics:
        if searching and query not in topic.lower():
            continue
        if any(exclude_matches(topic, pattern) for pattern in active):
            continue
        result.append(topic)
    return result


def build_tree(topics):
    """Build a trie of topics keyed by level.

    Empty levels (leading, trailing or doubled separators) are skipped.

    Returns:
        TopicNode: the root node (empty name and path)
    """
    root = TopicNode()
    for topic in topics:
        node = root
        for level in topic.split(SEPARATOR):
            if not level:
                continue
            child = node.children.get(level)
            if child is None:
                path = node.path + SEPARATOR + level if node.path else level
                child = TopicNode(level, path)
                node.children[level] = child
            node = child
    return root


def find_node(root, path):
    """Locate the node at ``path``; an empty path is the root itself."""
    node = root
    for level in (path or '').split(SEPARATOR):
        if not level:
            continue
        node = node.children.get(level)
        if node is None:
            return None
    return node


def _is_expanded(expansion, path, depth):
    expanded = expansion.get(path)
    if expanded is None:
        return depth == 0
    return expanded


def visible_entries(root, expansion=None):
    """
    List the rows shown for the tree, in display order.

    Uses iterative pre-order DFS. Children of a node are emitted only
    while the node is expanded; nodes at depth 0 are expanded unless the
    expansion map says otherwise, deeper nodes are collapsed by default.

    Args:
        root: TopicNode from build_tree()
        expansion: dict of path -> bool

    Returns:
        list of TopicEntry
    """
    expansion = expansion or {}
    entries = []

    # Stack items: (node, depth); reversed so the first child pops first
    stack = [(child, 0) for child in reversed(root.sorted_children())]

    while stack:
        node, depth = stack.pop()
        has_children = node.has_children()
        expanded = _is_expanded(expansion, node.path, depth)

        if has_children:
            marker = MARK_EXPANDED if expanded else MARK_COLLAPSED
        else:
            marker = MARK_LEAF
        label = INDENT * depth + marker + node.name
        entries.append(TopicEntry(node.path, label, depth, has_children))

        if has_children and expanded:
            for child in reversed(node.sorted_children()):
                stack.append((child, depth + 1))

    return entries


def first_leaf_path(root, from_path):
    """
    Path of the first leaf below ``from_path``.

    Descends into the lexicographically first child until a node without
    children is reached.

    Returns:
        str, or None if the path is unknown or has no children
    """
    node = find_node(root, from_path)
    if node is None or not node.has_children():
        return None
    while node.has_children():
        node = node.sorted_children()[0]
    return node.path


# Exclude filter list editing

def filter_option_name(exclude_filter):
    """Checkbox label for a filter, e.g. '[x] read'."""
    box = '[x]' if exclude_filter.enabled else '[ ]'
    return '%s %s' % (box, exclude_filter.pattern or '(empty)')


def add_filter(filters, value):
    """Append a new enabled filter; blank input leaves the list unchanged."""
    pattern = (value or '').strip()
    if not pattern:
        return filters
    return list(filters) + [ExcludeFilter(pattern, True)]


def edit_filter(filters, index, value):
    """Replace the pattern at ``index``; blank input is ignored."""
    pattern = (value or '').strip()
    if not pattern:
        return filters
    return [ExcludeFilter(pattern, f.enabled) if i == index else f
            for i, f in enumerate(filters)]


def toggle_filter(filters, index):
    return [ExcludeFilter(f.pattern, not f.enabled) if i == index else f
            for i, f in enumerate(filters)]


def delete_filter(filters, index):
    return [f for i, f in enumerate(filters) if i != index]
