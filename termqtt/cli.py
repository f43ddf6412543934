"""Command line entry point for termqtt."""

import argparse
import sys

from . import __version__
from .app import Explorer
from .config import BrokerConfig
from .logging import set_level
from .storage import JsonStorage

EPILOG = """\
Examples:
  termqtt -b localhost -P 1883 -r sensors/#
  termqtt -b localhost -r sensors/# -r devices/# -r alerts/#
  termqtt --broker mqtt.example.com --tls --user alice --password secret -r devices/#
"""


def build_parser():
    parser = argparse.ArgumentParser(
        prog='termqtt',
        description='Explore the topics of an MQTT broker.',
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('-v', '--version', action='version', version='termqtt %s' % __version__)
    parser.add_argument('-b', '--broker', help='Broker host')
    parser.add_argument('-P', '--port', type=int, help='Broker port')
    parser.add_argument('-u', '--user', help='Username')
    parser.add_argument('-w', '--password', help='Password')
    parser.add_argument('-t', '--tls', action='store_true', default=None, help='Enable TLS')
    parser.add_argument('-r', '--root-topic', action='append', dest='root_topics', metavar='TOPIC',
                        help='Subscribe filter; repeat for multiple')
    parser.add_argument('--clear-storage', nargs='?', const='', default=None, metavar='GLOB',
                        help='Delete local config files (optionally only those matching GLOB)')
    parser.add_argument('-y', '--yes', action='store_true', help='Skip confirmation prompts')
    parser.add_argument('--log-level', default='WARNING',
                        choices=('DEBUG', 'INFO', 'WARNING', 'ERROR'))
    return parser


def has_overrides(args):
    return any(value is not None for value in (
        args.broker, args.port, args.user, args.password, args.tls, args.root_topics))


def apply_overrides(config, args):
    """Return a copy of ``config`` with command line values applied.

    The first --root-topic becomes the primary filter (and the default
    publish topic if none is set), the rest become extra filters.
    """
    config = config.copy()
    if args.broker:
        config.host = args.broker
    if args.port is not None:
        config.port = args.port
    if args.user is not None:
        config.username = args.user
    if args.password is not None:
        config.password = args.password
    if args.tls:
        config.tls = True
    if args.root_topics:
        config.topic_filter = args.root_topics[0]
        config.extra_topic_filters = list(args.root_topics[1:])
        if not config.default_topic:
            config.default_topic = args.root_topics[0]
    return config


def _confirm(prompt):
    try:
        answer = input(prompt)
    except EOFError:
        return False
    return answer.strip().lower() in ('y', 'yes')


def clear_storage(storage, pattern, assume_yes=False):
    target = pattern or '*'
    if not assume_yes and not _confirm('Delete %s in %s? [y/N] ' % (target, storage.directory)):
        print('Aborted.')
        return 1
    for name in storage.clear(pattern or None):
        print('Removed %s' % name)
    return 0


def main(argv=None):
    args = build_parser().parse_args(argv)
    set_level(args.log_level)
    storage = JsonStorage()

    if args.clear_storage is not None:
        return clear_storage(storage, args.clear_storage, args.yes)

    config = None
    if has_overrides(args):
        stored = storage.load('broker')
        base = BrokerConfig.from_env(base=BrokerConfig.from_dict(stored))
        config = apply_overrides(base, args)

    explorer = Explorer(config, storage=storage, log_level=args.log_level)
    explorer.load()

    seen = [explorer.state.message_count]

    def print_message(state):
        if state.message_count == seen[0]:
            return
        seen[0] = state.message_count
        msg = state.messages.get(state.last_message_topic)
        if msg is not None:
            print('%s %s' % (msg.topic, msg.payload))

    explorer.store.subscribe(print_message)
    explorer.run()
    return 0


if __name__ == '__main__':
    sys.exit(main())
