"""
Watch Topics Example
====================

Headless BrokerSession printing every message and the subscription
summary for two filters.

This example demonstrates:
- Hook decorators on BrokerSession
- Several subscribe filters per connection
- Running the session loop with asyncio

Test commands:
    mosquitto_pub -h localhost -t 'sensors/boiler' -m '{"temp": 61.5}'
    mosquitto_pub -h localhost -t 'alerts/boiler' -m 'overheat'
"""

import asyncio

from termqtt import BrokerConfig, BrokerSession

config = BrokerConfig(
    host='localhost',
    port=1883,
    topic_filter='sensors/#',
    extra_topic_filters=['alerts/#'],
    subscribe_timeout=10,
    log_level='INFO',
)

session = BrokerSession(log_level='INFO')


@session.on_status
def on_status(status, error):
    print('[STATUS] %s%s' % (status, ' (%s)' % error if error else ''))


@session.on_subscription
def on_subscription(filters, summary):
    print('[SUB] %s -> %s' % (filters, summary))


@session.on_message
def on_message(topic, payload):
    print('[MSG] %s = %s' % (topic, payload))


async def main():
    session.connect(config)
    try:
        await session.run()
    finally:
        session.disconnect()


try:
    asyncio.run(main())
except KeyboardInterrupt:
    pass
