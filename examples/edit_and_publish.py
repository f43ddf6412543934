"""
Edit and Publish Example
========================

Takes the latest payload on a topic, changes one field through the
flattened rows and publishes the result back.

This example demonstrates:
- Explorer wiring a session to the state store
- rows_for() / publish_rows() for field-by-field edits
- Previewing the rebuilt payload before sending it

Test commands:
    mosquitto_pub -h localhost -t 'devices/pump' -m '{"speed": 40, "mode": "auto"}'
    mosquitto_sub -h localhost -t 'devices/pump' -v
"""

import asyncio

from termqtt import BrokerConfig, Explorer, TableRow, preview_from_rows
from termqtt.storage import JsonStorage

TOPIC = 'devices/pump'

explorer = Explorer(
    BrokerConfig(host='localhost', topic_filter='devices/#', default_topic=TOPIC),
    storage=JsonStorage(),
    log_level='INFO',
)
explorer.load()
done = []


def on_state(state):
    if done or TOPIC not in state.messages:
        return
    done.append(True)

    rows, raw_mode = explorer.rows_for(TOPIC)
    rows = [TableRow(row.key, '75') if row.key == 'speed' else row for row in rows]
    print('Publishing:\n%s' % preview_from_rows(rows, raw_mode))

    explorer.set_updates_paused(True)
    explorer.publish_rows(TOPIC, rows, raw_mode)
    explorer.stop()


explorer.store.subscribe(on_state)

try:
    asyncio.run(explorer.run_async())
except KeyboardInterrupt:
    pass
