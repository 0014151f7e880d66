# app/cli/emit_event.py
import asyncio
import json
import logging
from datetime import timedelta

import click

from app.core.config import get_settings
from app.core.enums import EventType
from app.core.exceptions import EventAppendError
from app.core.logging_config import configure_logging
from app.database import async_session, engine
from app.services.event_store import EventStore
from app.services.notifications.channel import build_channel
from app.services.notifications.notifier import ChangeNotifier

logger = logging.getLogger(__name__)

@click.command()
@click.argument('event_type', type=click.Choice([t.value for t in EventType]))
@click.option('--seller', 'seller_id', required=True, help='Seller partition key')
@click.option('--product', 'product_id', type=int, default=None, help='Product id the event refers to')
@click.option('--payload', default='{}', help='JSON payload document')
def emit_event(event_type, seller_id, product_id, payload):
    """Append an event by hand and publish it to live stream subscribers."""
    configure_logging()
    try:
        document = json.loads(payload)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"payload is not valid JSON: {e}")

    try:
        event_id = asyncio.run(run_emit(event_type, seller_id, product_id, document))
        click.echo(f"Appended event {event_id}")
    except EventAppendError as e:
        logger.exception("Error appending event")
        click.echo(f"Error appending event: {str(e)}")

async def run_emit(event_type, seller_id, product_id, payload):
    settings = get_settings()
    channel = build_channel(settings)
    notifier = ChangeNotifier(
        channel,
        topic=settings.NOTIFICATION_CHANNEL,
        dedup_window=timedelta(seconds=settings.DEDUP_WINDOW_SECONDS),
    )
    notifier.start()
    try:
        async with async_session() as session:
            event = await EventStore(session, notifier).append_event(event_type, seller_id, product_id, payload)
            await session.commit()
        # Wait for the notification to leave the outbox
        await notifier.drain()
        return event.id
    finally:
        await notifier.stop()
        await channel.close()
        await engine.dispose()

if __name__ == "__main__":
    emit_event()
