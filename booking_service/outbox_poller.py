import asyncio
import logging
from aiokafka import AIOKafkaProducer
from aiokafka.errors import KafkaConnectionError  # Import the error
from sqlalchemy.orm import Session
from sqlalchemy.sql import select

from .database import SessionLocal
from .models import OutboxEvent
from .config import settings

logger = logging.getLogger("outbox_poller")


async def publish_pending_events(db: Session, producer: AIOKafkaProducer, batch_size: int = 100) -> int:
    """
    Sends up to ``batch_size`` pending outbox events to Kafka, oldest first,
    and deletes the ones that were delivered. Returns how many were sent.
    """
    stmt = select(OutboxEvent).where(
        OutboxEvent.status == "PENDING"
    ).order_by(OutboxEvent.id).limit(batch_size).with_for_update()

    pending_events = db.execute(stmt).scalars().all()
    if not pending_events:
        return 0

    logger.info(f"Found {len(pending_events)} pending events in outbox.")

    events_processed = 0
    for event in pending_events:
        try:
            await producer.send_and_wait(
                topic=event.topic,
                value=event.payload.encode("utf-8"),
                key=event.key.encode("utf-8") if event.key else None,
            )
        except Exception as e:
            logger.error(f"Failed to send event {event.id} to Kafka: {e}")
            # Keep order per resource: stop here, retry this one next round
            break
        db.delete(event)
        events_processed += 1

    if events_processed > 0:
        db.commit()
        logger.info(f"Successfully processed {events_processed} events.")
    else:
        db.rollback()
    return events_processed


async def run_outbox_poller(
    poll_interval: int = settings.OUTBOX_POLL_INTERVAL_SECONDS,
    retry_delay: int = 5,
    max_retries: int = 5,
):
    """
    Continuously polls the OutboxEvent table and sends pending messages to Kafka.
    Includes retries for initial Kafka connection.
    """
    logger.info("Starting outbox poller...")

    producer = None
    retries = 0
    while producer is None and retries < max_retries:
        try:
            producer = AIOKafkaProducer(
                bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS
            )
            await producer.start()
            logger.info(f"Outbox poller connected to Kafka on attempt {retries + 1}.")
        except KafkaConnectionError as e:
            retries += 1
            logger.warning(
                f"Kafka connection attempt {retries}/{max_retries} failed: {e}. Retrying in {retry_delay} seconds...")
            if producer:  # Ensure producer is stopped if start failed partially
                await producer.stop()
                producer = None
            if retries >= max_retries:
                logger.error("Outbox poller failed to connect to Kafka after multiple retries. Exiting.")
                return
            await asyncio.sleep(retry_delay)

    if producer is None:
        return

    # --- Main polling loop (starts only if connection succeeded) ---
    try:
        while True:
            db: Session = SessionLocal()
            try:
                await publish_pending_events(db, producer)
            except Exception as e:
                logger.error(f"Error in poller loop: {e}")
                db.rollback()
            finally:
                db.close()

            await asyncio.sleep(poll_interval)

    except asyncio.CancelledError:
        logger.info("Outbox poller task cancelled.")
    finally:
        logger.info("Stopping Kafka producer...")
        await producer.stop()
        logger.info("Outbox poller shut down.")
