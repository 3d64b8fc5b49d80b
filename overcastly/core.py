import os
import asyncio
from prometheus_client import Counter, Histogram, start_http_server
import logging

logger = logging.getLogger(__name__)

KAFKA_PRODUCER = None
MONGO = None
STORE = None

REQUEST_COUNT = Counter(
    'overcastly_requests_total',
    'HTTP requests handled',
    ['method', 'path', 'status'],
)
REQUEST_LATENCY = Histogram(
    'overcastly_request_seconds',
    'HTTP request latency',
    ['method', 'path'],
)


def init_metrics(port: int | None = None):
    """Initialize Prometheus metrics server"""
    port = port or int(os.getenv('METRICS_PORT', '8001'))
    try:
        start_http_server(port)
        logger.info(f"Prometheus metrics server started on port {port}")
    except Exception as e:
        logger.warning(f'Prometheus start failed: {e}')


async def kafka_startup():
    """Start the Kafka producer used for outgoing notifications, with retries"""
    global KAFKA_PRODUCER

    from aiokafka import AIOKafkaProducer

    brokers = os.getenv('KAFKA_BOOTSTRAP_SERVERS', 'kafka:9092')
    max_retries = 3
    retry_delay = 5  # seconds

    for attempt in range(max_retries):
        try:
            logger.info(f"Attempting to connect to Kafka brokers: {brokers} (attempt {attempt + 1}/{max_retries})")

            KAFKA_PRODUCER = AIOKafkaProducer(
                bootstrap_servers=brokers,
                retry_backoff_ms=500,
                request_timeout_ms=30000,
                connections_max_idle_ms=300000,
                linger_ms=100,
                compression_type='gzip',
                acks='all',
            )
            await KAFKA_PRODUCER.start()

            logger.info("Kafka producer connected successfully")
            break

        except Exception as e:
            logger.warning(f'Kafka startup attempt {attempt + 1} failed: {e}')
            if KAFKA_PRODUCER:
                try:
                    await KAFKA_PRODUCER.stop()
                except Exception as stop_error:
                    logger.debug(f'Kafka producer stop failed: {stop_error}')
                KAFKA_PRODUCER = None

            if attempt < max_retries - 1:
                logger.info(f"Retrying Kafka connection in {retry_delay} seconds...")
                await asyncio.sleep(retry_delay)
            else:
                logger.error("Failed to connect to Kafka after all retries")


async def mongo_startup():
    """Connect MongoDB and open the document store"""
    global MONGO, STORE

    from .store import MemoryStore, MongoStore

    if os.getenv('OVERCASTLY_STORE', 'mongo') == 'memory':
        STORE = MemoryStore()
        logger.info("Using in-memory document store")
        return

    from motor.motor_asyncio import AsyncIOMotorClient

    mongo_url = os.getenv('MONGO_URL', 'mongodb://mongo:27017')
    db_name = os.getenv('MONGO_DB', 'Overcastly')
    max_retries = 3
    retry_delay = 3  # seconds

    for attempt in range(max_retries):
        try:
            logger.info(f"Attempting to connect to MongoDB: {mongo_url} (attempt {attempt + 1}/{max_retries})")

            MONGO = AsyncIOMotorClient(
                mongo_url,
                serverSelectionTimeoutMS=5000,
                connectTimeoutMS=5000,
                socketTimeoutMS=5000,
                maxPoolSize=50,
                minPoolSize=5,
                retryWrites=True,
                retryReads=True
            )
            await MONGO.admin.command('ping')

            store = MongoStore(MONGO[db_name])
            await store.ensure_indexes()
            STORE = store

            logger.info("MongoDB connected successfully")
            break

        except Exception as e:
            logger.warning(f'MongoDB startup attempt {attempt + 1} failed: {e}')
            if MONGO:
                MONGO.close()
                MONGO = None

            if attempt < max_retries - 1:
                logger.info(f"Retrying MongoDB connection in {retry_delay} seconds...")
                await asyncio.sleep(retry_delay)
            else:
                logger.error("Failed to connect to MongoDB after all retries")


async def shutdown_connections():
    """Gracefully shutdown all connections"""
    global KAFKA_PRODUCER, MONGO, STORE
    logger.info("Shutting down connections...")

    if KAFKA_PRODUCER:
        try:
            await KAFKA_PRODUCER.stop()
            logger.info("Kafka producer stopped")
        except Exception as e:
            logger.error(f"Error stopping Kafka producer: {e}")
        KAFKA_PRODUCER = None

    if MONGO:
        MONGO.close()
        logger.info("MongoDB connection closed")
        MONGO = None

    STORE = None
