from agent_extraction.messaging.base import MessageBusService, MessageBusServiceFactory, MessageHandler
from agent_extraction.messaging.factory import RabbitMQServiceFactory
from agent_extraction.messaging.rabbitmq import BrokerHandle, RabbitMQService

__all__ = [
    "BrokerHandle",
    "MessageBusService",
    "MessageBusServiceFactory",
    "MessageHandler",
    "RabbitMQService",
    "RabbitMQServiceFactory",
]
