"""RabbitMQ broker administration."""

from pulse_namespaces.broker.rabbitmq import RabbitManager

__all__ = ["RabbitManager"]
