"""Self-service RabbitMQ credentials with rotating double-slot users."""

__version__ = "0.1.0"
