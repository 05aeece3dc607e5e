"""
taskbroker – priority task queues over RabbitMQ.

Import path convention::

    from taskbroker.adapters.rabbitmq import ConnectionManager
    from taskbroker.application.dispatch import TaskDispatcher, ConsumerOptions
    from taskbroker.observability.health import HealthMonitor
    from taskbroker.kernel.messaging import TaskMessage, TaskPriority
    from taskbroker.runtime import BackgroundProcessing
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
