import logging

import structlog
from kedro.framework.hooks import hook_impl


def configure_structlog(level: int = logging.INFO) -> None:
    """Configures structured JSON logging for every pipeline node."""
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )


class StructlogHooks:
    @hook_impl
    def after_context_created(self, context) -> None:
        configure_structlog()
