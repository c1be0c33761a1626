# Core module exports
from core.config import settings, get_settings
from core.logging import (
    configure_logging,
    get_logger,
    bind_context,
    unbind_context,
    generate_batch_id,
    dispatch_logger,
    resilience_logger,
    validation_logger,
    client_logger,
)
