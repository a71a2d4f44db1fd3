"""
Structured logging for vector store operations.
Thin wrapper over the standard library logger with operation-shaped helpers.
"""

import logging
import os
from typing import Any, Dict, List, Optional


class StructuredLogger:
    """Structured logger for store, index, eviction and maintenance operations."""

    def __init__(self, name: str = "vecstore", level: Optional[str] = None):
        self.logger = logging.getLogger(name)
        level_name = (level or os.getenv("VECSTORE_LOG_LEVEL", "INFO")).upper()
        self.logger.setLevel(getattr(logging, level_name, logging.INFO))

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None,
                      level: int = logging.INFO):
        """Log a structured operation."""
        if not self.logger.isEnabledFor(level):
            return

        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        self.logger.log(level, message)

    def log_vector_operation(self, operation: str, record_id: str, details: Dict[str, Any] = None,
                             status: str = "success", level: int = logging.INFO):
        """Log a vector operation against a single record."""
        log_details = {"record_id": record_id}
        if details:
            log_details.update(details)

        self.log_operation(f"vector.{operation}", status, log_details, level)

    def log_batch_operation(self, operation: str, store_name: str, count: int,
                            details: Dict[str, Any] = None, status: str = "success"):
        """Log a store operation that touched a batch of records."""
        log_details = {"store": store_name, "count": count}
        if details:
            log_details.update(details)

        self.log_operation(f"vector.{operation}", status, log_details)

    def log_eviction(self, store_name: str, ids: List[str], bytes_freed: int):
        """Log insertion-order eviction triggered by the memory budget."""
        log_details = {
            "store": store_name,
            "evicted_count": len(ids),
            "bytes_freed": bytes_freed,
        }
        # Only the first few ids, eviction passes can be large
        if ids:
            log_details["ids"] = ids[:5] + (["..."] if len(ids) > 5 else [])

        self.log_operation("memory.eviction", "evicted", log_details)

    def log_memory_warning(self, used: int, max_bytes: int):
        """Log that tracked memory crossed the warning threshold."""
        percent = round(used / max_bytes * 100, 2) if max_bytes else 0.0
        self.log_operation(
            "memory.threshold",
            "warning",
            {"used_bytes": used, "max_bytes": max_bytes, "percent_used": percent},
            logging.WARNING,
        )

    def log_index_rebuild(self, store_name: str, count: int, start_time: float, end_time: float,
                          status: str = "success"):
        """Log a full index rebuild."""
        duration_ms = round((end_time - start_time) * 1000, 2)
        log_details = {"store": store_name, "vectors": count, "duration_ms": duration_ms}
        self.log_operation("index.rebuild", status, log_details)

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)


# Global logger instance
logger = StructuredLogger()
