"""
Unified Logger System.

JSON-only structured logging for the sensor data pipeline.

Design Principles:
    - Strong typing with dataclasses
    - Enum safety for categories
    - Component-specific loggers
    - Clean factory pattern

Exports:
    ComponentType: Enum for component types
    LogLevel: Enum for log levels
    LogContext: Logging context dataclass
    ComponentConfig: Per-component logger settings
    JSONFormatter: Formatter emitting one JSON object per line
    LoggerFactory: Factory for creating loggers
    log_exceptions: Exception logging decorator
    get_memory_stats: Memory/CPU statistics helper (psutil)
    log_memory_checkpoint: Resource checkpoint logger

Dependencies:
    psutil for memory tracking in debug mode
"""

from enum import Enum
from typing import Optional, Dict, Any
from datetime import datetime, timezone
from dataclasses import dataclass
import logging
import sys
import os
import json
import traceback
from functools import wraps

import psutil


# ============================================================================
# RESOURCE STATS - Memory/CPU tracking for debug mode
# ============================================================================

def get_memory_stats(enabled: bool = True) -> Optional[Dict[str, float]]:
    """
    Get current process memory, CPU, and system statistics.

    Args:
        enabled: Debug mode flag; returns None when False

    Returns:
        dict with resource stats or None if disabled
        {
            'process_rss_mb': float,      # Resident Set Size (actual RAM used)
            'process_vms_mb': float,      # Virtual Memory Size
            'process_cpu_percent': float, # Process CPU usage %
            'system_available_mb': float, # Available system memory
            'system_percent': float,      # System memory usage %
        }
    """
    if not enabled:
        return None

    process = psutil.Process(os.getpid())
    mem_info = process.memory_info()
    system_mem = psutil.virtual_memory()

    return {
        'process_rss_mb': round(mem_info.rss / (1024**2), 1),
        'process_vms_mb': round(mem_info.vms / (1024**2), 1),
        'process_cpu_percent': round(process.cpu_percent(interval=None), 1),
        'system_available_mb': round(system_mem.available / (1024**2), 1),
        'system_percent': round(system_mem.percent, 1),
    }


def log_memory_checkpoint(
    logger: logging.Logger,
    checkpoint_name: str,
    enabled: bool = True,
    **extra_fields: Any
) -> None:
    """
    Log a resource checkpoint (memory, CPU) as custom dimensions.

    No-op unless debug mode is enabled.

    Args:
        logger: Logger to write to
        checkpoint_name: Short label, e.g. "after extraction"
        enabled: Debug mode flag
        **extra_fields: Additional dimensions (point counts, step counts)
    """
    stats = get_memory_stats(enabled)
    if stats is None:
        return

    dimensions = {'checkpoint': checkpoint_name, **stats, **extra_fields}
    logger.info(
        f"📊 MEMORY CHECKPOINT: {checkpoint_name} "
        f"(rss={stats['process_rss_mb']}MB, available={stats['system_available_mb']}MB)",
        extra={'custom_dimensions': dimensions}
    )


# ============================================================================
# COMPONENT TYPES - Aligned with pipeline layers
# ============================================================================

class ComponentType(Enum):
    """
    Component types aligned with the pipeline layers.

    Each layer has specific logging needs and levels.
    """
    CLI = "cli"                # Command line entry points
    PIPELINE = "pipeline"      # Boundary facade
    SERVICE = "service"        # Upload, association, download, lifecycle
    REPOSITORY = "repository"  # SQL access layer
    ADAPTER = "adapter"        # Connection pool, file IO, recordings
    CORE = "core"              # Partitioning, geometry, reconstruction


# ============================================================================
# LOG LEVELS - Standard Python levels with enum safety
# ============================================================================

class LogLevel(Enum):
    """
    Standard Python log levels as enum for type safety.
    """
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    def to_python_level(self) -> int:
        """Convert to Python logging level constant."""
        return getattr(logging, self.value)


# ============================================================================
# LOG CONTEXT - Correlation and tracking
# ============================================================================

@dataclass
class LogContext:
    """
    Context for log correlation across concurrent patch tasks.
    """
    operation: Optional[str] = None  # upload, associate, download, clear
    patch_id: Optional[int] = None   # Store-assigned patch id
    step: Optional[int] = None       # Extraction step index

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            k: v for k, v in {
                'operation': self.operation,
                'patch_id': self.patch_id,
                'step': self.step,
            }.items() if v is not None
        }


# ============================================================================
# COMPONENT CONFIGURATION - Per-component settings
# ============================================================================

@dataclass
class ComponentConfig:
    """
    Configuration for component-specific logging.
    """
    component_type: ComponentType
    log_level: LogLevel = LogLevel.INFO


# ============================================================================
# JSON FORMATTER - Structured logging
# ============================================================================

class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.
    Outputs one JSON object per line so logs of concurrent tasks stay parseable.
    """

    def format(self, record: logging.LogRecord) -> str:
        """
        Format log record as JSON.

        Args:
            record: Python LogRecord to format

        Returns:
            JSON string with structured log data
        """
        log_obj = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name,
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
            'thread': record.threadName,
        }

        if hasattr(record, 'custom_dimensions'):
            log_obj['customDimensions'] = record.custom_dimensions

        if record.exc_info:
            log_obj['exception'] = {
                'type': record.exc_info[0].__name__ if record.exc_info[0] else None,
                'message': str(record.exc_info[1]) if record.exc_info[1] else None,
                'traceback': self.formatException(record.exc_info)
            }

        return json.dumps(log_obj, default=str)


# ============================================================================
# LOGGER FACTORY - Creates component-specific loggers
# ============================================================================

class LoggerFactory:
    """
    Factory for creating component-specific loggers.

    Example:
        logger = LoggerFactory.create_logger(
            ComponentType.SERVICE,
            "UploadService"
        )
        logger.info("Uploading patches")
    """

    _default_level = LogLevel.DEBUG if os.getenv('DEBUG_LOGGING', '').lower() == 'true' else LogLevel.INFO

    DEFAULT_CONFIGS = {
        ComponentType.CLI: ComponentConfig(
            component_type=ComponentType.CLI,
            log_level=_default_level
        ),
        ComponentType.PIPELINE: ComponentConfig(
            component_type=ComponentType.PIPELINE,
            log_level=_default_level
        ),
        ComponentType.SERVICE: ComponentConfig(
            component_type=ComponentType.SERVICE,
            log_level=_default_level
        ),
        ComponentType.REPOSITORY: ComponentConfig(
            component_type=ComponentType.REPOSITORY,
            log_level=_default_level
        ),
        ComponentType.ADAPTER: ComponentConfig(
            component_type=ComponentType.ADAPTER,
            log_level=_default_level
        ),
        ComponentType.CORE: ComponentConfig(
            component_type=ComponentType.CORE,
            log_level=_default_level
        ),
    }

    @classmethod
    def create_logger(
        cls,
        component_type: ComponentType,
        name: str,
        context: Optional[LogContext] = None,
        config: Optional[ComponentConfig] = None
    ) -> logging.LoggerAdapter:
        """
        Create a logger for a specific component.

        Args:
            component_type: Type of component
            name: Component name (e.g., "UploadService")
            context: Optional log context for correlation
            config: Optional custom configuration

        Returns:
            Logger adapter that injects component and context dimensions
        """
        if config is None:
            config = cls.DEFAULT_CONFIGS.get(
                component_type,
                ComponentConfig(component_type=component_type)
            )

        logger_name = f"{component_type.value}.{name}"
        logger = logging.getLogger(logger_name)
        log_level = config.log_level.to_python_level()
        logger.setLevel(log_level)

        # Only one JSON handler per logger, create_logger is called per task
        has_json_handler = any(
            isinstance(h.formatter, JSONFormatter) for h in logger.handlers
        )
        if not has_json_handler:
            handler = logging.StreamHandler(sys.stdout)
            handler.setLevel(log_level)
            handler.setFormatter(JSONFormatter())
            logger.addHandler(handler)
        logger.propagate = False

        dimensions = {
            'component_type': component_type.value,
            'component_name': name,
        }
        if context:
            dimensions.update(context.to_dict())
        return _ContextAdapter(logger, dimensions)

    @classmethod
    def create_with_context(
        cls,
        component_type: ComponentType,
        name: str,
        operation: Optional[str] = None,
        patch_id: Optional[int] = None,
        step: Optional[int] = None
    ) -> logging.LoggerAdapter:
        """
        Create logger with operation/patch context.

        Convenience method for the per-patch tasks.
        """
        context = LogContext(
            operation=operation,
            patch_id=patch_id,
            step=step
        ) if any(v is not None for v in (operation, patch_id, step)) else None

        return cls.create_logger(
            component_type=component_type,
            name=name,
            context=context
        )


class _ContextAdapter(logging.LoggerAdapter):
    """Merges the adapter's dimensions with custom_dimensions passed per call."""

    def process(self, msg, kwargs):
        extra = kwargs.setdefault('extra', {})
        custom_dims = dict(self.extra)
        if 'custom_dimensions' in extra:
            custom_dims.update(extra['custom_dimensions'])
        extra['custom_dimensions'] = custom_dims
        return msg, kwargs


# ============================================================================
# EXCEPTION DECORATOR - Automatic exception logging with context
# ============================================================================

def log_exceptions(component_type: Optional[ComponentType] = None,
                   component_name: Optional[str] = None,
                   logger: Optional[logging.LoggerAdapter] = None):
    """
    Decorator to automatically log exceptions with full context.

    Can be used in three ways:
    1. With existing logger: @log_exceptions(logger=my_logger)
    2. With component info: @log_exceptions(ComponentType.PIPELINE, "SensorDataPipeline")
    3. Simple: @log_exceptions() - uses function module and name

    The exception is always re-raised.
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            if logger:
                log = logger
            elif component_type and component_name:
                log = LoggerFactory.create_logger(component_type, component_name)
            else:
                log = LoggerFactory.create_logger(
                    ComponentType.SERVICE,
                    func.__module__ or "unknown"
                )

            try:
                return func(*args, **kwargs)
            except Exception as e:
                log.error(
                    f"Exception in {func.__name__}",
                    exc_info=True,
                    extra={
                        'custom_dimensions': {
                            'function_name': func.__name__,
                            'function_module': func.__module__,
                            'exception_type': type(e).__name__,
                            'exception_message': str(e),
                            'function_args': str(args)[:500],
                            'function_kwargs': str(kwargs)[:500],
                            'traceback': traceback.format_exc()
                        }
                    }
                )
                raise
        return wrapper
    return decorator
