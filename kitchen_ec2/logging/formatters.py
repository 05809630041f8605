"""Logging formatters for driver output."""

import logging


class InstanceFormatter(logging.Formatter):
    """Logging formatter that prefixes records with the instance they concern.

    The instance name is read from the ``instance`` attribute that
    ``logging.LoggerAdapter`` (see ``instance_logger``) attaches to records.
    Records routed to stderr by the SSH transport are tagged as well.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with instance and stream prefixes if present.

        Parameters
        ----------
        record : logging.LogRecord
            Log record to format

        Returns
        -------
        str
            Formatted log message
        """
        msg = super().format(record)

        if getattr(record, "stream", None) == "stderr":
            msg = f"[stderr] {msg}"

        instance = getattr(record, "instance", None)
        if instance:
            return f"-----> [{instance}] {msg}"

        return msg


def instance_logger(name: str, logger: logging.Logger | None = None) -> logging.LoggerAdapter:
    """Return a logger adapter tagging every record with instance ``name``."""
    base = logger or logging.getLogger("kitchen_ec2.instance")
    return logging.LoggerAdapter(base, {"instance": name})
