"""
CloudWatch Embedded Metric Format (EMF) emitter.

Each metric is a single JSON line on stdout; CloudWatch Logs extracts the
metric from the ``_aws`` envelope, so no SDK call is needed.
"""

import json
import sys
import time
from typing import Callable, Literal, Optional

MetricUnit = Literal["Count", "Milliseconds", "Bytes"]


class MetricsEmitter:
    """
    Writes EMF metric lines.

    Usage:
        metrics = MetricsEmitter(namespace="InvoiceExtractor", service="invoice-extractor")
        metrics.emit("ExtractionSuccess", 1, "Count", Model="anthropic.claude-3-5-sonnet")

        # Tests capture lines instead of writing to stdout
        lines = []
        metrics = MetricsEmitter(writer=lines.append)
    """

    def __init__(
        self,
        namespace: str = "InvoiceExtractor",
        service: str = "invoice-extractor",
        writer: Optional[Callable[[str], object]] = None
    ):
        self.namespace = namespace
        self.base_dimensions = {"Service": service}
        self._writer = writer

    def emit(self, name: str, value: float, unit: MetricUnit = "Count", **dimensions: str) -> dict:
        """
        Emit one metric value.

        Returns:
            The EMF payload that was written
        """
        final_dimensions = {**self.base_dimensions, **dimensions}
        payload = {
            "_aws": {
                "Timestamp": int(time.time() * 1000),
                "CloudWatchMetrics": [
                    {
                        "Namespace": self.namespace,
                        "Dimensions": [list(final_dimensions.keys())],
                        "Metrics": [{"Name": name, "Unit": unit}],
                    }
                ],
            },
            name: value,
            **final_dimensions,
        }

        line = json.dumps(payload)
        if self._writer is not None:
            self._writer(line)
        else:
            sys.stdout.write(line + "\n")
            sys.stdout.flush()
        return payload
