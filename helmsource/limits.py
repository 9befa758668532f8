"""Upper bounds on the size of Helm files loaded into memory."""

MAX_INDEX_SIZE = 50 << 20
"""Largest allowed chart repository index, in bytes."""

MAX_CHART_SIZE = 10 << 20
"""Largest allowed packaged chart, in bytes."""

MAX_CHART_FILE_SIZE = 5 << 20
"""Largest allowed single file originating from a chart, in bytes."""