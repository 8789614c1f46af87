"""pat-download: fetch patent documents from EPO Open Patent Services."""

__version__ = "0.1.0"
