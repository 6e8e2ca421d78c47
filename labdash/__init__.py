import logging

__version__ = "0.2.0"

logging.getLogger("labdash").addHandler(logging.NullHandler())
