"""rhea: a terminal chat client with a bounded conversation context."""

import logging

logging.getLogger(__name__).addHandler(logging.NullHandler())
