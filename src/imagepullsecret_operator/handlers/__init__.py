"""Handler modules for watched resources."""

# Import handlers to register them - kopf handlers register themselves via @kopf decorators
from . import pod  # noqa: F401
