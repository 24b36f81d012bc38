"""Test helpers package."""

from tests.helpers.sockets import connection_pair
from tests.helpers.wait import wait_until

__all__ = ["connection_pair", "wait_until"]
