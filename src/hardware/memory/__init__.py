"""Storage for decoded receive data."""

from .receive_buffer import ReceiveBuffer, DEFAULT_BUFFER_DEPTH
