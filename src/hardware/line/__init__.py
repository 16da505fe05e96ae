"""Line front end: synchroniser, de-glitch filter and bit sampler."""

from .line_conditioner import LineConditioner, majority
from .bit_sampler import BitSampler
