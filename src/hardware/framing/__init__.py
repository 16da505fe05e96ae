"""Frame decoding: bit sequencing and data assembly."""

from .frame_sequencer import FrameSequencer
from .byte_assembler import ByteAssembler
