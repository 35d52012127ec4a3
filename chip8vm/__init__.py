from .core import Chip8, StepResult
from .errors import (
    Chip8Error,
    CapacityExceeded,
    ProgramCounterOutOfBounds,
    StackOverflow,
    StackUnderflow,
    UnknownOpcode,
)

__version__ = "0.1.0"
