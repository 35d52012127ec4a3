"""Errors raised or reported by the CHIP-8 interpreter core.

Only CapacityExceeded is ever raised to the caller. The others are built by
the core when something goes wrong mid-cycle, logged, handed to the fault
callback and then recovered from so the instruction stream keeps moving.
"""


class Chip8Error(Exception):
    pass


class CapacityExceeded(Chip8Error):
    def __init__(self, size, capacity):
        super().__init__(f"program is {size} bytes, only {capacity} fit in memory")
        self.size = size
        self.capacity = capacity


class ProgramCounterOutOfBounds(Chip8Error):
    def __init__(self, pc):
        super().__init__(f"PC out of bounds: 0x{pc:03X}")
        self.pc = pc


class StackOverflow(Chip8Error):
    def __init__(self, pc):
        super().__init__(f"stack overflow on CALL at 0x{pc:03X}")
        self.pc = pc


class StackUnderflow(Chip8Error):
    def __init__(self, pc):
        super().__init__(f"stack underflow on RET at 0x{pc:03X}")
        self.pc = pc


class UnknownOpcode(Chip8Error):
    def __init__(self, opcode, pc):
        super().__init__(f"unknown opcode {opcode:04X} at 0x{pc:03X}")
        self.opcode = opcode
        self.pc = pc
