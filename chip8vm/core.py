# CHIP-8 interpreter core
# Memory - 4096 bytes: built-in font glyphs at 0x050, programs loaded at 0x200.
# CPU - CowGods CHIP8 Technical reference http://devernay.free.fr/hacks/chip8/C8TECH10.HTM#0.0
#----------------------------------------------------------------------------------------------
# All of the machine state lives on one Chip8 object. The host (see emulator.py) calls step()
# at its CPU rate and tick_timers() whenever it likes; the timers only move every 16ms of wall
# clock, whatever the step rate is. Nothing in here touches a window, a speaker or a keyboard.

import enum
import logging
import random
import time

import numpy as np

from .errors import (
    CapacityExceeded,
    ProgramCounterOutOfBounds,
    StackOverflow,
    StackUnderflow,
    UnknownOpcode,
)

logger = logging.getLogger(__name__)

#  configuration
MEMORY_SIZE = 4096
PROGRAM_START = 0x200
PROGRAM_CAPACITY = MEMORY_SIZE - PROGRAM_START  # 3584 bytes
FONT_START = 0x050
GLYPH_SIZE = 5
STACK_DEPTH = 16
NUM_REGISTERS = 16
NUM_KEYS = 16
WIDTH, HEIGHT = 64, 32
TIMER_INTERVAL_NS = 16_000_000  # ~60Hz

# set fonts (binary pixel patterns)
fontset = [
    0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
    0x20, 0x60, 0x20, 0x20, 0x70,  # 1
    0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
    0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
    0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
    0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
    0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
    0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
    0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
    0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
    0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
    0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
    0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
    0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
    0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
    0xF0, 0x80, 0xF0, 0x80, 0x80   # F
] #notice 80 bytes


class StepResult(enum.Enum):
    EXECUTED = "executed"
    AWAITING_KEY = "awaiting_key"  # Fx0A found no key down, same instruction runs again next step
    FAULTED = "faulted"


class Chip8:
    """The CHIP-8 machine: registers, memory, stack, timers, framebuffer and keypad.

    rng is any random.Random (seed it for reproducible Cxkk results), clock
    returns monotonic nanoseconds and on_fault, when given, is called with every
    recoverable Chip8Error the core runs into.
    """

    def __init__(self, rng=None, clock=None, on_fault=None):
        self.rng = rng if rng is not None else random.Random()
        self.clock = clock if clock is not None else time.perf_counter_ns
        self.on_fault = on_fault

        # dispatch table, first match wins
        self.opcodes = [
            (0xFFFF, 0x00E0, self.op_CLS),
            (0xFFFF, 0x00EE, self.op_RET),
            (0xF000, 0x0000, self.op_SYS),

            (0xF000, 0x1000, self.op_JP),
            (0xF000, 0x2000, self.op_CALL),
            (0xF000, 0x3000, self.op_SE_Vx_kk),
            (0xF000, 0x4000, self.op_SNE_Vx_kk),
            (0xF00F, 0x5000, self.op_SE_Vx_Vy),
            (0xF000, 0x6000, self.op_LD_Vx_kk),
            (0xF000, 0x7000, self.op_ADD_Vx_kk),

            (0xF00F, 0x8000, self.op_LD_Vx_Vy),
            (0xF00F, 0x8001, self.op_OR),
            (0xF00F, 0x8002, self.op_AND),
            (0xF00F, 0x8003, self.op_XOR),
            (0xF00F, 0x8004, self.op_ADD),
            (0xF00F, 0x8005, self.op_SUB),
            (0xF00F, 0x8006, self.op_SHR),
            (0xF00F, 0x8007, self.op_SUBN),
            (0xF00F, 0x800E, self.op_SHL),

            (0xF00F, 0x9000, self.op_SNE_Vx_Vy),
            (0xF000, 0xA000, self.op_LD_I),
            (0xF000, 0xB000, self.op_JP_V0),
            (0xF000, 0xC000, self.op_RND),
            (0xF000, 0xD000, self.op_DRW),

            (0xF0FF, 0xE09E, self.op_SKP),
            (0xF0FF, 0xE0A1, self.op_SKNP),

            (0xF0FF, 0xF007, self.op_LD_Vx_DT),
            (0xF0FF, 0xF00A, self.op_WAITKEY),
            (0xF0FF, 0xF015, self.op_LD_DT_Vx),
            (0xF0FF, 0xF018, self.op_LD_ST_Vx),
            (0xF0FF, 0xF01E, self.op_ADD_I_Vx),
            (0xF0FF, 0xF029, self.op_FONT),
            (0xF0FF, 0xF033, self.op_BCD),
            (0xF0FF, 0xF055, self.op_STORE),
            (0xF0FF, 0xF065, self.op_LOAD),
        ]

        self.reset()

    def reset(self):
        self.memory = bytearray(MEMORY_SIZE)
        self.vram = bytearray(WIDTH * HEIGHT)
        self.V = [0] * NUM_REGISTERS
        self.I = 0
        self.pc = PROGRAM_START
        self.stack = [0] * STACK_DEPTH
        self.sp = 0
        self.delay_timer = 0
        self.sound_timer = 0
        self.keys = [False] * NUM_KEYS
        self.should_draw = False
        self.waiting_for_key = False
        self.loaded_size = None
        self.cycle_count = 0
        self.fault_count = 0
        self._last_timer_tick = self.clock()

        # Load fontset into memory
        self.memory[FONT_START:FONT_START + len(fontset)] = bytes(fontset)

    # ---- Load program ----
    def load_program(self, data):
        data = bytes(data)
        if len(data) > PROGRAM_CAPACITY:
            raise CapacityExceeded(len(data), PROGRAM_CAPACITY)

        self.reset()
        self.memory[PROGRAM_START:PROGRAM_START + len(data)] = data
        self.loaded_size = len(data)
        logger.info("Loaded %d byte program, first bytes: %s", len(data), data[:10].hex(" "))

    def load_rom(self, path):
        logger.info("Loading ROM: %s", path)
        with open(path, "rb") as f:
            self.load_program(f.read())

    # ---- Host surface ----
    def press_key(self, k):
        self.keys[k] = True

    def release_key(self, k):
        self.keys[k] = False

    @property
    def sound_active(self):
        return self.sound_timer > 0

    def take_frame(self):
        """Return a copy of the framebuffer if it changed since the last call, else None.

        Clears the redraw flag, so each changed frame is handed out exactly once.
        """
        if not self.should_draw:
            return None
        self.should_draw = False
        return bytes(self.vram)

    def screen(self):
        # rows x columns, one cell per pixel
        return np.frombuffer(bytes(self.vram), dtype=np.uint8).reshape(HEIGHT, WIDTH).copy()

    # ---- Cycle ----
    def step(self):
        pc = self.pc
        if pc < 0 or pc + 1 >= MEMORY_SIZE:
            result = self._fault(ProgramCounterOutOfBounds(pc))
            self.pc = PROGRAM_START
            return result

        if self.loaded_size is not None and not PROGRAM_START <= pc < PROGRAM_START + self.loaded_size:
            logger.debug("PC 0x%03X is outside the loaded program", pc)

        opcode = (self.memory[pc] << 8) | self.memory[pc + 1]
        self.cycle_count += 1
        self.pc = pc + 2

        for mask, pattern, handler in self.opcodes:
            if (opcode & mask) == pattern:
                if logger.isEnabledFor(logging.DEBUG):
                    logger.debug("%03X: %04X %s", pc, opcode, handler.__name__[3:])
                result = handler(opcode)
                return StepResult.EXECUTED if result is None else result

        return self._fault(UnknownOpcode(opcode, pc))

    def _fault(self, error):
        self.fault_count += 1
        logger.warning("%s", error)
        if self.on_fault is not None:
            self.on_fault(error)
        return StepResult.FAULTED

    # ---- timers ----
    def tick_timers(self):
        """Decrement the delay and sound timers once per whole 16ms since the last decrement.

        Returns how many periods were applied. Leftover time under one period
        carries over to the next call.
        """
        elapsed = self.clock() - self._last_timer_tick
        periods = elapsed // TIMER_INTERVAL_NS
        if periods <= 0:
            return 0

        self._last_timer_tick += periods * TIMER_INTERVAL_NS
        self.delay_timer = max(0, self.delay_timer - periods)
        self.sound_timer = max(0, self.sound_timer - periods)
        return periods

    # ---- opcode handlers ----
    # self.pc already points at the next instruction when these run.

    def op_SYS(self, opcode):
        # 0nnn is ignored on modern interpreters
        logger.debug("SYS 0x%03X ignored", opcode & 0x0FFF)

    def op_CLS(self, opcode):
        self.vram[:] = bytes(len(self.vram))
        self.should_draw = True

    def op_RET(self, opcode):
        if self.sp == 0:
            return self._fault(StackUnderflow(self.pc - 2))
        self.sp -= 1
        self.pc = self.stack[self.sp]

    def op_JP(self, opcode):
        self.pc = opcode & 0x0FFF

    def op_CALL(self, opcode):
        if self.sp >= STACK_DEPTH:
            return self._fault(StackOverflow(self.pc - 2))
        self.stack[self.sp] = self.pc
        self.sp += 1
        self.pc = opcode & 0x0FFF

    def op_SE_Vx_kk(self, opcode):
        x = (opcode >> 8) & 0xF
        kk = opcode & 0xFF
        if self.V[x] == kk:
            self.pc += 2

    def op_SNE_Vx_kk(self, opcode):
        x = (opcode >> 8) & 0xF
        kk = opcode & 0xFF
        if self.V[x] != kk:
            self.pc += 2

    def op_SE_Vx_Vy(self, opcode):
        x = (opcode >> 8) & 0xF
        y = (opcode >> 4) & 0xF
        if self.V[x] == self.V[y]:
            self.pc += 2

    def op_LD_Vx_kk(self, opcode):
        x = (opcode >> 8) & 0xF
        self.V[x] = opcode & 0xFF

    def op_ADD_Vx_kk(self, opcode):
        x = (opcode >> 8) & 0xF
        kk = opcode & 0xFF
        self.V[x] = (self.V[x] + kk) & 0xFF

    def op_LD_Vx_Vy(self, opcode):
        x = (opcode >> 8) & 0xF
        y = (opcode >> 4) & 0xF
        self.V[x] = self.V[y]

    def op_OR(self, opcode):
        x = (opcode >> 8) & 0xF
        y = (opcode >> 4) & 0xF
        self.V[x] |= self.V[y]

    def op_AND(self, opcode):
        x = (opcode >> 8) & 0xF
        y = (opcode >> 4) & 0xF
        self.V[x] &= self.V[y]

    def op_XOR(self, opcode):
        x = (opcode >> 8) & 0xF
        y = (opcode >> 4) & 0xF
        self.V[x] ^= self.V[y]

    # VF is written before Vx in the flag-setting ops, so V[F] as the target keeps the result.

    def op_ADD(self, opcode):
        x = (opcode >> 8) & 0xF
        y = (opcode >> 4) & 0xF
        total = self.V[x] + self.V[y]
        self.V[0xF] = 1 if total > 0xFF else 0
        self.V[x] = total & 0xFF

    def op_SUB(self, opcode):
        x = (opcode >> 8) & 0xF
        y = (opcode >> 4) & 0xF
        vx, vy = self.V[x], self.V[y]
        self.V[0xF] = 1 if vx >= vy else 0
        self.V[x] = (vx - vy) & 0xFF

    def op_SHR(self, opcode):
        x = (opcode >> 8) & 0xF
        vx = self.V[x]
        self.V[0xF] = vx & 1
        self.V[x] = vx >> 1

    def op_SUBN(self, opcode):
        x = (opcode >> 8) & 0xF
        y = (opcode >> 4) & 0xF
        vx, vy = self.V[x], self.V[y]
        self.V[0xF] = 1 if vy >= vx else 0
        self.V[x] = (vy - vx) & 0xFF

    def op_SHL(self, opcode):
        x = (opcode >> 8) & 0xF
        vx = self.V[x]
        self.V[0xF] = (vx >> 7) & 1
        self.V[x] = (vx << 1) & 0xFF

    def op_SNE_Vx_Vy(self, opcode):
        x = (opcode >> 8) & 0xF
        y = (opcode >> 4) & 0xF
        if self.V[x] != self.V[y]:
            self.pc += 2

    def op_LD_I(self, opcode):
        self.I = opcode & 0x0FFF

    def op_JP_V0(self, opcode):
        # no range check here, a bad target shows up on the next fetch
        self.pc = (opcode & 0x0FFF) + self.V[0]

    def op_RND(self, opcode):
        x = (opcode >> 8) & 0xF
        kk = opcode & 0xFF
        self.V[x] = self.rng.getrandbits(8) & kk

    def op_DRW(self, opcode):
        x = (opcode >> 8) & 0xF
        y = (opcode >> 4) & 0xF
        n = opcode & 0xF
        px = self.V[x]
        py = self.V[y]
        collision = 0
        for row in range(n):
            addr = self.I + row
            if addr >= MEMORY_SIZE:
                continue
            sprite = self.memory[addr]
            if sprite == 0:
                continue
            base = ((py + row) % HEIGHT) * WIDTH
            for bit in range(8):
                if sprite & (0x80 >> bit):
                    index = base + (px + bit) % WIDTH
                    collision |= self.vram[index]
                    self.vram[index] ^= 1
        self.V[0xF] = 1 if collision else 0
        self.should_draw = True

    def op_SKP(self, opcode):
        x = (opcode >> 8) & 0xF
        if self.keys[self.V[x] & 0xF]:
            self.pc += 2

    def op_SKNP(self, opcode):
        x = (opcode >> 8) & 0xF
        if not self.keys[self.V[x] & 0xF]:
            self.pc += 2

    def op_LD_Vx_DT(self, opcode):
        x = (opcode >> 8) & 0xF
        self.V[x] = self.delay_timer

    def op_WAITKEY(self, opcode):
        x = (opcode >> 8) & 0xF
        for i in range(NUM_KEYS):
            if self.keys[i]:
                self.V[x] = i
                self.waiting_for_key = False
                return
        # stall: leave PC on this instruction so the next step decodes it again
        self.pc -= 2
        self.waiting_for_key = True
        return StepResult.AWAITING_KEY

    def op_LD_DT_Vx(self, opcode):
        x = (opcode >> 8) & 0xF
        self.delay_timer = self.V[x]

    def op_LD_ST_Vx(self, opcode):
        x = (opcode >> 8) & 0xF
        self.sound_timer = self.V[x]

    def op_ADD_I_Vx(self, opcode):
        x = (opcode >> 8) & 0xF
        self.I = (self.I + self.V[x]) & 0xFFFF

    def op_FONT(self, opcode):
        x = (opcode >> 8) & 0xF
        self.I = FONT_START + (self.V[x] & 0xF) * GLYPH_SIZE

    def op_BCD(self, opcode):
        x = (opcode >> 8) & 0xF
        v = self.V[x]
        for offset, digit in enumerate((v // 100, (v // 10) % 10, v % 10)):
            if self.I + offset < MEMORY_SIZE:
                self.memory[self.I + offset] = digit

    def op_STORE(self, opcode):
        x = (opcode >> 8) & 0xF
        for i in range(x + 1):
            if self.I + i < MEMORY_SIZE:
                self.memory[self.I + i] = self.V[i]

    def op_LOAD(self, opcode):
        x = (opcode >> 8) & 0xF
        for i in range(x + 1):
            if self.I + i < MEMORY_SIZE:
                self.V[i] = self.memory[self.I + i]
