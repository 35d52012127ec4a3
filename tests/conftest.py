import random

import pytest

from chip8vm.core import Chip8, PROGRAM_START


class FakeClock:
    """Nanosecond clock that only moves when a test says so."""

    def __init__(self):
        self.now = 0

    def __call__(self):
        return self.now

    def advance_ms(self, ms):
        self.now += int(ms * 1_000_000)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def faults():
    return []


@pytest.fixture
def chip8(clock, faults):
    return Chip8(rng=random.Random(1234), clock=clock, on_fault=faults.append)


def program(*words):
    """Big-endian bytes for a list of 16-bit instruction words."""
    return b"".join(w.to_bytes(2, "big") for w in words)


def run(chip8, *words, steps=None):
    chip8.load_program(program(*words))
    for _ in range(len(words) if steps is None else steps):
        chip8.step()
    return chip8
