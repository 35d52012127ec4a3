# CHIP-8 Emulator front end
# Input - pyglet key events mapped onto the 16 key hex keypad.
# Output - 64x32 display upscaled into a pyglet window & a sine buzzer while the sound timer runs.
#----------------------------------------------------------------------------------------------
# We're subclassing pyglet (that'll handle graphics, sound output, and keyboard handling)
# and overriding whatever def we need from there. The machine itself lives in core.py.

import argparse
import logging
import random
import sys

import numpy as np
import pyglet
from pyglet.window import key
from pyglet.media import synthesis

from .core import Chip8, WIDTH, HEIGHT
from .errors import Chip8Error

logger = logging.getLogger(__name__)

#map binding keys
keymap = {
    key._1: 0x1, key._2: 0x2, key._3: 0x3, key._4: 0xC,
    key.Q: 0x4, key.W: 0x5, key.E: 0x6, key.R: 0xD,
    key.A: 0x7, key.S: 0x8, key.D: 0x9, key.F: 0xE,
    key.Z: 0xA, key.X: 0x0, key.C: 0xB, key.V: 0xF,
}

#  configuration
SCALE = 10
CPU_HZ = 600
TIMER_HZ = 60
BEEP_HZ = 440
SAMPLE_RATE = 44100


def generate_beep(duration=0.5, frequency=BEEP_HZ, sample_rate=SAMPLE_RATE):
    wave = synthesis.Sine(duration=duration, frequency=frequency, sample_rate=sample_rate)
    return pyglet.media.StaticSource(wave)


class Chip8Window(pyglet.window.Window):

    def __init__(self, chip8, scale=SCALE, cpu_hz=CPU_HZ):
        super().__init__(
            width=WIDTH * scale,
            height=HEIGHT * scale,
            caption="CHIP-8 Emulator",
            vsync=False
        )
        self.chip8 = chip8
        self.chip8.on_fault = self._on_fault
        self.scale = scale
        self.cpu_hz = cpu_hz
        self._cycle_debt = 0.0
        self.last_fault = None

        # Pre-allocated small framebuffer (64x32 RGBA), upscaled with numpy.repeat
        self._small_framebuf = np.zeros((HEIGHT, WIDTH, 4), dtype=np.uint8)
        self._small_framebuf[..., 3] = 255
        scaled = np.repeat(np.repeat(self._small_framebuf, scale, axis=0), scale, axis=1)
        self.image = pyglet.image.ImageData(self.width, self.height, 'RGBA', scaled.tobytes())

        # Beep sound, looped for as long as the sound timer is non-zero
        self.beep_player = pyglet.media.Player()
        self.beep_player.queue(generate_beep())
        self.beep_player.loop = True
        self.sound_playing = False

        # Performance tracking
        self._fps_counter = 0
        self._last_cycle_count = 0
        self._bench_time = pyglet.clock.get_default().time()
        self.fps_label = self._hud_label("FPS: 0", 15)
        self.cps_label = self._hud_label("Cycles/s: 0", 30)
        self.fault_label = self._hud_label("", 45)

        # Schedule the loops
        pyglet.clock.schedule_interval(self.tick, 1 / cpu_hz)               # CPU cycles
        pyglet.clock.schedule_interval(self._timer_tick, 1 / TIMER_HZ)     # delay/sound timers
        pyglet.clock.schedule_interval(self._update_bench, 1.0)           # FPS/CPS every second

    def _hud_label(self, text, offset):
        return pyglet.text.Label(
            text,
            font_size=12,
            x=5,
            y=self.height - offset,
            anchor_x='left',
            anchor_y='center',
            color=(255, 255, 255, 255)
        )

    def _on_fault(self, error):
        self.last_fault = error
        self.fault_label.text = f"Faults: {self.chip8.fault_count} ({error})"

    # FPS / CPS
    def _update_bench(self, dt):
        now = pyglet.clock.get_default().time()
        elapsed = now - self._bench_time
        if elapsed >= 1.0:
            self.fps_label.text = f"FPS: {self._fps_counter / elapsed:.1f}"
            cycles = self.chip8.cycle_count - self._last_cycle_count
            self.cps_label.text = f"Cycles/s: {cycles}"

            self._fps_counter = 0
            self._last_cycle_count = self.chip8.cycle_count
            self._bench_time = now

    # cpu tick
    def tick(self, dt):
        # the clock rarely fires at cpu_hz, so run as many cycles as the elapsed time is worth
        self._cycle_debt += dt * self.cpu_hz
        cycles = int(self._cycle_debt)
        self._cycle_debt -= cycles
        for _ in range(cycles):
            self.chip8.step()

    # timers
    def _timer_tick(self, dt):
        self.chip8.tick_timers()

        if self.chip8.sound_active:
            if not self.sound_playing:
                self.beep_player.play()
                self.sound_playing = True
        elif self.sound_playing:
            self.beep_player.pause()
            self.sound_playing = False

    # draw
    def on_draw(self):
        frame = self.chip8.take_frame()
        if frame is not None:
            pixels = np.frombuffer(frame, dtype=np.uint8).reshape(HEIGHT, WIDTH)
            # pyglet images start at the bottom row
            self._small_framebuf[..., :3] = np.flipud(pixels)[..., None] * 255
            scaled = np.repeat(np.repeat(self._small_framebuf, self.scale, axis=0), self.scale, axis=1)
            self.image.set_data('RGBA', self.width * 4, scaled.tobytes())
            self._fps_counter += 1

        self.clear()
        self.image.blit(0, 0)
        self.fps_label.draw()
        self.cps_label.draw()
        self.fault_label.draw()

    # keyboard
    def on_key_press(self, symbol, modifiers):
        if symbol == key.ESCAPE:
            self.close()
        elif symbol == key.F1:
            package_logger = logging.getLogger("chip8vm")
            tracing = package_logger.getEffectiveLevel() <= logging.DEBUG
            package_logger.setLevel(logging.INFO if tracing else logging.DEBUG)
            logger.info("Instruction trace %s", "off" if tracing else "on")
        elif symbol in keymap:
            self.chip8.press_key(keymap[symbol])

    def on_key_release(self, symbol, modifiers):
        if symbol in keymap:
            self.chip8.release_key(keymap[symbol])

    def on_close(self):
        pyglet.clock.unschedule(self.tick)
        pyglet.clock.unschedule(self._timer_tick)
        pyglet.clock.unschedule(self._update_bench)
        self.beep_player.delete()
        super().on_close()


def parse_args(argv=None):
    parser = argparse.ArgumentParser(prog="chip8vm", description="CHIP-8 emulator")
    parser.add_argument("rom", help="path to a CHIP-8 ROM")
    parser.add_argument("--scale", type=int, default=SCALE, help="window pixels per CHIP-8 pixel")
    parser.add_argument("--cpu-hz", type=int, default=CPU_HZ, help="instructions per second")
    parser.add_argument("--seed", type=int, default=None, help="seed for the Cxkk random source")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser.parse_args(argv)


# Main
def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(level=args.log_level, format="[%(levelname)s]:  %(message)s")

    chip8 = Chip8(rng=random.Random(args.seed))
    try:
        chip8.load_rom(args.rom)
    except (OSError, Chip8Error) as e:
        print(f"Could not load {args.rom}: {e}", file=sys.stderr)
        return 1

    Chip8Window(chip8, scale=args.scale, cpu_hz=args.cpu_hz)
    pyglet.app.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
