# Copyright (C) 2024 Collimator, Inc.
# SPDX-License-Identifier: AGPL-3.0-only
#
# This program is free software: you can redistribute it and/or modify it under
# the terms of the GNU Affero General Public License as published by the Free
# Software Foundation, version 3. This program is distributed in the hope that it
# will be useful, but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the GNU Affero General
# Public License for more details.  You should have received a copy of the GNU
# Affero General Public License along with this program. If not, see
# <https://www.gnu.org/licenses/>.

"""
Signal sources for the inputs of acausal components.

A source is evaluated either symbolically, `src.expr(ev.t)` gives a sympy
expression of time, or numerically, `src(1.5)`. simulate() accepts source
objects as input values and evaluates them at every solver step.
"""

import numpy as np
import sympy as sp

from . import functions as fn
from .functions import SMOOTH_DELTA, _is_symbolic, _where


def _smooth_delta(smooth):
    if smooth is True:
        return SMOOTH_DELTA
    return smooth


class SourceBase:
    """Base class of signal sources. Subclasses implement _wave(x), valid
    for both numeric and sympy values of x."""

    def __init__(self, offset=0.0, start_time=0.0, smooth=False):
        self.offset = offset
        self.start_time = start_time
        self.delta = _smooth_delta(smooth)

    @property
    def smooth(self):
        return self.delta is not False and self.delta is not None

    def _wave(self, x):
        raise NotImplementedError

    def expr(self, t):
        """The source value as a sympy expression of the time symbol t."""
        return sp.sympify(self._wave(t))

    def __call__(self, time):
        return float(self._wave(time)) if np.ndim(time) == 0 else self._wave(time)

    def _after_start(self, x, value):
        symbolic = _is_symbolic(x)
        res = self.offset + _where(x >= self.start_time, value, 0.0, symbolic)
        return res if symbolic else np.asarray(res, dtype=float)

    def __repr__(self):
        return f"{self.__class__.__name__}({self.__dict__})"


class Constant(SourceBase):
    def __init__(self, k=1.0):
        super().__init__()
        self.k = k

    def _wave(self, x):
        if _is_symbolic(x):
            return sp.Float(self.k)
        return np.full(np.shape(x), self.k, dtype=float)


class Sine(SourceBase):
    """offset + amplitude*sin(2*pi*frequency*(t - start_time) + phase) after start_time."""

    def __init__(
        self,
        frequency=1.0,
        amplitude=1.0,
        phase=0.0,
        offset=0.0,
        start_time=0.0,
        smooth=False,
    ):
        super().__init__(offset, start_time, smooth)
        self.frequency = frequency
        self.amplitude = amplitude
        self.phase = phase

    def _wave(self, x):
        f, A, ph = self.frequency, self.amplitude, self.phase
        if self.smooth:
            return fn.smooth_sin(x, self.delta, f, A, ph, self.offset, self.start_time)
        lib = sp if _is_symbolic(x) else np
        return self._after_start(
            x, A * lib.sin(2 * lib.pi * f * (x - self.start_time) + ph)
        )


class Cosine(Sine):
    def _wave(self, x):
        f, A, ph = self.frequency, self.amplitude, self.phase
        if self.smooth:
            return fn.smooth_cos(x, self.delta, f, A, ph, self.offset, self.start_time)
        lib = sp if _is_symbolic(x) else np
        return self._after_start(
            x, A * lib.cos(2 * lib.pi * f * (x - self.start_time) + ph)
        )


class ContinuousClock(SourceBase):
    """offset + (t - start_time) after start_time."""

    def _wave(self, x):
        return self._after_start(x, x - self.start_time)


class Ramp(SourceBase):
    """Linear ramp from offset to offset + height over duration seconds."""

    def __init__(
        self, height=1.0, duration=1.0, offset=0.0, start_time=0.0, smooth=False
    ):
        super().__init__(offset, start_time, smooth)
        self.height = height
        self.duration = duration

    def _wave(self, x):
        h, d, st = self.height, self.duration, self.start_time
        if self.smooth:
            return fn.smooth_ramp(x, self.delta, h, d, self.offset, st)
        symbolic = _is_symbolic(x)
        rising = _where(x < st + d, (x - st) * h / d, h, symbolic)
        return self._after_start(x, rising)


class Step(SourceBase):
    """Step of height at start_time, reverting to offset after duration.
    Smooth by default."""

    def __init__(
        self,
        height=1.0,
        offset=0.0,
        start_time=0.0,
        duration=np.inf,
        smooth=SMOOTH_DELTA,
    ):
        super().__init__(offset, start_time, smooth)
        self.height = height
        self.duration = duration

    def _wave(self, x):
        h, st, d = self.height, self.start_time, self.duration
        if self.smooth:
            res = fn.smooth_step(x, self.delta, h, self.offset, st)
            if np.isfinite(d):
                res = res - fn.smooth_step(x, self.delta, h, 0.0, st + d)
            return res
        symbolic = _is_symbolic(x)
        if np.isfinite(d):
            on = _where(x < st + d, h, 0.0, symbolic)
        else:
            on = h
        res = self.offset + _where(x > st, on, 0.0, symbolic)
        return res if symbolic else np.asarray(res, dtype=float)


class ExpSine(Sine):
    """Exponentially damped sine wave."""

    def __init__(
        self,
        frequency=1.0,
        amplitude=1.0,
        damping=0.1,
        phase=0.0,
        offset=0.0,
        start_time=0.0,
        smooth=False,
    ):
        super().__init__(frequency, amplitude, phase, offset, start_time, smooth)
        self.damping = damping

    def _wave(self, x):
        f, A, ph, st = self.frequency, self.amplitude, self.phase, self.start_time
        if self.smooth:
            return fn.smooth_damped_sin(
                x, self.delta, f, A, self.damping, ph, self.offset, st
            )
        lib = sp if _is_symbolic(x) else np
        wave = (
            A
            * lib.exp(-self.damping * (x - st))
            * lib.sin(2 * lib.pi * f * (x - st) + ph)
        )
        return self._after_start(x, wave)


class Square(SourceBase):
    def __init__(
        self, frequency=1.0, amplitude=1.0, offset=0.0, start_time=0.0, smooth=False
    ):
        super().__init__(offset, start_time, smooth)
        self.frequency = frequency
        self.amplitude = amplitude

    def _wave(self, x):
        f, A, st = self.frequency, self.amplitude, self.start_time
        if self.smooth:
            return fn.smooth_square(x, self.delta, f, A, self.offset, st)
        return fn.square(x, f, A, self.offset, st)


class Triangular(Square):
    def _wave(self, x):
        f, A, st = self.frequency, self.amplitude, self.start_time
        if self.smooth:
            return fn.smooth_triangular(x, self.delta, f, A, self.offset, st)
        return fn.triangular(x, f, A, self.offset, st)
