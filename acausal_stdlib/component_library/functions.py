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
Helper functions used in component equations and signal sources.

Every function accepts either numbers/numpy arrays, in which case the result
is numeric, or sympy expressions, in which case the result is a sympy
expression. Branching is expressed with sympy.Piecewise in the symbolic case
and numpy.where in the numeric case. sympy.Max/Min are avoided because the
jax printer of lambdify renders them as reductions over python tuples.
"""

import numpy as np
import sympy as sp

# default smoothing of the source wave functions
SMOOTH_DELTA = 1e-5


def _is_symbolic(*args):
    return any(isinstance(a, sp.Basic) and not a.is_Number for a in args)


def _scalar(x):
    # 0-d numpy results are returned as python floats
    if np.ndim(x) == 0:
        return float(x)
    return x


def _where(cond, a, b, symbolic):
    if symbolic:
        return sp.Piecewise((a, cond), (b, True))
    return np.where(cond, a, b)


def _lib(symbolic):
    return sp if symbolic else np


def _atan(x):
    return sp.atan(x) if isinstance(x, sp.Basic) else np.arctan(x)


def _acos(x):
    return sp.acos(x) if isinstance(x, sp.Basic) else np.arccos(x)


def regPow(x, a, delta=0.01):
    """Regularized power: x*(x^2 + delta^2)^((a-1)/2).

    Behaves like sign(x)*|x|^a away from 0, with a finite slope at x=0.
    """
    return x * (x * x + delta * delta) ** ((a - 1) / 2)


def regRoot(x, delta=0.01):
    """Regularized signed square root."""
    return regPow(x, 0.5, delta)


def transition(x1, x2, y1, y2, x):
    """y1 below x1, y2 above x2, and a smoothstep blend in between."""
    symbolic = _is_symbolic(x1, x2, y1, y2, x)
    u = (x - x1) / (x2 - x1)
    blend = 3 * u**2 - 2 * u**3
    mid = (1 - blend) * y1 + blend * y2
    if symbolic:
        return sp.Piecewise((y1, x < x1), (y2, x > x2), (mid, True))
    return _scalar(np.where(x < x1, y1, np.where(x > x2, y2, mid)))


def friction_factor(dm, area, d_h, density, viscosity, shape_factor, delta=0.01):
    """
    Darcy friction factor f of fully developed flow in a tube, such that
    dp = f * rho * u^2 / 2 * L / d_h.

    Laminar: f = shape_factor/Re.
    Turbulent (smooth tubes): f = (shape_factor/64) * (0.79 ln(Re) - 1.64)^-2.
    The two are blended between Re=2000 and Re=3000 with transition().

    The speed entering Re is sqrt(u^2 + delta^2), so the laminar friction
    stays finite at zero flow. With the same delta as the regPow(u, 2, delta)
    of the tube pressure drop, the laminar pressure drop is exactly linear in u.

    Args:
        dm: mass flow [kg/s]
        area: cross section area [m^2]
        d_h: hydraulic diameter [m], 4*area/perimeter
        density: [kg/m^3]
        viscosity: dynamic viscosity [Pa*s]
        shape_factor: f*Re of the laminar flow, 64 for circular tubes.
    """
    symbolic = _is_symbolic(dm, area, d_h, density, viscosity, shape_factor)
    lib = _lib(symbolic)
    u = dm / (density * area)
    u_reg = lib.sqrt(u * u + delta * delta)

    Re = density * u_reg * d_h / viscosity
    f_laminar = shape_factor / Re

    Re_t = _where(Re > 1, Re, 1, symbolic)
    f_turbulent = (shape_factor / 64) * (0.79 * lib.log(Re_t) - 1.64) ** (-2)

    return transition(2000, 3000, f_laminar, f_turbulent, Re)


def liquid_density(rho, beta, p):
    """Density of a liquid with bulk modulus beta at gauge pressure p."""
    return rho * (1 + p / beta)


# smooth wave functions, 'offset + wave * smooth_step' with the output equal
# to offset for x < start_time.


def smooth_step(x, delta, height, offset, start_time):
    lib = _lib(_is_symbolic(x, delta, height, offset, start_time))
    return offset + height * (_atan((x - start_time) / delta) / lib.pi + 0.5)


def smooth_xH(x, delta, t0):
    lib = _lib(_is_symbolic(x, delta, t0))
    return 0.5 * (x - t0) * (1 + ((x - t0) / lib.sqrt((x - t0) ** 2 + delta**2)))


def smooth_sin(x, delta, f, amplitude, phase, offset, start_time):
    lib = _lib(_is_symbolic(x, delta, f, amplitude, phase, offset, start_time))
    return offset + amplitude * lib.sin(
        2 * lib.pi * f * (x - start_time) + phase
    ) * smooth_step(x, delta, 1.0, 0.0, start_time)


def smooth_cos(x, delta, f, amplitude, phase, offset, start_time):
    lib = _lib(_is_symbolic(x, delta, f, amplitude, phase, offset, start_time))
    return offset + amplitude * lib.cos(
        2 * lib.pi * f * (x - start_time) + phase
    ) * smooth_step(x, delta, 1.0, 0.0, start_time)


def smooth_damped_sin(x, delta, f, amplitude, damping, phase, offset, start_time):
    lib = _lib(_is_symbolic(x, f, amplitude, damping, phase, offset, start_time))
    return offset + lib.exp(
        (start_time - x) * damping
    ) * amplitude * lib.sin(2 * lib.pi * f * (x - start_time) + phase) * smooth_step(
        x, delta, 1.0, 0.0, start_time
    )


def smooth_ramp(x, delta, height, duration, offset, start_time):
    return offset + height / duration * (
        smooth_xH(x, delta, start_time) - smooth_xH(x, delta, start_time + duration)
    )


def smooth_square(x, delta, f, amplitude, offset, start_time):
    lib = _lib(_is_symbolic(x, delta, f, amplitude, offset, start_time))
    wave = 2 * _atan(lib.sin(2 * lib.pi * (x - start_time) * f) / delta) / lib.pi
    return offset + amplitude * wave * smooth_step(x, delta, 1.0, 0.0, start_time)


def smooth_triangular(x, delta, f, amplitude, offset, start_time):
    lib = _lib(_is_symbolic(x, delta, f, amplitude, offset, start_time))
    wave = 1 - 2 * _acos((1 - delta) * lib.sin(2 * lib.pi * (x - start_time) * f)) / lib.pi
    return offset + amplitude * wave * smooth_step(x, delta, 1.0, 0.0, start_time)


def square(x, f, amplitude, offset, start_time):
    symbolic = _is_symbolic(x, f, amplitude, offset, start_time)
    lib = _lib(symbolic)
    wave = amplitude * (
        4 * lib.floor(f * (x - start_time)) - 2 * lib.floor(2 * (x - start_time) * f) + 1
    )
    res = offset + _where(x > start_time, wave, 0, symbolic)
    return res if symbolic else _scalar(res)


def triangular(x, f, amplitude, offset, start_time):
    symbolic = _is_symbolic(x, f, amplitude, offset, start_time)
    p = 1 / f
    if symbolic:
        phase = sp.Mod(x - p / 4 - start_time, p)
        wave = 4 * amplitude * f * sp.Abs(sp.Abs(phase) - p / 2) - amplitude
    else:
        phase = np.mod(x - p / 4 - start_time, p)
        wave = 4 * amplitude * f * np.abs(np.abs(phase) - p / 2) - amplitude
    res = offset + _where(x > start_time, wave, 0, symbolic)
    return res if symbolic else _scalar(res)
