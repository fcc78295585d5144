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

"""Time domain simulation of a compiled AcausalSystem."""

from typing import Any, Callable, NamedTuple

import numpy as np
import sympy as sp
from scipy.integrate import cumulative_trapezoid, solve_ivp
from sympy.core.function import AppliedUndef

from .acausal_compiler import AcausalSystem
from .component_library.sources import SourceBase
from .logging import logdata, logger, scope_logging

__all__ = ["simulate", "SimulationResults"]


class SimulationResults(NamedTuple):
    """Data structure for the results of a simulation.

    Attributes:
        time (Array):
            The time vector of the simulation.
        states (dict[str, Array]):
            The differential states, keyed by name.
        unknowns (dict[str, Array]):
            The state derivatives and algebraic variables, keyed by name.
        outputs (dict[str, Array]):
            The outputs of the sensors, keyed by name.
        system (AcausalSystem):
            The simulated system.
        inputs (Array):
            Input values, shape (len(time), num_inputs).
        parameters (Array):
            The parameter vector used.
    """

    time: np.ndarray
    states: dict[str, np.ndarray]
    unknowns: dict[str, np.ndarray]
    outputs: dict[str, np.ndarray]
    system: AcausalSystem = None
    inputs: np.ndarray = None
    parameters: np.ndarray = None

    def value(self, sym) -> np.ndarray:
        """
        Time series of any symbol of the model: a component Sym, its sympy
        symbol, an expression of them, or the name of an output, state or
        unknown. Symbols eliminated during diagram processing are evaluated
        through the alias map.

        Integrals which the system does not need, e.g. the position of a mass
        driven by a force, are integrated from their derivative over the
        result time points, starting from their initial value at time[0].
        """
        system = self.system
        s = getattr(sym, "s", sym)
        if isinstance(s, str):
            for series in (self.outputs, self.states, self.unknowns):
                if s in series:
                    return series[s]
            raise KeyError(f"No output, state or unknown named {s}.")
        for outp_sym in system.outp_syms:
            if outp_sym.s == s:
                return self.outputs[outp_sym.name]

        expr = sp.sympify(s).xreplace(system.dpd.alias_map)
        integrals = {
            f: self._integrate(f, d)
            for f, d in system.pruned_integrals_of(expr).items()
        }
        evaluate = system.make_evaluator(expr, extra=list(integrals))
        x = self._x_array()
        z = self._z_array()
        return np.array(
            [
                float(
                    evaluate(
                        t,
                        x[i],
                        z[i],
                        self.inputs[i],
                        self.parameters,
                        [series[i] for series in integrals.values()],
                    )
                )
                for i, t in enumerate(self.time)
            ]
        )

    def _integrate(self, f, d) -> np.ndarray:
        ic = self.system.dpd.syms_map[f].ic
        ic = 0.0 if ic is None else float(ic)
        return ic + cumulative_trapezoid(self.value(d), self.time, initial=0.0)

    def _x_array(self):
        if not self.states:
            return np.zeros((len(self.time), 0))
        return np.stack(list(self.states.values()), axis=-1)

    def _z_array(self):
        if not self.unknowns:
            return np.zeros((len(self.time), 0))
        return np.stack(list(self.unknowns.values()), axis=-1)


def _key_name(key) -> str:
    # inputs are keyed by name, Sym, or the sympy function of the Sym
    if isinstance(key, str):
        return key
    if isinstance(key, AppliedUndef):
        return key.func.__name__
    return key.name


def _input_function(value, t_sym) -> Callable[[float], float]:
    if isinstance(value, SourceBase):
        return value
    if isinstance(value, sp.Basic):
        fn = sp.lambdify(t_sym, value, modules="numpy")
        return lambda time: float(fn(time))
    if callable(value):
        return value
    const = float(value)
    return lambda time: const


def _input_functions(system: AcausalSystem, inputs: dict[Any, Any] | None):
    """One function of time per input of the system. Inputs which are not
    provided keep the default value declared by their component."""
    by_name = {}
    for key, value in (inputs or {}).items():
        name = _key_name(key)
        if name not in system.input_names:
            raise ValueError(
                f"AcausalSystem {system.name} has no input named {name}. "
                f"Inputs: {system.input_names}."
            )
        by_name[name] = value

    fns = []
    for u, name in zip(system.u_syms, system.input_names):
        value = by_name.get(name, system.flat.inputs[u].val)
        fns.append(_input_function(value, system.t))
    return fns


@scope_logging
def simulate(
    system: AcausalSystem,
    t_span,
    t_eval=None,
    inputs=None,
    params=None,
    method="RK45",
    rtol=1e-6,
    atol=1e-8,
    max_step=np.inf,
) -> SimulationResults:
    """
    Simulate an AcausalSystem over t_span.

    Args:
        system (AcausalSystem):
            The compiled system.
        t_span (tuple):
            (t0, tf).
        t_eval (Array):
            Times at which the results are stored. Defaults to the time steps
            of the solver, or 101 equally spaced points for systems without
            states.
        inputs (dict):
            Input values, keyed by input Sym or name. Each value is a number,
            a callable of time, a sympy expression of the time symbol, or a
            signal source.
        params (dict):
            Overrides of the parameter values, keyed by parameter Sym or name.
        method, rtol, atol, max_step:
            Options of scipy.integrate.solve_ivp.
    """
    t0, tf = float(t_span[0]), float(t_span[1])
    p = system.param_vector(params)
    u_fns = _input_functions(system, inputs)

    def u_at(time):
        return np.array([fn(time) for fn in u_fns], dtype=float)

    x0, z0 = system.initialize(t0, u_at(t0), p)

    if system.nx == 0:
        time = np.linspace(t0, tf, 101) if t_eval is None else np.asarray(t_eval)
        xs = np.zeros((len(time), 0))
    else:
        z_prev = {"z": z0}

        def rhs(time, x):
            xdot, z = system.ode_rhs(time, x, u_at(time), p, z_guess=z_prev["z"])
            z_prev["z"] = z
            return xdot

        sol = solve_ivp(
            rhs,
            (t0, tf),
            x0,
            method=method,
            t_eval=t_eval,
            rtol=rtol,
            atol=atol,
            max_step=max_step,
        )
        if not sol.success:
            raise RuntimeError(f"Simulation of {system.name} failed: {sol.message}")
        time = sol.t
        xs = sol.y.T
        logger.debug(
            "integration done",
            **logdata(system=system.name, nfev=sol.nfev, n_steps=len(time)),
        )

    us = np.array([u_at(t) for t in time]).reshape(len(time), len(u_fns))
    zs = np.zeros((len(time), system.nz))
    ys = np.zeros((len(time), len(system.outp_syms)))
    z_guess = z0
    for i, t in enumerate(time):
        z_guess = system.solve_algebraic(t, xs[i], us[i], p, z_guess=z_guess)
        zs[i] = z_guess
        if system.outp_syms:
            udot = None
            if system.w_syms and len(u_fns):
                h = 1e-6 * max(1.0, abs(t))
                udot = (u_at(t + h) - u_at(t - h)) / (2 * h)
            ys[i] = system.eval_outputs(t, xs[i], zs[i], us[i], p, udot)

    return SimulationResults(
        time=np.asarray(time),
        states={n: xs[:, i] for i, n in enumerate(system.state_names)},
        unknowns={n: zs[:, i] for i, n in enumerate(system.unknown_names)},
        outputs={n: ys[:, i] for i, n in enumerate(system.output_names)},
        system=system,
        inputs=us,
        parameters=np.asarray(p),
    )
