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
Digital logic components.

The potential of a digital pin is the numeric level of a nine-valued Logic,
U=1 ... DC=9. Logic operations are table lookups. On numbers or Logic values
they are evaluated immediately, on sympy expressions they produce calls to the
undefined functions in LOGIC_FUNCTIONS, which the compiler maps to array
lookups of the same tables.

Digital Domain variables:
flow:Units = current:Amps
potential:Units = logic level:none
"""

from enum import Enum
from functools import reduce
from numbers import Number

import numpy as np
import sympy as sp

from .component_base import ComponentBase


class Logic(Enum):
    U = 1  # uninitialized
    X = 2  # forcing unknown
    F0 = 3  # forcing zero
    F1 = 4  # forcing one
    Z = 5  # high impedance
    W = 6  # weak unknown
    L = 7  # weak zero
    H = 8  # weak one
    DC = 9  # don't care

    @property
    def level(self):
        return self.value

    def __str__(self):
        return self.name


U, X, F0, F1, Z, W, L, H, DC = Logic


def convert_to_logic(x):
    """Logic values pass through, 0 and 1 become F0 and F1."""
    if isinstance(x, Logic):
        return x
    if isinstance(x, Number) and not isinstance(x, complex):
        if x == 0:
            return F0
        if x == 1:
            return F1
    raise ValueError(f"{x!r} isn't a valid Logic value")


def get_logic_level(x):
    return convert_to_logic(x).level


# tables indexed by [level(a) - 1, level(b) - 1], rows and columns in the
# order U X F0 F1 Z W L H DC.
AndTable = [
    [U, U, F0, U, U, U, F0, U, U],
    [U, X, F0, X, X, X, F0, X, X],
    [F0, F0, F0, F0, F0, F0, F0, F0, F0],
    [U, X, F0, F1, X, X, F0, F1, X],
    [U, X, F0, X, X, X, F0, X, X],
    [U, X, F0, X, X, X, F0, X, X],
    [F0, F0, F0, F0, F0, F0, F0, F0, F0],
    [U, X, F0, F1, X, X, F0, F1, X],
    [U, X, F0, X, X, X, F0, X, X],
]

OrTable = [
    [U, U, U, F1, U, U, U, F1, U],
    [U, X, X, F1, X, X, X, F1, X],
    [U, X, F0, F1, X, X, F0, F1, X],
    [F1, F1, F1, F1, F1, F1, F1, F1, F1],
    [U, X, X, F1, X, X, X, F1, X],
    [U, X, X, F1, X, X, X, F1, X],
    [U, X, F0, F1, X, X, F0, F1, X],
    [F1, F1, F1, F1, F1, F1, F1, F1, F1],
    [U, X, X, F1, X, X, X, F1, X],
]

XorTable = [
    [U, U, U, U, U, U, U, U, U],
    [U, X, X, X, X, X, X, X, X],
    [U, X, F0, F1, X, X, F0, F1, X],
    [U, X, F1, F0, X, X, F1, F0, X],
    [U, X, X, X, X, X, X, X, X],
    [U, X, X, X, X, X, X, X, X],
    [U, X, F0, F1, X, X, F0, F1, X],
    [U, X, F1, F0, X, X, F1, F0, X],
    [U, X, X, X, X, X, X, X, X],
]

NotTable = [U, X, F1, F0, X, X, F1, F0, X]


def _levels(table):
    return np.vectorize(lambda lg: lg.level)(np.array(table, dtype=object)).astype(
        float
    )


# numeric tables of levels, used by the compiled equations.
LOGIC_TABLES = {
    "logic_and2": _levels(AndTable),
    "logic_or2": _levels(OrTable),
    "logic_xor2": _levels(XorTable),
    "logic_not": _levels(NotTable),
}

LOGIC_FUNCTIONS = {name: sp.Function(name, real=True) for name in LOGIC_TABLES}


def _is_symbolic(x):
    return isinstance(x, sp.Basic) and not x.is_Number


def _binary(table, name):
    def op(a, b):
        if _is_symbolic(a) or _is_symbolic(b):
            a = a if _is_symbolic(a) else get_logic_level(a)
            b = b if _is_symbolic(b) else get_logic_level(b)
            return LOGIC_FUNCTIONS[name](a, b)
        return table[get_logic_level(a) - 1][get_logic_level(b) - 1]

    return op


_and2 = _binary(AndTable, "logic_and2")
_or2 = _binary(OrTable, "logic_or2")
_xor2 = _binary(XorTable, "logic_xor2")


def logic_and(*args):
    return reduce(_and2, args)


def logic_or(*args):
    return reduce(_or2, args)


def logic_xor(*args):
    return reduce(_xor2, args)


def logic_not(x):
    if _is_symbolic(x):
        return LOGIC_FUNCTIONS["logic_not"](x)
    return NotTable[get_logic_level(x) - 1]


def _to_level(x):
    # numeric logic values enter equations as their level
    return x if _is_symbolic(x) else get_logic_level(x)


class LogicVector:
    """An immutable vector of Logic values built from Logic values or 0/1."""

    def __init__(self, values):
        self.logic = tuple(convert_to_logic(v) for v in values)

    @property
    def levels(self):
        return np.array([lg.level for lg in self.logic], dtype=int)

    def __len__(self):
        return len(self.logic)

    def __getitem__(self, idx):
        return self.logic[idx]

    def __iter__(self):
        return iter(self.logic)

    def __contains__(self, x):
        return convert_to_logic(x) in self.logic

    def __eq__(self, other):
        if isinstance(other, LogicVector):
            return self.logic == other.logic
        return NotImplemented

    def __hash__(self):
        return hash(self.logic)

    def __repr__(self):
        return "LogicVector([" + ", ".join(str(lg) for lg in self.logic) + "])"


std_ulogic = LogicVector([U, X, F0, F1, Z, W, L, H, DC])
UX01 = LogicVector([U, X, F0, F1])
UX01Z = LogicVector([U, X, F0, F1, Z])
X01 = LogicVector([X, F0, F1])
X01Z = LogicVector([X, F0, F1, Z])


def _check_power_of_2(N, name):
    if not isinstance(N, int) or N < 1 or N & (N - 1):
        raise ValueError(f"{name}: N must be a power of 2, got {N}.")
    return N.bit_length() - 1


class _DigitalComponent(ComponentBase):
    def __init__(self, ev, name):
        super().__init__()
        self.name = self.__class__.__name__ if name is None else name

    def declare_inputs(self, ev, port_names):
        """Input pins draw no current. Returns the pin values."""
        vals = []
        for port_name in port_names:
            val, i = self.declare_digital_port(ev, port_name)
            self.add_eqs([sp.Eq(i.s, 0)])
            vals.append(val.s)
        return vals

    def drive(self, ev, port_name, expr):
        """Declare an output pin whose value is expr."""
        val, _ = self.declare_digital_port(ev, port_name)
        self.add_eqs([sp.Eq(val.s, _to_level(expr))])
        return val


class _Gate(_DigitalComponent):
    """
    N input gate with inputs x1..xN and output y. The output pin current is
    the sum of the input pin currents, inputs other than x1 draw none.
    """

    def __init__(self, ev, name=None, N=2):
        super().__init__(ev, name)
        if N < 1:
            raise ValueError(f"{self.__class__.__name__} {self.name}: N must be >= 1.")
        pins = [self.declare_digital_port(ev, f"x{k}") for k in range(1, N + 1)]
        y, y_i = self.declare_digital_port(ev, "y")
        vals = [val.s for val, _ in pins]
        self.add_eqs(
            [
                sp.Eq(y.s, _to_level(self.operation(vals))),
                sp.Eq(y_i.s, sum(i.s for _, i in pins)),
            ]
        )
        self.add_eqs([sp.Eq(i.s, 0) for _, i in pins[1:]])

    def operation(self, vals):
        raise NotImplementedError


class Not(_Gate):
    def __init__(self, ev, name=None):
        super().__init__(ev, name, N=1)

    def operation(self, vals):
        return logic_not(vals[0])


class And(_Gate):
    def operation(self, vals):
        return logic_and(*vals)


class Nand(_Gate):
    def operation(self, vals):
        return logic_not(logic_and(*vals))


class Or(_Gate):
    def operation(self, vals):
        return logic_or(*vals)


class Nor(_Gate):
    def operation(self, vals):
        return logic_not(logic_or(*vals))


class Xor(_Gate):
    def operation(self, vals):
        return logic_xor(*vals)


class Xnor(_Gate):
    def operation(self, vals):
        return logic_not(logic_xor(*vals))


class HalfAdder(_DigitalComponent):
    """y1 = x1 xor x2 (sum) and y2 = x1 and x2 (carry)."""

    def __init__(self, ev, name=None):
        super().__init__(ev, name)
        x1, x2 = self.declare_inputs(ev, ["x1", "x2"])
        y1 = self.drive(ev, "y1", logic_xor(x1, x2))
        y2 = self.drive(ev, "y2", logic_and(x1, x2))
        self.declare_output(ev, "sum", y1.s)
        self.declare_output(ev, "carry", y2.s)


class FullAdder(_DigitalComponent):
    """Adds x1, x2 and the carry in x3, y1 is the sum, y2 the carry out."""

    def __init__(self, ev, name=None):
        super().__init__(ev, name)
        x1, x2, x3 = self.declare_inputs(ev, ["x1", "x2", "x3"])
        y1 = self.drive(ev, "y1", logic_xor(x1, x2, x3))
        carry = logic_or(logic_and(x3, logic_xor(x1, x2)), logic_and(x1, x2))
        y2 = self.drive(ev, "y2", carry)
        self.declare_output(ev, "sum", y1.s)
        self.declare_output(ev, "carry", y2.s)


def _select_terms(selectors, index):
    # selector k is inverted where bit k of index is 0
    return [
        sel if (index >> k) & 1 else logic_not(sel) for k, sel in enumerate(selectors)
    ]


class MUX(_DigitalComponent):
    """N to 1 multiplexer. Data pins d0..d{N-1}, select pins s0..s{n-1} with
    s0 the least significant bit, output y."""

    def __init__(self, ev, name=None, N=4):
        super().__init__(ev, name)
        n = _check_power_of_2(N, self.__class__.__name__)
        d = self.declare_inputs(ev, [f"d{k}" for k in range(N)])
        s = self.declare_inputs(ev, [f"s{k}" for k in range(n)])
        terms = [logic_and(*_select_terms(s, k), d[k]) for k in range(N)]
        self.drive(ev, "y", logic_or(*terms))


class DEMUX(_DigitalComponent):
    """1 to N demultiplexer, routes d to y{select}."""

    def __init__(self, ev, name=None, N=4):
        super().__init__(ev, name)
        n = _check_power_of_2(N, self.__class__.__name__)
        (d,) = self.declare_inputs(ev, ["d"])
        s = self.declare_inputs(ev, [f"s{k}" for k in range(n)])
        for k in range(N):
            self.drive(ev, f"y{k}", logic_and(*_select_terms(s, k), d))


class Encoder(_DigitalComponent):
    """N to log2(N) encoder. Output bit y{j} is the or of the inputs d{k}
    whose index k has bit j set."""

    def __init__(self, ev, name=None, N=4):
        super().__init__(ev, name)
        n = _check_power_of_2(N, self.__class__.__name__)
        d = self.declare_inputs(ev, [f"d{k}" for k in range(N)])
        for j in range(n):
            self.drive(ev, f"y{j}", logic_or(*[d[k] for k in range(N) if (k >> j) & 1]))


class Decoder(_DigitalComponent):
    """n to 2^n decoder, y{k} is F1 when the inputs d0..d{n-1} encode k."""

    def __init__(self, ev, name=None, n=2):
        super().__init__(ev, name)
        if n < 1:
            raise ValueError(f"Decoder {self.name}: n must be >= 1.")
        d = self.declare_inputs(ev, [f"d{k}" for k in range(n)])
        for k in range(2**n):
            self.drive(ev, f"y{k}", logic_and(*_select_terms(d, k)))


class Set(_DigitalComponent):
    """Drives its pin d to F1."""

    def __init__(self, ev, name=None):
        super().__init__(ev, name)
        self.drive(ev, "d", F1)


class Reset(_DigitalComponent):
    """Drives its pin d to F0."""

    def __init__(self, ev, name=None):
        super().__init__(ev, name)
        self.drive(ev, "d", F0)


class Pulse(_DigitalComponent):
    """
    Periodic pulse on pin d, F1 during the first duty_cycle fraction of every
    period T, F0 otherwise.
    """

    def __init__(self, ev, name=None, duty_cycle=0.5, T=1.0):
        super().__init__(ev, name)
        duty = self.declare_param(ev, "duty_cycle", duty_cycle, non_negative=True)
        T = self.declare_param(ev, "T", T, positive=True)
        expr = sp.Piecewise(
            (F1.level, sp.Mod(ev.t, T.s) < duty.s * T.s), (F0.level, True)
        )
        self.drive(ev, "d", expr)
