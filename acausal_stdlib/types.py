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

from typing import NamedTuple

from .acausal_diagram import AcausalDiagram


# data produced by DiagramProcessing. defined here since it is used by both
# DiagramProcessing and error.py, defining it in DiagramProcessing would
# create circular imports.
class DiagramProcessingData(NamedTuple):
    ad: AcausalDiagram

    # see DiagramProcessing for description
    syms: list
    syms_map: dict
    nodes: dict
    node_domains: dict
    pot_alias_map: dict
    alias_map: dict
    params: dict
    node_pot_names: dict
    pruned_integrals: dict


class FlatSystem(NamedTuple):
    """The flattened equations handed from DiagramProcessing to the compiler."""

    t: object  # Symbol for time
    eqs: list  # system equations, list of Eqn
    states: list  # sympy functions whose time derivative appears in eqs
    inputs: dict  # dict{sympy function: Sym} of the inputs
    params: dict  # dict{sympy symbol: value}
    ics: dict  # dict{sympy function: value} for 'strong' initial conditions
    ics_weak: dict  # dict{sympy function: value} for 'weak' initial conditions
    outp_exprs: dict  # dict{output Sym: expr}
    outp_der_exprs: dict  # dict{sympy function: expr} derivative needed by outputs
