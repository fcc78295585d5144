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

from .component_library.base import SymKind
from .error import AcausalModelError


class AcausalDiagram:
    """
    collection of components and connections representing a network of acausal components.
    """

    def __init__(self, name=None, comp_list=None, cnctn_list=None):
        self.name = "acausal_diagram" if name is None else name
        # dict used as an insertion ordered set, so that equations are always
        # generated in the same order.
        self._comps = {}
        for cmp in comp_list or []:
            self.add_component(cmp)
        self.connections = []
        for (cmp_a, port_a), (cmp_b, port_b) in cnctn_list or []:
            self.connect(cmp_a, port_a, cmp_b, port_b)

        # populated in DiagramProcessing.finalize_diagram(), because hydraulic
        # components only declare some of their equations once their fluid is
        # known.
        self.syms = set()  # the Sym objects
        self.syms_sp = set()  # the sympy symbols
        self.eqs = []
        # dict[sym:cmp] needed to dereference syms to their source component
        self.sym_to_cmp = {}

    @property
    def comps(self):
        return list(self._comps)

    def add_component(self, cmp):
        """Add a component which may have no connections, e.g. a Mass with a free flange."""
        self._comps[cmp] = None

    def connect(self, cmp_a, port_a, cmp_b, port_b):
        for cmp, port in ((cmp_a, port_a), (cmp_b, port_b)):
            if port not in cmp.ports:
                raise AcausalModelError(
                    message=f"Component {cmp.name} has no port named '{port}'. "
                    f"Available ports: {list(cmp.ports)}.",
                    components=[cmp],
                )
        self.add_component(cmp_a)
        self.add_component(cmp_b)
        self.connections.append(((cmp_a, port_a), (cmp_b, port_b)))

    def add_cmp_sympy_syms(self, cmp):
        if cmp in self.sym_to_cmp.values():
            return
        # two components with the same name produce the same sympy symbols.
        cmp_syms_sp = [s.s for s in cmp.syms if s.kind != SymKind.cond]
        dupes = self.syms_sp.intersection(cmp_syms_sp)
        if dupes:
            raise AcausalModelError(
                message=f"AcausalDiagram. {cmp.name} has symbols which already appear "
                f"in the acausal model: {dupes}. Try giving the component a different name.",
                components=[cmp],
            )
        self.syms_sp.update(cmp_syms_sp)
        for sym_ in list(cmp.syms):
            self.sym_to_cmp[sym_] = cmp

    def _syms_of_kind(self, kind):
        return [sym for comp in self.comps for sym in comp.get_syms_by_kind(kind)]

    @property
    def input_syms(self):
        return self._syms_of_kind(SymKind.inp)

    @property
    def output_syms(self):
        return self._syms_of_kind(SymKind.outp)
