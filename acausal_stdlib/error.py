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

from typing import List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    import sympy as sp
    from .types import DiagramProcessingData


class AcausalCompilerError(Exception):
    """The flattened equations cannot be turned into a simulable system, e.g.
    they are unbalanced, structurally singular, or of index higher than 1."""

    def __init__(
        self,
        message: str,
        dpd: Optional["DiagramProcessingData"] = None,
    ):
        super().__init__(message)
        self.message = message
        self.dpd = dpd

    def __str__(self):
        return f"Compilation of AcausalDiagram failed.{self._context_info()}\n{self.message}"

    def _context_info(self) -> str:
        if self.dpd:
            return f"\nRelated AcausalDiagram: {self.dpd.ad.name}."
        return ""


class AcausalModelError(Exception):
    """An error class for raising errors related to invalid model construction,
    e.g. connecting ports of different domains, or invalid parameter values."""

    def __init__(
        self,
        message: str,
        components=None,  # : Optional[List[ComponentBase]], circular import
        ports=None,  # : Optional[List[Tuple[ComponentBase, str]]], circular import
        include_port_domain: bool = False,
        dpd: Optional["DiagramProcessingData"] = None,
        variables: Optional[List["sp.Symbol"]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.components = components
        self.ports = ports
        self.include_port_domain = include_port_domain
        self.dpd = dpd
        self.vars = variables

    def _var_names(self):
        """Group the related variables by the name of their component."""
        by_component = {}
        dpd = self.dpd
        for var in self.vars:
            sym = dpd.syms_map.get(var, var) if dpd is not None else var
            cmp = dpd.ad.sym_to_cmp.get(sym) if dpd is not None else None
            name = "diagram" if cmp is None else cmp.name
            label = str(getattr(sym, "sym_name", sym))
            by_component.setdefault(name, []).append(label)
        return by_component

    def _port_label(self, cmp, port_name):
        label = f"{cmp.name}:{port_name}"
        if self.include_port_domain:
            label += f"[{cmp.ports[port_name].domain}]"
        return label

    def __str__(self):
        sections = []
        if self.dpd:
            sections.append(("AcausalDiagram", [f"{self.dpd.ad.name}."]))
        if self.components:
            sections.append(("components", [c.name for c in self.components]))
        elif self.ports:
            labels = sorted(self._port_label(c, p) for c, p in self.ports)
            sections.append(("ports", labels))
        elif self.vars:
            sections.append(("variables", [str(self._var_names())]))
        context = "".join(
            f"\nRelated {title}:\n\t" + "\n\t".join(lines) for title, lines in sections
        )
        return f"{context}\n{self.message or self.default_message}"

    @property
    def default_message(self):
        return type(self).__name__
