"""
Formula registry.

Holds named formula definitions and the named functions used by custom
formulas. A registry is built once (at startup or per test) and is
read-only once evaluation starts.
"""

from typing import Dict, Iterable, Iterator, List, Optional

import networkx as nx
import structlog

from parsenfill.custom_model.models import CustomFunction, FormulaDefinition, Operation
from parsenfill.exceptions import (
    CycleDetectedError,
    DuplicateFormulaIdError,
    DuplicateFunctionError,
    FormulaNotFoundError,
    UnknownDependencyError,
    UnknownFunctionError,
)

logger = structlog.get_logger(__name__)


class FormulaRegistry:
    """
    Registry of formula definitions with dependency checking.

    Registration rejects duplicate ids, unknown dependencies, unknown custom
    functions and dependency cycles. A failing batch leaves the registry
    unchanged.
    """

    def __init__(self) -> None:
        self._formulas: Dict[str, FormulaDefinition] = {}
        self._functions: Dict[str, CustomFunction] = {}
        self._order_cache: Optional[List[str]] = None

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    def register_function(self, name: str, function: CustomFunction) -> None:
        """Register a named function for CUSTOM formulas."""
        if name in self._functions:
            raise DuplicateFunctionError(name)
        self._functions[name] = function

    def register(self, definitions: Iterable[FormulaDefinition]) -> None:
        """
        Register a batch of formula definitions.

        Raises:
            DuplicateFormulaIdError: An id is registered twice.
            UnknownDependencyError: A dependency is not registered.
            UnknownFunctionError: A custom formula names an unknown function.
            CycleDetectedError: The dependency graph has a cycle.
        """
        batch = list(definitions)
        candidate = dict(self._formulas)

        for definition in batch:
            if definition.id in candidate:
                raise DuplicateFormulaIdError(definition.id)
            candidate[definition.id] = definition

        for definition in batch:
            for dependency in definition.dependencies:
                if dependency not in candidate:
                    raise UnknownDependencyError(definition.id, dependency)
            if definition.operation == Operation.CUSTOM and definition.function not in self._functions:
                raise UnknownFunctionError(definition.id, definition.function)

        self._check_acyclic(candidate)

        self._formulas = candidate
        self._order_cache = None

        logger.info(
            "Formulas registered",
            added=len(batch),
            total=len(self._formulas),
        )

    def _check_acyclic(self, formulas: Dict[str, FormulaDefinition]) -> None:
        """Raise CycleDetectedError with the first cycle found, in registration order."""
        graph = self._build_graph(formulas)
        try:
            cycle = nx.find_cycle(graph.reverse(copy=False), source=list(formulas))
        except nx.NetworkXNoCycle:
            return
        chain = [cycle[0][0]] + [target for _, target in cycle]
        raise CycleDetectedError(chain)

    @staticmethod
    def _build_graph(formulas: Dict[str, FormulaDefinition]) -> nx.DiGraph:
        """Dependency graph with an edge from each dependency to its dependent."""
        graph = nx.DiGraph()
        graph.add_nodes_from(formulas)
        for formula_id, definition in formulas.items():
            graph.add_edges_from((dependency, formula_id) for dependency in definition.dependencies)
        return graph

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def get(self, formula_id: str) -> FormulaDefinition:
        definition = self._formulas.get(formula_id)
        if definition is None:
            raise FormulaNotFoundError(formula_id)
        return definition

    def by_category(self, category: str) -> List[FormulaDefinition]:
        return [f for f in self._formulas.values() if f.category == category]

    @property
    def ids(self) -> List[str]:
        return list(self._formulas)

    @property
    def functions(self) -> Dict[str, CustomFunction]:
        return dict(self._functions)

    def __contains__(self, formula_id: object) -> bool:
        return formula_id in self._formulas

    def __len__(self) -> int:
        return len(self._formulas)

    def __iter__(self) -> Iterator[FormulaDefinition]:
        return iter(self._formulas.values())

    # -------------------------------------------------------------------------
    # Ordering
    # -------------------------------------------------------------------------

    def execution_order(self) -> List[str]:
        """
        Topological order of formula ids.

        Among formulas that are ready at the same time, the one registered
        first runs first.
        """
        if self._order_cache is None:
            position = {formula_id: i for i, formula_id in enumerate(self._formulas)}
            graph = self._build_graph(self._formulas)
            self._order_cache = list(
                nx.lexicographical_topological_sort(graph, key=position.__getitem__)
            )
        return list(self._order_cache)
