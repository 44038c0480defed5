"""Base classes for tabular vesting blocks.

Blocks turn engine results into pandas DataFrames for the workbook renderer
and for ad-hoc analysis:
- Block abstract base class (declared inputs and outputs)
- BlockContext for passing values between blocks
- BlockExecutor running blocks in dependency order
- topological_sort over the output → input graph
"""

from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional

from ..logging_config import get_logger

logger = get_logger("blocks")


# =============================================================================
# Block Context
# =============================================================================

@dataclass
class BlockContext:
    """Named values shared by the blocks of one execution.

    Example:
        context = BlockContext.from_values(
            grant=grant,
            resolved_schedule=resolved,
            plan_schedule_kind="time_based",
            observation_date=date(2025, 6, 30),
        )
        VestingScheduleBlock().execute(context)
        events_df = context.get("vesting_events")
    """

    _data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_values(cls, **values: Any) -> "BlockContext":
        """Build a context pre-populated with initial inputs."""
        return cls(_data=dict(values))

    def get(self, key: str) -> Any:
        """Value stored under ``key``.

        Raises:
            KeyError: If nothing was stored under the key
        """
        if key not in self._data:
            raise KeyError(f"Key '{key}' not found in context. Available keys: {self.keys()}")
        return self._data[key]

    def get_optional(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def has(self, key: str) -> bool:
        return key in self._data

    def keys(self) -> List[str]:
        return sorted(self._data.keys())


# =============================================================================
# Block Base Class
# =============================================================================

class Block(ABC):
    """A computation unit with declared context inputs and outputs.

    Subclass example:
        class EventCountBlock(Block):
            def inputs(self) -> List[str]:
                return ["vesting_events_list"]

            def outputs(self) -> List[str]:
                return ["vesting_event_count"]

            def execute(self, context: BlockContext) -> None:
                events = context.get("vesting_events_list")
                context.set("vesting_event_count", len(events))
    """

    @abstractmethod
    def inputs(self) -> List[str]:
        """Context keys this block reads."""

    @abstractmethod
    def outputs(self) -> List[str]:
        """Context keys this block writes."""

    @abstractmethod
    def execute(self, context: BlockContext) -> None:
        """Read inputs from context, compute, write outputs to context."""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(inputs={self.inputs()}, outputs={self.outputs()})"


# =============================================================================
# Dependency Resolution
# =============================================================================

class CircularDependencyError(Exception):
    """Raised when blocks depend on each other in a cycle."""


def topological_sort(blocks: List[Block]) -> List[Block]:
    """Order blocks so every producer runs before its consumers (Kahn's algorithm).

    Inputs that no block produces must be supplied by the initial context.
    Blocks without mutual dependencies keep their given order.

    Raises:
        ValueError: If two blocks declare the same output
        CircularDependencyError: If the dependency graph has a cycle

    Example:
        topological_sort([VestingStatusBlock(), VestingScheduleBlock()])
        → [VestingScheduleBlock, VestingStatusBlock]
    """
    producers: Dict[str, Block] = {}
    for block in blocks:
        for key in block.outputs():
            if key in producers:
                raise ValueError(
                    f"Multiple blocks produce '{key}': {producers[key]} and {block}"
                )
            producers[key] = block

    in_degree: Dict[int, int] = {id(block): 0 for block in blocks}
    consumers: Dict[int, List[Block]] = {id(block): [] for block in blocks}

    for block in blocks:
        for key in block.inputs():
            producer = producers.get(key)
            if producer is not None and producer is not block:
                consumers[id(producer)].append(block)
                in_degree[id(block)] += 1

    ready: Deque[Block] = deque(block for block in blocks if in_degree[id(block)] == 0)
    ordered: List[Block] = []

    while ready:
        current = ready.popleft()
        ordered.append(current)
        for consumer in consumers[id(current)]:
            in_degree[id(consumer)] -= 1
            if in_degree[id(consumer)] == 0:
                ready.append(consumer)

    if len(ordered) != len(blocks):
        stuck = [block for block in blocks if in_degree[id(block)] > 0]
        raise CircularDependencyError(f"Circular dependency detected among blocks: {stuck}")

    return ordered


# =============================================================================
# Block Executor
# =============================================================================

class BlockExecutor:
    """Runs blocks in dependency order over one context.

    Example:
        executor = BlockExecutor([VestingStatusBlock(), VestingScheduleBlock()])
        context = executor.execute(BlockContext.from_values(
            grant=grant,
            resolved_schedule=resolved,
            plan_schedule_kind="time_based",
            observation_date=date(2025, 6, 30),
        ))
        totals_df = context.get("vesting_status_totals")
    """

    def __init__(self, blocks: List[Block]):
        self.blocks = blocks
        self._sorted_blocks: Optional[List[Block]] = None

    @property
    def execution_order(self) -> List[Block]:
        if self._sorted_blocks is None:
            self._sorted_blocks = topological_sort(self.blocks)
        return self._sorted_blocks

    def execute(self, context: Optional[BlockContext] = None) -> BlockContext:
        """Execute every block and return the populated context.

        Raises:
            CircularDependencyError: If blocks have circular dependencies
            KeyError: If a block's input is missing from the context
            ValueError: If a block did not write a declared output
        """
        context = context if context is not None else BlockContext()

        for block in self.execution_order:
            missing = [key for key in block.inputs() if not context.has(key)]
            if missing:
                raise KeyError(
                    f"Block {block} requires inputs {missing} that are not in context. "
                    f"Available keys: {context.keys()}"
                )

            block.execute(context)

            unwritten = [key for key in block.outputs() if not context.has(key)]
            if unwritten:
                raise ValueError(f"Block {block} declared outputs {unwritten} but did not write them")

            logger.debug("block_executed", extra={"block": type(block).__name__})

        return context
