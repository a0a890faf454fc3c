"""Chained multi-agent, multi-task model used for allocation.

Each (agent, task) product is a block. Blocks are laid out task-major in a
single global index space:

    (a0,t0) (a1,t0) ... (a_{n-1},t0) (a0,t1) ... (a_{n-1},t_{m-1})

Every block carries two links, both global indices:
- `next_agent_index`: initial state of (a+1, t); handing the task to the
  next agent. The last agent of a task links to its own initial state.
- `next_task_index`: initial state of (0, t+1); entered once the task is
  finished. The last task links to its own initial state.
A link that points back at the block's own initial state means "none".
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from fleet_planner.errors import MissingEntryError
from fleet_planner.planning.matrices import ProductMatrices, proper_pairs
from fleet_planner.planning.product import ProductModel

BlockKey = tuple[int, int]  # (agent, task)


@dataclass
class ModelBlock:
    """One product placed in the chained model."""

    product: ProductModel
    offset: int
    next_agent_index: int
    next_task_index: int
    matrices: ProductMatrices | None = None
    proper: np.ndarray | None = field(default=None, repr=False)

    @property
    def init_index(self) -> int:
        """Global index of the block's initial state."""
        return self.offset + self.product.init_index

    @property
    def has_next_agent(self) -> bool:
        return self.next_agent_index != self.init_index

    @property
    def has_next_task(self) -> bool:
        return self.next_task_index != self.init_index


class IncrementalModel:
    """Container of chained (agent, task) product blocks.

    Args:
        n_actions: Action count shared by every block.
        n_agents: Number of agents.
        n_tasks: Number of tasks.
    """

    def __init__(self, n_actions: int, n_agents: int, n_tasks: int) -> None:
        self.n_actions = n_actions
        self.n_agents = n_agents
        self.n_tasks = n_tasks
        self.blocks: dict[BlockKey, ModelBlock] = {}
        self._starts: list[int] = []
        self._keys: list[BlockKey] = []

    @staticmethod
    def layout(products: dict[BlockKey, ProductModel], n_agents: int, n_tasks: int) -> dict[BlockKey, int]:
        """Global offset of every block, task-major."""
        offsets = {}
        offset = 0
        for t in range(n_tasks):
            for a in range(n_agents):
                offsets[(a, t)] = offset
                offset += products[(a, t)].n_states
        return offsets

    def add_block(
        self,
        product: ProductModel,
        offset: int,
        next_agent_index: int,
        next_task_index: int,
    ) -> ModelBlock:
        """Register a product and its chaining links."""
        key = (product.agent, product.task)
        block = ModelBlock(product, offset, next_agent_index, next_task_index)
        self.blocks[key] = block
        self._starts.append(offset)
        self._keys.append(key)
        order = np.argsort(self._starts)
        self._starts = [self._starts[i] for i in order]
        self._keys = [self._keys[i] for i in order]
        return block

    def block(self, agent: int, task: int) -> ModelBlock:
        try:
            return self.blocks[(agent, task)]
        except KeyError:
            raise MissingEntryError("incremental model blocks", (agent, task)) from None

    def attach_matrices(self, agent: int, task: int, matrices: ProductMatrices) -> None:
        """Store the sparse matrices of a block and derive its proper pairs."""
        block = self.block(agent, task)
        block.matrices = matrices
        block.proper = proper_pairs(block.product, block.product.terminal)

    def locate(self, index: int) -> tuple[BlockKey, int]:
        """Map a global index to (block key, local index).

        Raises:
            MissingEntryError: If no block covers the index.
        """
        pos = int(np.searchsorted(self._starts, index, side="right")) - 1
        if pos >= 0:
            key = self._keys[pos]
            local = index - self._starts[pos]
            if local < self.blocks[key].product.n_states:
                return key, local
        raise MissingEntryError("incremental model index", index)

    @property
    def n_states(self) -> int:
        return sum(b.product.n_states for b in self.blocks.values())

    @property
    def n_transitions(self) -> int:
        return sum(b.matrices.nnz for b in self.blocks.values() if b.matrices is not None)

    def reverse_maps(self) -> dict[BlockKey, dict[int, tuple[int, int]]]:
        """Per-block product reverse state maps."""
        return {key: b.product.reverse_state_mapping for key, b in self.blocks.items()}
