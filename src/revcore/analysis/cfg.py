"""Basic-block partitioning and control-flow-graph assembly."""

from __future__ import annotations

from collections import deque
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field

from revcore.errors import InvalidInputError
from revcore.extraction.instruction import Instruction
from revcore.utils.logging import get_logger

log = get_logger(__name__)


class AddressNotFoundError(InvalidInputError):
    """The requested entry address is not the start of any instruction."""


@dataclass(frozen=True)
class BasicBlock:
    start_address: int
    end_address: int  # address of the last instruction (inclusive)
    start_instruction_index: int
    end_instruction_index: int
    successors: tuple[int, ...] = ()
    predecessors: tuple[int, ...] = ()
    is_entry: bool = False
    is_exit: bool = False

    @property
    def instruction_count(self) -> int:
        return self.end_instruction_index - self.start_instruction_index + 1

    def contains(self, address: int) -> bool:
        return self.start_address <= address <= self.end_address

    def __str__(self) -> str:
        return (
            f"Block @ {self.start_address:#x}: [{self.start_instruction_index}, "
            f"{self.end_instruction_index}] ({self.instruction_count} instrs)"
        )


@dataclass(frozen=True)
class ControlFlowGraph:
    blocks: dict[int, BasicBlock] = field(default_factory=dict)
    entry_points: tuple[int, ...] = ()

    def get_block(self, address: int) -> BasicBlock | None:
        return self.blocks.get(address)

    def block_containing(self, address: int) -> BasicBlock | None:
        for block in self.blocks.values():
            if block.contains(address):
                return block
        return None

    def successors_of(self, block: BasicBlock) -> list[BasicBlock]:
        return [self.blocks[a] for a in block.successors if a in self.blocks]

    def predecessors_of(self, block: BasicBlock) -> list[BasicBlock]:
        return [self.blocks[a] for a in block.predecessors if a in self.blocks]

    def dfs(self, start_address: int) -> Iterator[BasicBlock]:
        """Depth-first walk; lower successor addresses are visited first."""
        visited: set[int] = set()
        stack = [start_address]
        while stack:
            addr = stack.pop()
            if addr in visited:
                continue
            visited.add(addr)
            block = self.blocks.get(addr)
            if block is None:
                continue
            yield block
            for succ in sorted(block.successors, reverse=True):
                if succ not in visited:
                    stack.append(succ)

    def bfs(self, start_address: int) -> Iterator[BasicBlock]:
        visited: set[int] = set()
        queue = deque([start_address])
        while queue:
            addr = queue.popleft()
            if addr in visited:
                continue
            visited.add(addr)
            block = self.blocks.get(addr)
            if block is None:
                continue
            yield block
            for succ in block.successors:
                if succ not in visited:
                    queue.append(succ)

    @property
    def total_blocks(self) -> int:
        return len(self.blocks)

    @property
    def total_instructions(self) -> int:
        return sum(b.instruction_count for b in self.blocks.values())

    @property
    def edge_count(self) -> int:
        return sum(len(b.successors) for b in self.blocks.values())

    def __str__(self) -> str:
        return f"CFG: {self.total_blocks} blocks, {self.total_instructions} instructions"


def build_cfg(instructions: Sequence[Instruction], entry_address: int) -> ControlFlowGraph:
    """Partition *instructions* into basic blocks and connect them.

    Raises InvalidInputError when the stream is empty and AddressNotFoundError
    when *entry_address* does not start an instruction. Any other boundary that
    fails to resolve (a jump into the middle of an instruction, a target
    outside the stream) is skipped.
    """
    if not instructions:
        raise InvalidInputError("Instruction stream cannot be empty.")

    index_of = {ins.address: i for i, ins in enumerate(instructions)}
    if entry_address not in index_of:
        raise AddressNotFoundError(f"No instruction at entry address {entry_address:#x}")

    starts = _identify_boundaries(instructions, entry_address)
    ranges = _materialize_blocks(instructions, starts, index_of)
    successors = _connect_blocks(instructions, ranges)

    predecessors: dict[int, list[int]] = {start: [] for start in ranges}
    for src, succs in successors.items():
        for dst in succs:
            predecessors[dst].append(src)

    blocks: dict[int, BasicBlock] = {}
    for start, (first, last) in ranges.items():
        succs = tuple(successors[start])
        blocks[start] = BasicBlock(
            start_address=start,
            end_address=instructions[last].address,
            start_instruction_index=first,
            end_instruction_index=last,
            successors=succs,
            predecessors=tuple(predecessors[start]),
            is_entry=start == entry_address,
            is_exit=not succs,
        )

    log.debug("cfg_built", entry=hex(entry_address), blocks=len(blocks))
    return ControlFlowGraph(blocks=blocks, entry_points=(entry_address,))


def _identify_boundaries(instructions: Sequence[Instruction], entry_address: int) -> set[int]:
    starts = {entry_address}
    last = len(instructions) - 1
    for i, ins in enumerate(instructions):
        if ins.is_terminator and i < last:
            starts.add(instructions[i + 1].address)
        if ins.is_jump:
            target = ins.branch_target
            if target is not None:
                starts.add(target)
    return starts


def _materialize_blocks(
    instructions: Sequence[Instruction],
    starts: set[int],
    index_of: dict[int, int],
) -> dict[int, tuple[int, int]]:
    """Map each resolvable block start to its (first, last) instruction index."""
    resolved = sorted(a for a in starts if a in index_of)
    skipped = len(starts) - len(resolved)
    if skipped:
        log.debug("cfg_boundaries_skipped", count=skipped)

    ranges: dict[int, tuple[int, int]] = {}
    count = len(instructions)
    for n, start in enumerate(resolved):
        next_start = resolved[n + 1] if n + 1 < len(resolved) else None
        first = index_of[start]
        last = first
        for j in range(first, count):
            if next_start is not None and instructions[j].address >= next_start:
                break
            last = j
            if instructions[j].is_terminator:
                break
        ranges[start] = (first, last)
    return ranges


def _connect_blocks(
    instructions: Sequence[Instruction],
    ranges: dict[int, tuple[int, int]],
) -> dict[int, list[int]]:
    successors: dict[int, list[int]] = {start: [] for start in ranges}

    def add_edge(src: int, dst: int | None) -> None:
        if dst is not None and dst in ranges and dst not in successors[src]:
            successors[src].append(dst)

    for start, (_, last) in ranges.items():
        tail = instructions[last]
        fall_through = (
            instructions[last + 1].address if last + 1 < len(instructions) else None
        )
        if tail.is_unconditional_jump:
            add_edge(start, tail.branch_target)
        elif tail.is_conditional_jump:
            add_edge(start, fall_through)
            add_edge(start, tail.branch_target)
        elif tail.is_return:
            continue
        else:
            add_edge(start, fall_through)
    return successors
