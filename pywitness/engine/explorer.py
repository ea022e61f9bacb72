"""Reference symbolic explorer.

Executes :mod:`pywitness.engine.program` methods symbolically over the z3
heap of :mod:`pywitness.core.memory`. States fork on branches and on every
implicit check (null dereference, array bounds, negative array size);
infeasible forks are dropped and counted. Which state runs next is decided
by a path selector; the explorer only reports terminal executions.
"""

from __future__ import annotations

import itertools
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterator

import z3

from pywitness.config import WitnessConfig
from pywitness.constraints.models import ConstrainedExecution
from pywitness.constraints.resolver import ConstraintResolver
from pywitness.core.memory import NULL_ADDR, HeapRegistry, Memory
from pywitness.core.solver import Solver, SolverStatusSAT
from pywitness.core.state import ExecutionState, Frame
from pywitness.core.types import (
    BOOL,
    INT,
    OBJECT,
    ClassId,
    ExecutableId,
    PrimitiveValue,
    ReferenceValue,
    SymbolicValue,
    array_of,
    make_value,
)
from pywitness.engine.graph import InterProceduralGraph
from pywitness.engine.program import (
    ARITHMETIC_OPS,
    ArrayGet,
    ArrayLen,
    ArraySet,
    Assign,
    BinOp,
    BoolConst,
    Expr,
    FieldGet,
    FieldSet,
    Goto,
    If,
    IntConst,
    Invoke,
    Local,
    New,
    NewArray,
    Not,
    NullConst,
    Program,
    Return,
    StaticGet,
    StaticSet,
    Throw,
)
from pywitness.logging import get_logger

if TYPE_CHECKING:
    from pywitness.selectors.selectors import PathSelector

RETURN_LOCAL = "$return"


class PostCondition(ABC):
    """Extra constraints a terminal state must satisfy to be reported."""

    @abstractmethod
    def constraints(self, state: ExecutionState) -> list[z3.BoolRef]:
        """Constraints over the terminal ``state``."""


@dataclass
class ExecutionResult:
    """A feasible terminal execution and the solver answer for it."""

    state: ExecutionState
    holder: SolverStatusSAT

    @property
    def parameters(self) -> list[SymbolicValue]:
        return self.state.parameters

    @property
    def exceptional(self) -> bool:
        return self.state.is_exceptional

    def resolve(self, use_soft_constraints: bool = False) -> ConstrainedExecution:
        """Models of the parameters before and after the execution."""
        resolver = ConstraintResolver(self.state.memory, self.holder, use_soft_constraints)
        return resolver.resolve_both_snapshots(self.parameters)


class SymbolicExplorer:
    """Runs methods of a :class:`Program` symbolically.

    Args:
        program: Classes and method bodies to execute.
        config: Engine, solver and selector settings.
        solver: Solver oracle; built from ``config.solver`` by default.
    """

    def __init__(
        self,
        program: Program,
        config: WitnessConfig | None = None,
        solver: Solver | None = None,
    ):
        self.program = program
        self.config = config or WitnessConfig()
        self.solver = solver or Solver(self.config.solver.timeout_ms)
        self.registry = HeapRegistry()
        for decl in program.classes():
            if decl.concrete is not None:
                self.registry.register_wrapper(decl.class_id, decl.concrete)
        self.graph = InterProceduralGraph(program)
        self._ids = itertools.count()
        self._logger = get_logger()

    def _next_id(self) -> int:
        return next(self._ids)

    def _input(self, state: ExecutionState, name: str, class_id: ClassId, non_null: bool = False) -> SymbolicValue:
        expr = self.registry.fresh(name, class_id)
        if class_id.is_primitive:
            return PrimitiveValue(class_id, expr)
        state.add_constraint(expr < 0 if non_null else expr <= NULL_ADDR)
        if class_id.is_array:
            length = z3.Select(self.registry.length_array(), expr)
            state.add_constraint(length >= 0)
            state.add_soft_constraint(length <= self.config.engine.preferred_array_length)
        return ReferenceValue(class_id, expr, self.registry.concrete_for(class_id))

    def initial_state(self, executable: ExecutableId) -> ExecutionState:
        """Fresh state at the entry of ``executable`` with symbolic inputs."""
        body = self.program.method(executable)
        self.graph.join(body)
        state = ExecutionState(frames=[], memory=Memory(self.registry), state_id=self._next_id())
        frame = Frame(body)
        if body.has_receiver:
            receiver = self._input(state, "this", executable.declaring_class, non_null=True)
            frame.locals["this"] = receiver
            state.parameters.append(receiver)
        for name, class_id in zip(body.parameters, executable.parameters):
            value = self._input(state, name, class_id)
            frame.locals[name] = value
            state.parameters.append(value)
        state.frames.append(frame)
        return state

    def run(
        self,
        executable: ExecutableId,
        selector: PathSelector,
        post_condition: PostCondition | None = None,
    ) -> Iterator[ExecutionResult]:
        """Explore ``executable`` in the order chosen by ``selector``.

        Yields every feasible terminal execution; with a post-condition only
        normal terminations satisfying it are reported.
        """
        selector.offer([self.initial_state(executable)])
        steps = 0
        while not selector.should_stop():
            state = selector.pick()
            if state is None:
                break
            steps += 1
            live = []
            for child in self.step(state):
                if child.last_edge is not None and not child.is_exceptional:
                    if self.graph.traverse(child.last_edge):
                        child.steps_since_new_coverage = 0
                    else:
                        child.steps_since_new_coverage += 1
                if child.is_terminal:
                    result = self._finish(child, post_condition)
                    if result is not None:
                        yield result
                elif child.path_length > self.config.engine.max_path_length:
                    self._logger.count("states.truncated")
                else:
                    live.append(child)
            selector.offer(live)
        self._logger.debug(
            f"explored {executable.signature}: {steps} steps",
            category="engine",
            frontier=selector.size(),
        )

    def _finish(self, state: ExecutionState, post_condition: PostCondition | None) -> ExecutionResult | None:
        if post_condition is not None:
            if state.is_exceptional:
                return None
            for constraint in post_condition.constraints(state):
                state.add_constraint(constraint)
        status = state.check(self.solver)
        if not status.is_sat:
            self._logger.count("states.unsat")
            return None
        if state.is_exceptional:
            self._logger.count("states.exceptional")
        return ExecutionResult(state, status)

    def _feasible(self, state: ExecutionState) -> bool:
        if state.check(self.solver, respect_soft=False).is_sat:
            return True
        self._logger.count("states.unsat")
        return False

    def step(self, state: ExecutionState) -> list[ExecutionState]:
        """Execute one statement of ``state``; returns its feasible successors."""
        child = state.fork(self._next_id())
        child.path_length += 1
        frame = child.top()
        body = frame.method
        location = frame.location
        if frame.pc >= len(body.statements):
            return [self._exit(child, location)]
        stmt = body.statements[frame.pc]
        if isinstance(stmt, If):
            return self._branch(child, stmt, location)
        if isinstance(stmt, Goto):
            frame.pc = stmt.target
            child.last_edge = (location, frame.location)
            return [child]
        if isinstance(stmt, Throw):
            child.exception = stmt.reason
            return [child]
        guards: list[z3.BoolRef] = []
        if isinstance(stmt, Assign):
            value = self._eval(stmt.value, child, guards)
            return self._guarded(child, guards, location, lambda s: self._assign(s, stmt.target, value))
        if isinstance(stmt, FieldSet):
            instance = self._receiver(stmt.instance, child, guards)
            value = self._eval(stmt.value, child, guards)
            return self._guarded(
                child, guards, location, lambda s: s.memory.write_field(instance.addr, stmt.field, value.expr)
            )
        if isinstance(stmt, StaticSet):
            value = self._eval(stmt.value, child, guards)
            return self._guarded(child, guards, location, lambda s: s.memory.write_static(stmt.field, value))
        if isinstance(stmt, ArraySet):
            array = self._receiver(stmt.array, child, guards)
            index = self._eval(stmt.index, child, guards)
            self._bounds(array, index, child, guards)
            value = self._eval(stmt.value, child, guards)
            return self._guarded(
                child,
                guards,
                location,
                lambda s: s.memory.write_element(array.addr, index.expr, array.type.element, value.expr),
            )
        if isinstance(stmt, New):
            addr = child.memory.allocate(self.program.fields_of(stmt.class_id))
            value = ReferenceValue(stmt.class_id, addr, self.registry.concrete_for(stmt.class_id))
            return self._guarded(child, guards, location, lambda s: self._assign(s, stmt.target, value))
        if isinstance(stmt, NewArray):
            length = self._eval(stmt.length, child, guards)
            guards.append(length.expr >= 0)

            def allocate(s: ExecutionState) -> None:
                addr = s.memory.allocate_array(stmt.element, length.expr)
                self._assign(s, stmt.target, ReferenceValue(array_of(stmt.element), addr))

            return self._guarded(child, guards, location, allocate)
        if isinstance(stmt, Invoke):
            return self._invoke(child, stmt, location, guards)
        if isinstance(stmt, Return):
            value = self._eval(stmt.value, child, guards) if stmt.value is not None else None

            def leave(s: ExecutionState) -> None:
                top = s.top()
                if value is not None:
                    top.locals[RETURN_LOCAL] = value
                top.pc = len(top.method.statements)

            return self._guarded(child, guards, location, leave, advance=False)
        raise TypeError(f"unsupported statement {stmt!r}")

    def _assign(self, state: ExecutionState, target: str, value: SymbolicValue) -> None:
        state.top().locals[target] = value

    def _split(
        self, state: ExecutionState, guards: list[z3.BoolRef]
    ) -> tuple[ExecutionState | None, list[ExecutionState]]:
        """Fork off the states where an implicit check fails.

        Returns the state where every guard holds (None if infeasible) and
        the feasible exceptional states.
        """
        pending = [g for g in guards if not z3.is_true(z3.simplify(g))]
        if not pending:
            return state, []
        condition = z3.And(*pending) if len(pending) > 1 else pending[0]
        failing = state.fork(self._next_id())
        failing.exception = "implicit check failed"
        failing.add_constraint(z3.Not(condition))
        if z3.is_false(z3.simplify(condition)):
            return None, [failing] if self._feasible(failing) else []
        state.add_constraint(condition)
        passes = self._feasible(state)
        fails = self._feasible(failing)
        if passes and fails:
            state.depth += 1
            failing.depth += 1
        return (state if passes else None), ([failing] if fails else [])

    def _guarded(self, state, guards, location, effect, advance: bool = True) -> list[ExecutionState]:
        """Split ``state`` on ``guards``; apply ``effect`` on the passing side."""
        passing, failing = self._split(state, guards)
        if passing is None:
            return failing
        effect(passing)
        frame = passing.top()
        if advance:
            frame.pc += 1
        passing.last_edge = (location, frame.location)
        return [passing] + failing

    def _branch(self, state: ExecutionState, stmt: If, location) -> list[ExecutionState]:
        guards: list[z3.BoolRef] = []
        condition = self._eval(stmt.condition, state, guards).expr
        passing, failing = self._split(state, guards)
        if passing is None:
            return failing
        simplified = z3.simplify(condition)
        taken = passing.fork(self._next_id())
        children = []
        if not z3.is_false(simplified):
            taken.add_constraint(condition)
            taken.top().pc = stmt.target
            taken.last_edge = (location, taken.top().location)
            children.append(taken)
        if not z3.is_true(simplified):
            passing.add_constraint(z3.Not(condition))
            passing.top().pc += 1
            passing.last_edge = (location, passing.top().location)
            children.append(passing)
        if len(children) == 2:
            children = [s for s in children if self._feasible(s)]
            if len(children) == 2:
                for s in children:
                    s.depth += 1
        return children + failing

    def _invoke(self, state: ExecutionState, stmt: Invoke, location, guards) -> list[ExecutionState]:
        receiver = self._receiver(stmt.receiver, state, guards) if stmt.receiver else None
        args = [self._eval(arg, state, guards) for arg in stmt.args]
        callee = self.program.method(stmt.executable)
        self.graph.join(callee)

        def enter(s: ExecutionState) -> None:
            s.top().pc += 1
            frame = Frame(callee, 0, {}, stmt.target)
            if receiver is not None:
                frame.locals["this"] = receiver
            for name, value in zip(callee.parameters, args):
                frame.locals[name] = value
            s.frames.append(frame)

        return self._guarded(state, guards, location, enter, advance=False)

    def _exit(self, state: ExecutionState, location) -> ExecutionState:
        frame = state.frames.pop()
        value = frame.locals.get(RETURN_LOCAL)
        if not state.frames:
            state.final_locals = frame.locals
            state.return_value = value
            state.last_edge = None
            return state
        caller = state.top()
        if frame.return_target is not None and value is not None:
            caller.locals[frame.return_target] = value
        state.last_edge = (location, caller.location)
        return state

    def _receiver(self, name: str, state: ExecutionState, guards: list[z3.BoolRef]) -> ReferenceValue:
        value = state.top().locals[name]
        if not isinstance(value, ReferenceValue):
            raise TypeError(f"{name} is not a reference")
        guards.append(value.addr != NULL_ADDR)
        return value

    def _bounds(self, array: ReferenceValue, index: SymbolicValue, state: ExecutionState, guards) -> None:
        length = state.memory.read_length(array.addr)
        guards.append(index.expr >= 0)
        guards.append(index.expr < length)

    def _eval(self, expr: Expr, state: ExecutionState, guards: list[z3.BoolRef]) -> SymbolicValue:
        """Symbolic value of ``expr``; implicit checks are appended to ``guards``."""
        memory = state.memory
        if isinstance(expr, Local):
            return state.top().locals[expr.name]
        if isinstance(expr, IntConst):
            return PrimitiveValue(INT, z3.IntVal(expr.value))
        if isinstance(expr, BoolConst):
            return PrimitiveValue(BOOL, z3.BoolVal(expr.value))
        if isinstance(expr, NullConst):
            return ReferenceValue(OBJECT, z3.IntVal(NULL_ADDR))
        if isinstance(expr, Not):
            return PrimitiveValue(BOOL, z3.Not(self._eval(expr.operand, state, guards).expr))
        if isinstance(expr, BinOp):
            return self._binop(expr, state, guards)
        if isinstance(expr, FieldGet):
            instance = self._receiver(expr.instance, state, guards)
            value = memory.read_field(instance.addr, expr.field)
            if expr.field.type.is_reference:
                initial = z3.Select(memory.registry.field_array(expr.field), instance.addr)
                state.add_constraint(initial <= NULL_ADDR)
            return make_value(expr.field.type, value, self.registry.concrete_for(expr.field.type))
        if isinstance(expr, StaticGet):
            return memory.read_static(expr.field)
        if isinstance(expr, ArrayGet):
            array = self._receiver(expr.array, state, guards)
            index = self._eval(expr.index, state, guards)
            self._bounds(array, index, state, guards)
            element = array.type.element
            value = memory.read_element(array.addr, index.expr, element)
            if element.is_reference:
                initial = z3.Select(z3.Select(memory.registry.contents_array(element), array.addr), index.expr)
                state.add_constraint(initial <= NULL_ADDR)
            return make_value(element, value, self.registry.concrete_for(element))
        if isinstance(expr, ArrayLen):
            array = self._receiver(expr.array, state, guards)
            return PrimitiveValue(INT, memory.read_length(array.addr))
        raise TypeError(f"unsupported expression {expr!r}")

    def _binop(self, expr: BinOp, state: ExecutionState, guards) -> PrimitiveValue:
        lhs = self._eval(expr.lhs, state, guards).expr
        rhs = self._eval(expr.rhs, state, guards).expr
        op = expr.op
        if op in ARITHMETIC_OPS:
            if op == "+":
                return PrimitiveValue(INT, lhs + rhs)
            if op == "-":
                return PrimitiveValue(INT, lhs - rhs)
            return PrimitiveValue(INT, lhs * rhs)
        if op == "and":
            return PrimitiveValue(BOOL, z3.And(lhs, rhs))
        if op == "or":
            return PrimitiveValue(BOOL, z3.Or(lhs, rhs))
        comparisons = {
            "==": lambda a, b: a == b,
            "!=": lambda a, b: a != b,
            "<": lambda a, b: a < b,
            "<=": lambda a, b: a <= b,
            ">": lambda a, b: a > b,
            ">=": lambda a, b: a >= b,
        }
        if op not in comparisons:
            raise ValueError(f"unknown operator {op}")
        return PrimitiveValue(BOOL, comparisons[op](lhs, rhs))

    def resolve(self, result: ExecutionResult) -> ConstrainedExecution:
        return result.resolve(self.config.solver.use_soft_constraints)


__all__ = [
    "SymbolicExplorer",
    "ExecutionResult",
    "PostCondition",
    "RETURN_LOCAL",
]
