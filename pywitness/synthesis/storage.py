"""Index of the calls that can produce a value of a given class."""

from __future__ import annotations

from pywitness.core.types import ClassId, ExecutableId
from pywitness.engine.program import Program
from pywitness.synthesis.units import MethodUnit, NullUnit, ObjectUnit, Unit


class StatementsStorage:
    """Public constructors, mutators and factories of a program, by class.

    The index is rebuilt lazily when the program's method table changes.
    Probe methods are private, static and return nothing, so they never
    become candidates.
    """

    def __init__(self, program: Program):
        self.program = program
        self._known = -1
        self._constructors: dict[ClassId, list[ExecutableId]] = {}
        self._mutators: dict[ClassId, list[ExecutableId]] = {}
        self._factories: dict[ClassId, list[ExecutableId]] = {}

    def _refresh(self) -> None:
        executables = self.program.executables()
        if len(executables) == self._known:
            return
        self._known = len(executables)
        self._constructors.clear()
        self._mutators.clear()
        self._factories.clear()
        for executable in executables:
            if not executable.is_public:
                continue
            owner = executable.declaring_class
            if executable.is_constructor:
                self._constructors.setdefault(owner, []).append(executable)
            elif not executable.is_static:
                self._mutators.setdefault(owner, []).append(executable)
            elif executable.return_type.is_reference:
                self._factories.setdefault(executable.return_type, []).append(executable)

    def constructors(self, class_id: ClassId) -> list[ExecutableId]:
        self._refresh()
        return list(self._constructors.get(class_id, []))

    def mutators(self, class_id: ClassId) -> list[ExecutableId]:
        self._refresh()
        return list(self._mutators.get(class_id, []))

    def factories(self, class_id: ClassId) -> list[ExecutableId]:
        self._refresh()
        return list(self._factories.get(class_id, []))

    def find(self, class_id: ClassId, name: str, arity: int) -> ExecutableId | None:
        """Public method of ``class_id`` called ``name`` taking ``arity`` arguments."""
        self._refresh()
        candidates = self._constructors if name == "<init>" else self._mutators
        for executable in candidates.get(class_id, []):
            if executable.name == name and len(executable.parameters) == arity:
                return executable
        return None

    def alternatives(self, class_id: ClassId, nullable: bool = True) -> list[Unit]:
        """Every one-step expansion of an undefined leaf of ``class_id``."""
        found: list[Unit] = []
        if nullable:
            found.append(NullUnit(class_id))
        for executable in self.constructors(class_id):
            found.append(MethodUnit(class_id, executable, tuple(ObjectUnit(p) for p in executable.parameters)))
        for executable in self.mutators(class_id):
            params = (ObjectUnit(class_id),) + tuple(ObjectUnit(p) for p in executable.parameters)
            found.append(MethodUnit(class_id, executable, params))
        for executable in self.factories(class_id):
            found.append(MethodUnit(class_id, executable, tuple(ObjectUnit(p) for p in executable.parameters)))
        return found


__all__ = ["StatementsStorage"]
