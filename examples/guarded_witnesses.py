"""
Example session: explore the sample programs and print their witnesses.
Each witness shows the models of the inputs before the run and, when
synthesis found one, the call sequence that builds them.
"""

from pywitness import LogLevel, WitnessConfig, configure_logging, witnesses
from pywitness.constraints.models import AssembleModel
from pywitness.testing.programs import CHECK, INCREMENT, SAME, THIRD, guarded_program, wrapper_program


def describe(model) -> str:
    if isinstance(model, AssembleModel):
        return " -> ".join(call.executable.signature for call in model.calls())
    return repr(model)


def show(program, executable, config: WitnessConfig) -> None:
    report = witnesses(program, executable, config)
    print(f"{executable.signature}: {len(report.witnesses)} executions")
    for witness in report.witnesses:
        status = "throws" if witness.exceptional else "returns"
        print(f"  {status} for {witness.execution.before.parameters}")
        for model in witness.synthesized or []:
            if model is not None:
                print(f"    built by {describe(model)}")


if __name__ == "__main__":
    configure_logging(LogLevel.VERBOSE)
    config = WitnessConfig()
    config.synthesis.timeout_ms = 2000
    guarded = guarded_program()
    for executable in (CHECK, INCREMENT, SAME):
        show(guarded, executable, config)
    show(wrapper_program(), THIRD, config.with_synthesis_disabled())
