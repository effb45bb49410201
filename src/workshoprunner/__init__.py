"""
workshop-runner - resumable, step-by-step execution of workshop scenarios.

A workshop is an ordered list of named steps (create a cluster, install a
mesh, deploy services, probe endpoints). The runner executes them in order,
records each completed step in a per-scenario progress file, and lets an
operator resume after a failure, stop at a chosen step, list progress, reset,
or rerun only the verification probes.

Example usage:
    from workshoprunner import FileProgressStore, Step, StepRunner

    runner = StepRunner("sc1", FileProgressStore("."))
    runner.register([
        Step("eks_cluster", create_cluster, description="Create EKS Cluster"),
        Step("istio_install", install_istio, description="Install Istio Ambient"),
    ])
    result = runner.run(stop_after="eks_cluster")
"""

__version__ = "0.1.0"
__all__ = [
    "StepRunner",
    "RunResult",
    "RunStatus",
    "Step",
    "StepKind",
    "StepOutcome",
    "FileProgressStore",
    "MemoryProgressStore",
    "ConfigurationError",
    "__version__",
]

_EXPORTS = {
    "StepRunner": "workshoprunner.runner",
    "RunResult": "workshoprunner.runner",
    "RunStatus": "workshoprunner.runner",
    "Step": "workshoprunner.steps",
    "StepKind": "workshoprunner.steps",
    "StepOutcome": "workshoprunner.steps",
    "FileProgressStore": "workshoprunner.progress",
    "MemoryProgressStore": "workshoprunner.progress",
    "ConfigurationError": "workshoprunner.errors",
}


# Lazy imports to avoid loading OpenTelemetry and pydantic at import time
def __getattr__(name: str):
    module_name = _EXPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    import importlib
    return getattr(importlib.import_module(module_name), name)
