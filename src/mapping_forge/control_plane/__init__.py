"""Control plane: repair loop orchestration, repair feedback and batch summaries."""

from mapping_forge.control_plane.controller import (
    ComponentJob,
    RepairLoopController,
    as_generator,
    run_component,
)
from mapping_forge.control_plane.feedback import (
    RepairInstruction,
    RepairInstructionBuilder,
    build_initial_instruction,
    build_repair_instruction,
    render_allowed_keys,
    render_component_data,
)
from mapping_forge.control_plane.summary import OutcomeSummary, summarize_outcomes

__all__ = [
    "ComponentJob",
    "OutcomeSummary",
    "RepairInstruction",
    "RepairInstructionBuilder",
    "RepairLoopController",
    "as_generator",
    "build_initial_instruction",
    "build_repair_instruction",
    "render_allowed_keys",
    "render_component_data",
    "run_component",
    "summarize_outcomes",
]
